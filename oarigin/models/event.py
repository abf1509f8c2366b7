"""
Models / event.py
Rôle :
- Enveloppe standard du canal temps réel d'une room (entrant et sortant).

Notes :
- `type` est restreint à un Literal pour éviter les fautes de frappe entre services.
- `payload` reste libre: chaque événement porte son propre contexte.
"""
from pydantic import BaseModel, Field
from typing import Literal, Dict, Any
import time

# Entrants: membership, room. Sortants: tout ce que publie le contrôleur.
EventType = Literal[
    "membership",
    "room",
    "room_state",
    "segment",
    "turn",
    "countdown",
    "game_ended",
    "chat",
    "error",
]


class RoomEvent(BaseModel):
    """Un message sur le canal d'une room."""
    type: EventType
    room_id: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: float = Field(default_factory=time.time)

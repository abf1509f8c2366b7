"""
Models / room.py
Rôle :
- Enregistrements typés d'une room : joueurs, fiche de room, segments d'histoire.
- Énumérations partagées par les services (genre, statut, mode, phase).

Notes :
- `Player.status` ne passe à `dead` que par la machine de tours.
- Un `StorySegment` n'est plus modifié une fois ajouté au journal.
- Horodatages : epoch UTC en float, monotones par room (voir StoryLog.append).
"""
from __future__ import annotations

import time
from enum import Enum
from typing import Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field


class GameGenre(str, Enum):
    FANTASY = "Fantasy"
    SCI_FI = "Sci-Fi"
    MYSTERY = "Mystery"
    HORROR = "Horror"
    ADVENTURE = "Adventure"
    SURVIVAL = "Survival"


class RoomStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    CLOSED = "closed"


class GameMode(str, Enum):
    FREE_TEXT = "free_text"
    MULTIPLE_CHOICE = "multiple_choice"


class PlayerStatus(str, Enum):
    ALIVE = "alive"
    DEAD = "dead"


class GamePhase(str, Enum):
    LOBBY = "LOBBY"
    PLAYING = "PLAYING"
    ENDED = "ENDED"


# Compteurs de progression : mapping creux nom -> compte positif ou nul
GameProgress = Dict[str, int]


class Player(BaseModel):
    """Membre d'une room. Les morts restent dans le roster, hors rotation."""
    id: str
    username: str
    status: PlayerStatus = PlayerStatus.ALIVE

    @property
    def alive(self) -> bool:
        return self.status == PlayerStatus.ALIVE


class Room(BaseModel):
    id: str = Field(default_factory=lambda: uuid4().hex)
    code: str
    host_id: str
    status: RoomStatus = RoomStatus.OPEN
    genre: GameGenre = GameGenre.FANTASY
    mode: GameMode = GameMode.FREE_TEXT
    is_public: bool = False
    created_at: float = Field(default_factory=time.time)


class StorySegment(BaseModel):
    """Une paire (entrée joueur, narration). Entrée vide pour une narration système."""
    id: str = Field(default_factory=lambda: uuid4().hex)
    room_id: str
    player_id: Optional[str] = None
    player_input: str = ""
    narration_text: str
    # options numérotées (mode multiple_choice), hors du texte affiché
    choices: List[str] = Field(default_factory=list)
    created_at: float = Field(default_factory=time.time)

"""
Module routes/game.py
Rôle :
- Endpoints de jeu : soumettre l'action du joueur courant, lire l'histoire,
  télécharger le transcript.

Notes :
- Ordre de validation d'une action : partie active, joueur connu, tour du
  joueur, entrée non vide. Chaque échec a son code d'erreur, sans changement d'état.
- En mode multiple_choice, `choices` porte les options extraites de la narration.
"""
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from oarigin.deps.auth import player_required
from oarigin.routes.rooms import controller_or_404, raise_http
from oarigin.services.errors import GameError

router = APIRouter(prefix="/rooms", tags=["game"])


class ActionPayload(BaseModel):
    text: str = Field(default="", max_length=2000)


@router.post("/{room_id}/actions")
async def submit_action(
    room_id: str,
    payload: ActionPayload,
    player: Dict[str, Any] = Depends(player_required),
):
    """Narre l'action de l'appelant et fait avancer le tour."""
    controller = controller_or_404(room_id)
    try:
        outcome = await controller.submit_input(player["player_id"], payload.text)
    except GameError as exc:
        raise_http(exc)
    return {
        "segment": outcome.segment.model_dump(mode="json"),
        "degraded": outcome.degraded,
        "player_died": outcome.player_died,
        "game_ended": outcome.game_ended,
        "progress_delta": outcome.progress_delta,
        "next_player_id": outcome.next_player_id,
        "choices": outcome.choices,
        "state": controller.snapshot(),
    }


@router.get("/{room_id}/story")
async def get_story(room_id: str, player: Dict[str, Any] = Depends(player_required)):
    controller = controller_or_404(room_id)
    segments = [s.model_dump(mode="json") for s in controller.state.story.segments]
    return {"room_id": room_id, "count": len(segments), "segments": segments}


@router.get("/{room_id}/transcript", response_class=PlainTextResponse)
async def download_transcript(room_id: str, player: Dict[str, Any] = Depends(player_required)):
    """Transcript façon Markdown, servi en pièce jointe."""
    controller = controller_or_404(room_id)
    filename = f"oarigin-adventure-{controller.state.room.code}.txt"
    return PlainTextResponse(
        controller.state.story.export_transcript(),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )

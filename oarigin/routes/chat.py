"""
Module routes/chat.py
Rôle :
- Chat de room: un message est journalisé dans les événements de la room et
  diffusé sur son canal. Seuls les membres du roster peuvent parler.
"""
from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from oarigin.deps.auth import player_required
from oarigin.models.event import RoomEvent
from oarigin.routes.rooms import controller_or_404
from oarigin.services.errors import PlayerNotFoundError
from oarigin.services.ws_manager import WS

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rooms", tags=["chat"])


class ChatPayload(BaseModel):
    message: str = Field(min_length=1, max_length=500)


@router.post("/{room_id}/chat")
async def post_chat(room_id: str, payload: ChatPayload, player: Dict[str, Any] = Depends(player_required)):
    controller = controller_or_404(room_id)
    state = controller.state
    if state.membership.get(player["player_id"]) is None:
        raise HTTPException(status_code=403, detail=PlayerNotFoundError.code)
    text = payload.message.strip()
    if not text:
        raise HTTPException(status_code=422, detail="empty_message")
    entry = state.log_event(
        "chat",
        {"player_id": player["player_id"], "username": player["username"], "message": text},
    )
    delivered = await WS.publish(RoomEvent(type="chat", room_id=room_id, payload=entry["payload"]))
    logger.debug("Chat message", extra={"room_id": room_id, "delivered": delivered})
    return {"ok": True, "delivered": delivered}


@router.get("/{room_id}/chat")
async def list_chat(room_id: str, player: Dict[str, Any] = Depends(player_required)):
    controller = controller_or_404(room_id)
    messages = [e["payload"] for e in controller.state.events if e.get("kind") == "chat"]
    return {"room_id": room_id, "messages": messages}

# oarigin/routes/websocket.py
"""
Endpoint WebSocket d'une room.

- /ws/rooms/{room_id}?token=... : canal temps réel d'une room.
  * le jeton résout le profil invité (fermeture "policy violation" sinon),
  * la connexion vaut signal de présence : un nouveau venu entre dans le
    roster, un joueur connu redevient actif,
  * la dernière socket d'un joueur qui se ferme le marque inactif (il reste
    dans le roster ; quitter est un appel REST explicite),
  * `{"type": "ping"}` -> `{"type": "pong"}`, les autres messages sont acquittés.
"""
from __future__ import annotations

import json
import logging
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from oarigin.services import room_store
from oarigin.services.errors import GameError
from oarigin.services.profiles import PROFILES
from oarigin.services.ws_manager import WS

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws/rooms/{room_id}")
async def room_socket(ws: WebSocket, room_id: str, token: Optional[str] = Query(default=None)):
    profile = PROFILES.by_token(token)
    if profile is None:
        await ws.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    try:
        controller = room_store.get_controller(room_id)
    except GameError:
        await ws.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    player_id = profile["player_id"]
    await WS.connect(ws, room_id, player_id)
    try:
        if controller.state.membership.get(player_id) is None:
            await controller.join(player_id, profile["username"])
        else:
            await controller.set_presence(player_id, True)
    except GameError as exc:
        await WS.send_json(ws, {"type": "error", "room_id": room_id, "payload": {"code": exc.code}})
        await WS.disconnect(ws)
        return

    await WS.send_json(ws, {"type": "room_state", "room_id": room_id, "payload": controller.snapshot()})
    try:
        while True:
            raw = await ws.receive_text()
            try:
                msg = json.loads(raw)
            except ValueError:
                # pas du JSON : ignoré
                continue
            mtype = msg.get("type") if isinstance(msg, dict) else None
            if mtype == "ping":
                await WS.send_json(ws, {"type": "pong"})
            else:
                await WS.send_json(ws, {"type": "ack", "received": mtype})
    except WebSocketDisconnect:
        pass
    finally:
        await WS.disconnect(ws)
        if not WS.is_connected(room_id, player_id):
            await controller.set_presence(player_id, False)
        logger.debug("Room socket closed", extra={"room_id": room_id, "player_id": player_id})

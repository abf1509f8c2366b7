# oarigin/services/ws_manager.py
"""
Service: ws_manager.py
- Canaux de room : room_id -> player_id -> sockets, plus socket -> (room, joueur).
- Un joueur peut tenir plusieurs sockets (onglets) ; sa présence s'arrête avec la dernière.
- Snapshots immuables avant envoi, le registre peut changer entre-temps.
- `publish(event)` est le publisher par défaut des contrôleurs de session.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from threading import RLock
from typing import Any, Dict, Optional, Set, Tuple

from starlette.websockets import WebSocket

from oarigin.models.event import RoomEvent

logger = logging.getLogger(__name__)


@dataclass
class WSManager:
    _lock: RLock = field(default_factory=RLock, init=False, repr=False)
    # room_id -> player_id -> set(WebSocket)
    rooms: Dict[str, Dict[str, Set[WebSocket]]] = field(default_factory=dict)
    # index inverse : socket -> (room_id, player_id)
    ws_to_member: Dict[WebSocket, Tuple[str, str]] = field(default_factory=dict)

    async def connect(self, ws: WebSocket, room_id: str, player_id: str) -> None:
        """Accepte la socket et l'abonne au canal de la room."""
        await ws.accept()
        self.subscribe(ws, room_id, player_id)

    def subscribe(self, ws: WebSocket, room_id: str, player_id: str) -> None:
        with self._lock:
            self._unlink(ws)
            self.rooms.setdefault(room_id, {}).setdefault(player_id, set()).add(ws)
            self.ws_to_member[ws] = (room_id, player_id)

    def _unlink(self, ws: WebSocket) -> Optional[Tuple[str, str]]:
        with self._lock:
            member = self.ws_to_member.pop(ws, None)
            if member is None:
                return None
            room_id, player_id = member
            players = self.rooms.get(room_id, {})
            bucket = players.get(player_id)
            if bucket is not None:
                bucket.discard(ws)
                if not bucket:
                    players.pop(player_id, None)
            if not players:
                self.rooms.pop(room_id, None)
            return member

    async def disconnect(self, ws: WebSocket) -> Optional[Tuple[str, str]]:
        """Désabonne et ferme. Renvoie le (room, joueur) que tenait la socket."""
        member = self._unlink(ws)
        try:
            await ws.close()
        except RuntimeError:
            # déjà fermée par le pair
            pass
        return member

    def is_connected(self, room_id: str, player_id: str) -> bool:
        with self._lock:
            return bool(self.rooms.get(room_id, {}).get(player_id))

    def _snapshot_room(self, room_id: str) -> list[WebSocket]:
        with self._lock:
            result: list[WebSocket] = []
            for bucket in self.rooms.get(room_id, {}).values():
                result.extend(list(bucket))
            return result

    async def _send_json_one(self, ws: WebSocket, payload: Any) -> bool:
        """Envoi vers une socket ; une socket morte est détachée et False renvoyé."""
        try:
            data = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
            await ws.send_text(data)
            return True
        except Exception:
            logger.debug("Dropping dead websocket", exc_info=True)
            self._unlink(ws)
            return False

    async def send_json(self, ws: WebSocket, payload: Any) -> bool:
        return await self._send_json_one(ws, payload)

    async def broadcast_room(self, room_id: str, payload: Any) -> int:
        conns = self._snapshot_room(room_id)
        success = 0
        for ws in conns:
            if await self._send_json_one(ws, payload):
                success += 1
        return success

    async def publish(self, event: RoomEvent) -> int:
        return await self.broadcast_room(event.room_id, event.model_dump(mode="json"))

    async def close_room(self, room_id: str) -> int:
        """Ferme toutes les sockets d'une room (room supprimée)."""
        conns = self._snapshot_room(room_id)
        for ws in conns:
            await self.disconnect(ws)
        return len(conns)

    def stats(self) -> dict:
        with self._lock:
            per_room = {rid: sum(len(b) for b in players.values()) for rid, players in self.rooms.items()}
            return {"rooms": per_room, "sockets_total": sum(per_room.values())}


WS = WSManager()


async def publish(event: RoomEvent) -> int:
    return await WS.publish(event)

"""
Service: room_state.py
Rôle :
- Porter tout l'état d'une room (fiche, roster, machine de tours, journal
  d'histoire, progression, sessions de présence, bail de génération) et le persister.

Stockage (par room) :
- `rooms/<room_id>/room.json`      fiche de room, état des tours, progression, sessions, bail
- `rooms/<room_id>/players.json`   roster ordonné + file de présentation + statuts des partis
- `rooms/<room_id>/story.ndjson`   segments d'histoire (append-only)
- `rooms/<room_id>/events.ndjson`  journal d'audit (borné)

Les mutations passent par les services (machine de tours, membership, contrôleur) ;
routes et couche websocket ne lisent que `snapshot()`.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from threading import RLock
from typing import Any, Dict, List, Optional
from uuid import uuid4

from oarigin.config.settings import settings
from oarigin.models.room import GameProgress, Room, StorySegment
from oarigin.services.io_utils import append_ndjson, read_json, read_ndjson, write_json, write_ndjson
from oarigin.services.membership import MembershipSynchronizer
from oarigin.services.story_log import StoryLog
from oarigin.services.turn_machine import TurnMachine

ROOM_FILENAME = "room.json"
PLAYERS_FILENAME = "players.json"
STORY_FILENAME = "story.ndjson"
EVENTS_FILENAME = "events.ndjson"


def rooms_dir() -> Path:
    return Path(settings.DATA_DIR) / "rooms"


def room_dir(room_id: str) -> Path:
    return rooms_dir() / room_id


@dataclass
class RoomState:
    room: Room
    _lock: RLock = field(default_factory=RLock, init=False, repr=False)
    membership: MembershipSynchronizer = field(default_factory=MembershipSynchronizer)
    turns: TurnMachine = field(init=False)
    story: StoryLog = field(default_factory=StoryLog)
    progress: GameProgress = field(default_factory=dict)
    # player_id -> {"username", "active", "updated_at"}
    sessions: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    lease: Optional[Dict[str, Any]] = None
    events: List[Dict[str, Any]] = field(default_factory=list)

    def __post_init__(self) -> None:
        # même objet liste : la machine de tours voit les nouveaux venus aussitôt
        self.turns = TurnMachine(roster=self.membership.roster)

    @property
    def room_id(self) -> str:
        return self.room.id

    # -----------------------------
    # Chemins
    # -----------------------------
    def _dir(self) -> Path:
        base = room_dir(self.room_id)
        base.mkdir(parents=True, exist_ok=True)
        return base

    # -----------------------------
    # Chargement / sauvegarde
    # -----------------------------
    @classmethod
    def load(cls, room_id: str) -> Optional["RoomState"]:
        """Reconstruit une room depuis le disque, None si elle n'existe pas."""
        base = room_dir(room_id)
        data = read_json(base / ROOM_FILENAME)
        if not data:
            return None
        state = cls(room=Room.model_validate(data["room"]))
        state.membership.load_dict(read_json(base / PLAYERS_FILENAME))
        state.turns.load_dict(data.get("turn"))
        state.progress = dict(data.get("progress") or {})
        state.sessions = dict(data.get("sessions") or {})
        state.lease = data.get("lease")
        segments = [StorySegment.model_validate(s) for s in read_ndjson(base / STORY_FILENAME)]
        state.story = StoryLog.from_segments(segments)
        state.events = read_ndjson(base / EVENTS_FILENAME)
        return state

    def save(self) -> None:
        """Persiste la fiche de room et le roster (histoire/événements sont des journaux)."""
        with self._lock:
            base = self._dir()
            write_json(
                base / ROOM_FILENAME,
                {
                    "room": self.room.model_dump(mode="json"),
                    "turn": self.turns.to_dict(),
                    "progress": self.progress,
                    "sessions": self.sessions,
                    "lease": self.lease,
                },
            )
            write_json(base / PLAYERS_FILENAME, self.membership.to_dict())

    # -----------------------------
    # Histoire
    # -----------------------------
    def append_segment(self, segment: StorySegment) -> StorySegment:
        with self._lock:
            stored = self.story.append(segment)
            append_ndjson(self._dir() / STORY_FILENAME, stored.model_dump(mode="json"))
            return stored

    # -----------------------------
    # Sessions de présence
    # -----------------------------
    def set_session(self, player_id: str, username: str, active: bool) -> bool:
        """Enregistre l'état d'une session ; True si quelque chose a changé."""
        with self._lock:
            current = self.sessions.get(player_id)
            if current and current.get("active") == active and current.get("username") == username:
                return False
            self.sessions[player_id] = {"username": username, "active": active, "updated_at": time.time()}
            return True

    def drop_session(self, player_id: str) -> None:
        with self._lock:
            self.sessions.pop(player_id, None)

    def presence_snapshot(self) -> List[Dict[str, str]]:
        """Joueurs ayant une session active, par ordre de première apparition."""
        with self._lock:
            return [
                {"id": pid, "username": s.get("username", "")}
                for pid, s in self.sessions.items()
                if s.get("active")
            ]

    # -----------------------------
    # Bail de génération
    # -----------------------------
    def acquire_lease(self, ttl_s: float, now: Optional[float] = None) -> Optional[str]:
        """Prend le bail de génération de la room. Renvoie un jeton, None s'il est déjà pris."""
        now = time.time() if now is None else now
        with self._lock:
            # un autre process partageant DATA_DIR peut la détenir
            stored = read_json(room_dir(self.room_id) / ROOM_FILENAME) or {}
            lease = stored.get("lease") or self.lease
            if lease and float(lease.get("expires_at", 0)) > now:
                return None
            token = uuid4().hex
            self.lease = {"token": token, "expires_at": now + ttl_s}
            self.save()
            return token

    def release_lease(self, token: str) -> None:
        with self._lock:
            if self.lease and self.lease.get("token") == token:
                self.lease = None
                self.save()

    # -----------------------------
    # Journal d'audit
    # -----------------------------
    def log_event(self, kind: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            entry = {"id": str(uuid4()), "kind": kind, "payload": payload, "ts": time.time()}
            self.events.append(entry)
            overflow = len(self.events) - settings.MAX_AUDIT_EVENTS
            if overflow > 0:
                del self.events[:overflow]
                write_ndjson(self._dir() / EVENTS_FILENAME, self.events)
            else:
                append_ndjson(self._dir() / EVENTS_FILENAME, entry)
            return entry

    # -----------------------------
    # Vues
    # -----------------------------
    def snapshot(self) -> Dict[str, Any]:
        """Vue publique diffusée sur le canal de la room."""
        with self._lock:
            current = self.turns.current_player()
            return {
                "room": self.room.model_dump(mode="json"),
                "phase": self.turns.phase.value,
                "players": [p.model_dump(mode="json") for p in self.membership.roster],
                "current_player_id": current.id if current else None,
                "current_player_index": self.turns.index,
                "dead_players": list(self.turns.dead_players),
                "new_players": [p.username for p in self.membership.new_players()],
                "progress": dict(self.progress),
                "segments_count": len(self.story),
                "generating": bool(self.lease and float(self.lease.get("expires_at", 0)) > time.time()),
            }

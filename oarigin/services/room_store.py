"""
Registre des rooms
==================

Helpers pour créer les rooms, les retrouver (par id, code d'accès, matchmaking)
et obtenir le `GameSessionController` qui pilote chacune. Les instances sont
gardées en mémoire et chargées depuis `rooms/<room_id>/` à la demande.
"""
from __future__ import annotations

import logging
import random
import shutil
from threading import RLock
from typing import Dict, Iterable, Optional

from oarigin.config.settings import settings
from oarigin.models.room import GameGenre, GameMode, Room, RoomStatus
from oarigin.services.errors import RoomNotFoundError
from oarigin.services.room_state import RoomState, room_dir, rooms_dir
from oarigin.services.session_controller import GameSessionController
from oarigin.services.ws_manager import WS

logger = logging.getLogger(__name__)

_ROOMS: Dict[str, RoomState] = {}
_CONTROLLERS: Dict[str, GameSessionController] = {}
_LOCK = RLock()


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()


def _disk_room_ids() -> Iterable[str]:
    base = rooms_dir()
    if not base.exists():
        return []
    return (path.name for path in base.iterdir() if path.is_dir())


def list_room_ids() -> list[str]:
    """Rooms connues (cache + disque)."""
    with _LOCK:
        ids = set(_ROOMS.keys())
    ids.update(_disk_room_ids())
    return sorted(ids)


def get_room_state(room_id: str) -> RoomState:
    """État de room en cache, chargé depuis le disque si besoin. Lève RoomNotFoundError."""
    rid = (room_id or "").strip()
    with _LOCK:
        state = _ROOMS.get(rid)
        if state is None:
            state = RoomState.load(rid) if rid else None
            if state is None:
                raise RoomNotFoundError()
            _ROOMS[rid] = state
        return state


def get_controller(room_id: str) -> GameSessionController:
    with _LOCK:
        controller = _CONTROLLERS.get(room_id)
        if controller is None:
            controller = GameSessionController(get_room_state(room_id))
            _CONTROLLERS[room_id] = controller
        return controller


def _new_code(rng: random.Random | None = None) -> str:
    rng = rng or random.Random()
    taken = set()
    for rid in list_room_ids():
        try:
            taken.add(normalize_code(get_room_state(rid).room.code))
        except RoomNotFoundError:
            continue
    for _ in range(100):
        code = str(rng.randint(1000, 9999))
        if code not in taken:
            return code
    raise RuntimeError("No free room code")


def create_room(
    host_id: str,
    host_username: str,
    *,
    genre: GameGenre = GameGenre.FANTASY,
    mode: GameMode = GameMode.FREE_TEXT,
    is_public: bool = False,
) -> RoomState:
    """Crée une room ouverte avec l'hôte comme premier joueur, puis la persiste."""
    with _LOCK:
        room = Room(code=_new_code(), host_id=host_id, genre=genre, mode=mode, is_public=is_public)
        state = RoomState(room=room)
        state.membership.add(host_id, host_username)
        # la narration d'ouverture présente tout le groupe
        state.membership.clear_new_players()
        state.set_session(host_id, host_username, True)
        state.save()
        state.log_event("room_created", {"host_id": host_id, "code": room.code})
        _ROOMS[room.id] = state
        _CONTROLLERS.pop(room.id, None)
    logger.info("Room created", extra={"room_id": room.id, "code": room.code})
    return state


def find_room_id_by_code(code: str | None) -> Optional[str]:
    """Id de la room correspondant à un code (espaces retirés, insensible à la casse)."""
    target = normalize_code(code)
    if not target:
        return None
    for rid in list_room_ids():
        try:
            state = get_room_state(rid)
        except RoomNotFoundError:
            continue
        if normalize_code(state.room.code) == target:
            return rid
    return None


def find_open_public_room(player_id: str | None = None) -> Optional[str]:
    """Matchmaking : une room publique ouverte où le joueur siège déjà, ou avec une place libre."""
    for rid in list_room_ids():
        try:
            state = get_room_state(rid)
        except RoomNotFoundError:
            continue
        room = state.room
        if not room.is_public or room.status != RoomStatus.OPEN:
            continue
        if player_id and state.membership.get(player_id) is not None:
            return rid
        if len(state.membership.roster) < settings.PARTY_SIZE_CAP:
            return rid
    return None


async def drop_room(room_id: str, *, delete_files: bool = False) -> None:
    """Oublie une room : annule ses timers, ferme ses sockets, supprime ses fichiers si demandé."""
    with _LOCK:
        _ROOMS.pop(room_id, None)
        controller = _CONTROLLERS.pop(room_id, None)
    if controller is not None:
        await controller.shutdown()
    await WS.close_room(room_id)
    if delete_files:
        shutil.rmtree(room_dir(room_id), ignore_errors=True)


def reset_registry() -> None:
    """Oublie toutes les rooms en cache (tests, admin)."""
    with _LOCK:
        _ROOMS.clear()
        _CONTROLLERS.clear()

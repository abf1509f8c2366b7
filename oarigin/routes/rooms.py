"""
Module routes/rooms.py
Rôle :
- Cycle de vie des rooms : création, arrivée (code ou matchmaking), lecture,
  réglages, démarrage (décompte), départ, fin.

Intégrations :
- room_store : registre des rooms et de leur `GameSessionController`.
- player_required : profil invité de l'appelant (jeton Bearer).
- Les erreurs métier (`GameError`) sont traduites en HTTP par `raise_http`.
"""
from __future__ import annotations

from typing import Any, Dict, NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from oarigin.deps.auth import player_required
from oarigin.models.room import GameGenre, GameMode
from oarigin.services import room_store
from oarigin.services.errors import GameError, RoomNotFoundError

router = APIRouter(prefix="/rooms", tags=["rooms"])


class CreateRoomPayload(BaseModel):
    genre: GameGenre = GameGenre.FANTASY
    mode: GameMode = GameMode.FREE_TEXT
    is_public: bool = False


class JoinByCodePayload(BaseModel):
    code: str = Field(min_length=1, max_length=16)


class MatchmakingPayload(BaseModel):
    genre: GameGenre = GameGenre.FANTASY
    mode: GameMode = GameMode.FREE_TEXT


class SettingsPayload(BaseModel):
    genre: Optional[GameGenre] = None
    mode: Optional[GameMode] = None
    is_public: Optional[bool] = None


class StartPayload(BaseModel):
    countdown_s: Optional[int] = Field(default=None, ge=0, le=60)


def raise_http(exc: GameError) -> NoReturn:
    """GameError -> HTTPException (statut de la classe d'erreur, code en detail)."""
    raise HTTPException(status_code=exc.status_code, detail=exc.code) from exc


def controller_or_404(room_id: str):
    try:
        return room_store.get_controller(room_id)
    except RoomNotFoundError as exc:
        raise_http(exc)


@router.post("")
async def create_room(payload: CreateRoomPayload, player: Dict[str, Any] = Depends(player_required)):
    """Crée une room ouverte ; l'appelant en devient l'hôte et le premier joueur."""
    state = room_store.create_room(
        player["player_id"],
        player["username"],
        genre=payload.genre,
        mode=payload.mode,
        is_public=payload.is_public,
    )
    return room_store.get_controller(state.room_id).snapshot()


@router.post("/join")
async def join_by_code(payload: JoinByCodePayload, player: Dict[str, Any] = Depends(player_required)):
    """Rejoint avec le code à 4 chiffres partagé par l'hôte."""
    room_id = room_store.find_room_id_by_code(payload.code)
    if room_id is None:
        raise HTTPException(status_code=404, detail=RoomNotFoundError.code)
    controller = controller_or_404(room_id)
    try:
        return await controller.join(player["player_id"], player["username"])
    except GameError as exc:
        raise_http(exc)


@router.post("/matchmaking")
async def matchmaking(payload: MatchmakingPayload, player: Dict[str, Any] = Depends(player_required)):
    """Place l'appelant dans une room publique ouverte, ou en ouvre une nouvelle."""
    room_id = room_store.find_open_public_room(player["player_id"])
    if room_id is not None:
        controller = controller_or_404(room_id)
        try:
            return await controller.join(player["player_id"], player["username"])
        except GameError:
            # course perdue pour la dernière place : on ouvre une nouvelle room
            pass
    state = room_store.create_room(
        player["player_id"],
        player["username"],
        genre=payload.genre,
        mode=payload.mode,
        is_public=True,
    )
    return room_store.get_controller(state.room_id).snapshot()


@router.get("/{room_id}")
async def get_room(room_id: str, player: Dict[str, Any] = Depends(player_required)):
    return controller_or_404(room_id).snapshot()


@router.patch("/{room_id}/settings")
async def update_settings(
    room_id: str,
    payload: SettingsPayload,
    player: Dict[str, Any] = Depends(player_required),
):
    """Hôte uniquement, tant que la room est ouverte."""
    controller = controller_or_404(room_id)
    try:
        return await controller.update_settings(
            player["player_id"],
            genre=payload.genre,
            mode=payload.mode,
            is_public=payload.is_public,
        )
    except GameError as exc:
        raise_http(exc)


@router.post("/{room_id}/start")
async def start_room(
    room_id: str,
    payload: StartPayload | None = None,
    player: Dict[str, Any] = Depends(player_required),
):
    """Démarrage par l'hôte : décompte sur le canal de la room, puis scène d'ouverture."""
    controller = controller_or_404(room_id)
    countdown = payload.countdown_s if payload else None
    try:
        return await controller.schedule_start(player["player_id"], countdown)
    except GameError as exc:
        raise_http(exc)


@router.post("/{room_id}/leave")
async def leave_room(room_id: str, player: Dict[str, Any] = Depends(player_required)):
    """Quitte le roster. Le dernier joueur sorti retire la room de la mémoire (fichiers conservés)."""
    controller = controller_or_404(room_id)
    try:
        snapshot = await controller.leave(player["player_id"])
    except GameError as exc:
        raise_http(exc)
    if not controller.state.membership.roster:
        await room_store.drop_room(room_id)
    return snapshot


@router.post("/{room_id}/end")
async def end_room(room_id: str, player: Dict[str, Any] = Depends(player_required)):
    controller = controller_or_404(room_id)
    try:
        return await controller.end_game(player["player_id"])
    except GameError as exc:
        raise_http(exc)

"""
Module routes/players.py
Rôle :
- Inscription invité: un pseudo donne un id joueur et un jeton Bearer, utilisé
  par tous les autres endpoints et par la socket de room.
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from oarigin.deps.auth import player_required
from oarigin.routes.rooms import raise_http
from oarigin.services.errors import GameError
from oarigin.services.profiles import PROFILES

router = APIRouter(prefix="/players", tags=["players"])


class RegisterPayload(BaseModel):
    username: str = Field(min_length=1, max_length=64)


@router.post("/register")
async def register(payload: RegisterPayload):
    try:
        profile = PROFILES.register(payload.username)
    except GameError as exc:
        raise_http(exc)
    return {"player_id": profile["player_id"], "username": profile["username"], "token": profile["token"]}


@router.get("/me")
async def me(player: dict = Depends(player_required)):
    return {"player_id": player["player_id"], "username": player["username"]}

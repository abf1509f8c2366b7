"""
Dépendance d'authentification joueur
====================================

Objectif
--------
Fournir une dépendance FastAPI `player_required` qui résout le profil invité
de l'appelant à partir d'un en-tête `Authorization: Bearer <token>`.

Comportement & codes
--------------------
- 401 si aucun identifiant n'est envoyé.
- 403 si un jeton Bearer est envoyé mais ne correspond à aucun profil.
- Sinon le dict du profil (`player_id`, `username`).

Notes
-----
- `HTTPBearer(auto_error=False)` pour répondre nous-mêmes 401/403.
- Le preflight CORS (OPTIONS) n'atteint jamais cette dépendance: la garder sur
  les routes, pas sur les routers.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from oarigin.services.profiles import PROFILES

bearer = HTTPBearer(auto_error=False)


def player_required(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
) -> Dict[str, Any]:
    """Profil du joueur courant, sinon 401/403."""
    if credentials is None or (credentials.scheme or "").lower() != "bearer":
        raise HTTPException(status_code=401, detail="authentication_required")
    profile = PROFILES.by_token(credentials.credentials)
    if profile is None:
        raise HTTPException(status_code=403, detail="invalid_token")
    return profile

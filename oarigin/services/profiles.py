"""
Service: profiles.py
Rôle :
- Profils invités (pseudo -> id joueur + jeton Bearer) pour que requêtes et
  sockets portent une identité. Les vrais comptes relèvent du fournisseur d'identité.

Stockage :
- `DATA_DIR/profiles.json` : {player_id: {player_id, username, token, created_at}}
"""
from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field
from pathlib import Path
from threading import RLock
from typing import Any, Dict, Optional
from uuid import uuid4

from oarigin.config.settings import settings
from oarigin.services.errors import InvalidInputError
from .io_utils import read_json, write_json

MAX_USERNAME_LENGTH = 32


def profiles_path() -> Path:
    return Path(settings.DATA_DIR) / "profiles.json"


@dataclass
class ProfileStore:
    _lock: RLock = field(default_factory=RLock, init=False, repr=False)
    profiles: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    _loaded_from: Optional[Path] = field(default=None, init=False, repr=False)

    def _ensure_loaded(self) -> None:
        path = profiles_path()
        if self._loaded_from != path:
            self.profiles = read_json(path) or {}
            self._loaded_from = path

    def register(self, username: str) -> Dict[str, Any]:
        name = " ".join((username or "").split())
        if not name or len(name) > MAX_USERNAME_LENGTH:
            raise InvalidInputError("username must be 1-32 characters")
        with self._lock:
            self._ensure_loaded()
            pid = uuid4().hex
            profile = {
                "player_id": pid,
                "username": name,
                "token": secrets.token_urlsafe(24),
                "created_at": time.time(),
            }
            self.profiles[pid] = profile
            write_json(profiles_path(), self.profiles)
            return profile

    def by_token(self, token: str | None) -> Optional[Dict[str, Any]]:
        if not token:
            return None
        with self._lock:
            self._ensure_loaded()
            for profile in self.profiles.values():
                if secrets.compare_digest(str(profile.get("token", "")), token):
                    return profile
        return None


PROFILES = ProfileStore()

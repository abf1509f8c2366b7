"""
Configuration de l'application (Settings)
=========================================

Rôle
----
- Centralise les paramètres du service (nom, adresse d'écoute, dossier de
  données, backend de narration, réglages de partie).
- Les valeurs par défaut visent un environnement local avec le narrateur
  hors-ligne `stub`.
- Chaque valeur peut être surchargée par l'environnement ou un fichier `.env`.

Intégrations
------------
- `pydantic-settings` charge automatiquement les variables d'environnement et `.env`.
- Services et routers importent `from oarigin.config.settings import settings`.

Exemple `.env`
--------------
APP_NAME="OARigin Backend (Staging)"
LLM_PROVIDER="http"
LLM_ENDPOINT="https://example.supabase.co/functions/v1/gpt-story"
LLM_API_KEY="anon-key"
NARRATION_TIMEOUT_S=20
PARTY_SIZE_CAP=4
DATA_DIR="/var/opt/oarigin/data"
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List
import os


class Settings(BaseSettings):
    # Nom du service (affiché par /health)
    APP_NAME: str = "OARigin Backend"
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # Origines front autorisées par CORS
    ALLOWED_ORIGINS: List[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]

    # Rooms et profils persistés. Par défaut : <repo>/oarigin/data
    DATA_DIR: str = os.path.join(os.path.dirname(os.path.dirname(__file__)), "data")

    # Backend de narration : "http" (POST {prompt} -> {text}), "ollama" ou "stub"
    LLM_PROVIDER: str = "stub"
    LLM_MODEL: str = "gpt-3.5-turbo"
    LLM_ENDPOINT: str = "http://localhost:54321/functions/v1/gpt-story"
    LLM_API_KEY: str = ""

    # Timeout de lecture par tentative et nombre max de tentatives de narration
    NARRATION_TIMEOUT_S: float = 20.0
    NARRATION_MAX_ATTEMPTS: int = 3
    # Backoff exponentiel entre deux tentatives (0.5s, 1s, 2s... plafonné à 4s)
    NARRATION_BACKOFF_S: float = 0.5
    # "tokens" ([PLAYER_DEATH]/[GAME_ENDED]) ou "phrases" (phrases de mort en texte libre)
    DEATH_DETECTION: str = "tokens"

    # Réglages de partie
    STORY_WINDOW: int = 10
    PARTY_SIZE_CAP: int = 4
    AUTOSTART_DELAY_S: float = 1.0
    START_COUNTDOWN_S: int = 5
    GENERATION_LEASE_TTL_S: float = 90.0
    MAX_AUDIT_EVENTS: int = 2000

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()

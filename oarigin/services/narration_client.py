"""
Service: narration_client.py
- Centralise les appels au service externe de narration (génération de texte).
- Construit le prompt à partir du contexte de jeu, lit les signaux de contrôle
  et les retire du texte affiché.

Politique d'échec:
- Chaque tentative est bornée par un timeout de lecture.
- Réessais via `tenacity`: `max_attempts` tentatives, backoff exponentiel,
  uniquement sur `NarrationServiceError` (réseau, timeout, 5xx, JSON invalide).
- Une réponse vide n'est pas réessayée.
- À l'épuisement, une narration de secours (rotation) est renvoyée en
  `NarrationDegraded`: le cycle des tours continue toujours.

Providers (settings.LLM_PROVIDER):
- "http": POST {"prompt": ...} -> {"text": ...} (contrat de l'edge function)
- "ollama": POST /api/generate {"model", "prompt", "stream": false} -> {"response": ...}
- "stub": hors-ligne, aucun réseau (dev/tests)
"""
from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from itertools import count
from threading import Lock
from typing import Any, Callable, Dict, Optional, Sequence, Tuple, Union
from uuid import uuid4

import requests
from tenacity import (
    RetryCallState,
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from oarigin.config.settings import settings
from oarigin.services.prompt_builder import NarrationContext, build_opening_prompt, build_prompt
from oarigin.services.signals import NarrationSignals, SignalClassifier, get_classifier, strip_tokens

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_S = 5.0

FALLBACK_NARRATIONS: Tuple[str, ...] = (
    "The story takes an unexpected turn as ancient magic interferes with the narrative...",
    "A mysterious force temporarily obscures the path forward...",
    "The threads of fate become tangled, making the next chapter unclear...",
    "Time seems to pause as the universe contemplates the next development...",
    "The story's progression is momentarily shrouded in mystical energy...",
)


class NarrationServiceError(RuntimeError):
    """Échec de transport (réseau, timeout, 5xx, JSON invalide)."""


@dataclass(frozen=True)
class NarrationOk:
    text: str
    signals: NarrationSignals
    attempts: int
    degraded = False


@dataclass(frozen=True)
class NarrationDegraded:
    text: str
    signals: NarrationSignals
    attempts: int
    error: str
    degraded = True


NarrationResult = Union[NarrationOk, NarrationDegraded]


class FallbackRotation:
    """Distribue les lignes de secours à tour de rôle (thread-safe)."""

    def __init__(self, lines: Sequence[str] = FALLBACK_NARRATIONS) -> None:
        self.lines = tuple(lines)
        self._counter = count()
        self._lock = Lock()

    def next(self) -> str:
        with self._lock:
            return self.lines[next(self._counter) % len(self.lines)]


class NarrationClient:
    """
    Client HTTP du service de narration.
    - Un POST par tentative, borné par les timeouts (connect, read).
    - Chaque requête porte un identifiant de corrélation dans les logs.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        provider: str = "http",
        model: str = "",
        api_key: str = "",
        timeout_s: float = 20.0,
        max_attempts: int = 3,
        backoff_s: float = 0.5,
        backoff_max_s: float = 4.0,
        wait: Optional[wait_base] = None,
        sleep: Callable[[float], None] = time.sleep,
        session: Optional[requests.Session] = None,
        classifier: Optional[SignalClassifier] = None,
        fallbacks: Optional[FallbackRotation] = None,
    ) -> None:
        self.endpoint = endpoint
        self.provider = provider
        self.model = model
        self.api_key = api_key
        self.timeout: Tuple[float, float] = (CONNECT_TIMEOUT_S, timeout_s)
        self.max_attempts = max(1, int(max_attempts))
        self.wait = wait or wait_exponential(multiplier=backoff_s, max=backoff_max_s)
        self.sleep = sleep
        self.session = session or requests.Session()
        self.classifier = classifier or get_classifier(settings.DEATH_DETECTION)
        self.fallbacks = fallbacks or FallbackRotation()

    # -----------------------------
    # Transport
    # -----------------------------
    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _payload(self, prompt: str) -> Dict[str, Any]:
        if self.provider == "ollama":
            return {"model": self.model, "prompt": prompt, "stream": False}
        return {"prompt": prompt}

    def request(self, prompt: str, *, request_id: str) -> str:
        """Une tentative. Renvoie le texte brut ("" pour une réponse vide)."""
        if self.provider == "stub":
            return f"[stub] The story continues from: {' '.join(prompt.split())[:80]}..."
        try:
            logger.debug("Narration request start", extra={"llm_url": self.endpoint, "llm_request_id": request_id})
            response = self.session.post(
                self.endpoint,
                json=self._payload(prompt),
                headers=self._headers(),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.Timeout as exc:
            logger.warning("Narration request timeout", extra={"llm_url": self.endpoint, "llm_request_id": request_id})
            raise NarrationServiceError("Narration request timed out") from exc
        except requests.RequestException as exc:
            logger.error(
                "Narration request failed",
                exc_info=True,
                extra={"llm_url": self.endpoint, "llm_request_id": request_id},
            )
            raise NarrationServiceError("Narration request failed") from exc

        try:
            data = response.json()
        except (json.JSONDecodeError, ValueError) as exc:
            logger.error("Invalid JSON payload from narration service", extra={"llm_request_id": request_id})
            raise NarrationServiceError("Invalid JSON payload from narration service") from exc
        if not isinstance(data, dict):
            raise NarrationServiceError("Unexpected payload from narration service")
        if data.get("error") and not data.get("text"):
            raise NarrationServiceError(str(data.get("error")))
        text = data.get("text") if self.provider != "ollama" else data.get("response")
        return (text or "").strip()

    # -----------------------------
    # Génération
    # -----------------------------
    def _degraded(self, attempts: int, error: str, request_id: str) -> NarrationDegraded:
        logger.error(
            "Narration degraded to fallback",
            extra={"llm_request_id": request_id, "attempts": attempts, "last_error": error},
        )
        return NarrationDegraded(
            text=self.fallbacks.next(),
            signals=NarrationSignals(),
            attempts=attempts,
            error=error,
        )

    def generate_from_prompt(self, prompt: str) -> NarrationResult:
        request_id = f"narration-{uuid4().hex}"
        attempts = 0

        def _attempt() -> NarrationResult:
            nonlocal attempts
            attempts += 1
            raw = self.request(prompt, request_id=request_id)
            if not raw:
                # le service a répondu: une sortie vide n'est pas réessayée
                return self._degraded(attempts, "empty_response", request_id)
            logger.info(
                "Narration generated",
                extra={"llm_request_id": request_id, "attempt": attempts},
            )
            return NarrationOk(text=strip_tokens(raw), signals=self.classifier.classify(raw), attempts=attempts)

        def _exhausted(state: RetryCallState) -> NarrationDegraded:
            exc = state.outcome.exception() if state.outcome else None
            return self._degraded(state.attempt_number, str(exc) if exc else "unknown", request_id)

        retrying = Retrying(
            retry=retry_if_exception_type(NarrationServiceError),
            stop=stop_after_attempt(self.max_attempts),
            wait=self.wait,
            sleep=self.sleep,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            retry_error_callback=_exhausted,
        )
        return retrying(_attempt)

    def generate(self, context: NarrationContext) -> NarrationResult:
        """Narration de continuation ou d'introduction pour `context`."""
        return self.generate_from_prompt(build_prompt(context))

    def generate_opening(self, context: NarrationContext) -> NarrationResult:
        return self.generate_from_prompt(build_opening_prompt(context))


def build_client() -> NarrationClient:
    return NarrationClient(
        settings.LLM_ENDPOINT,
        provider=settings.LLM_PROVIDER,
        model=settings.LLM_MODEL,
        api_key=settings.LLM_API_KEY,
        timeout_s=settings.NARRATION_TIMEOUT_S,
        max_attempts=settings.NARRATION_MAX_ATTEMPTS,
        backoff_s=settings.NARRATION_BACKOFF_S,
    )


CLIENT = build_client()

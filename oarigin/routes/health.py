"""
Module routes/health.py
Rôle :
- Endpoints de santé (service OK + ping du backend de narration).
"""
import time

import anyio
from fastapi import APIRouter

from oarigin.config.settings import settings
from oarigin.services import narration_client
from oarigin.services.ws_manager import WS

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health():
    """OK minimal avec le nom du service configuré."""
    return {"ok": True, "service": settings.APP_NAME, "sockets": WS.stats()}


@router.get("/narration")
async def health_narration():
    """
    Une requête directe au backend de narration (sans réessai ni secours),
    avec sa latence et un court extrait de la réponse.
    """
    client = narration_client.CLIENT
    t0 = time.perf_counter()
    try:
        text = await anyio.to_thread.run_sync(
            lambda: client.request("Reply with: pong.", request_id="health-check")
        )
        ok, extra = True, {"sample": text[:120]}
    except narration_client.NarrationServiceError as e:
        ok, extra = False, {"error": str(e)}
    return {
        "ok": ok,
        "provider": client.provider,
        "model": client.model,
        "latency_s": round(time.perf_counter() - t0, 3),
        **extra,
    }

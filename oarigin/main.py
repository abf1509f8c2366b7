"""
Application FastAPI - point d'entrée
====================================

Rôle
----
- Instancie l'app FastAPI et configure CORS pour le front.
- Monte tous les routers (REST + WebSocket).
- Logge la config de narration et les routes enregistrées au démarrage.

Notes
-----
- Les imports de routers sont explicites.
- Garder `ALLOWED_ORIGINS` (settings) aligné avec les URLs du front.
- Le middleware CORS doit être ajouté AVANT include_router.
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from oarigin.config.settings import settings
from oarigin.routes.chat import router as chat_router
from oarigin.routes.game import router as game_router
from oarigin.routes.health import router as health_router
from oarigin.routes.players import router as players_router
from oarigin.routes.rooms import router as rooms_router
from oarigin.routes.websocket import router as ws_router

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("oarigin")

app = FastAPI(title=settings.APP_NAME)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],  # Authorization inclus
)

# L'auth reste sur les routes (Depends(player_required)), pas sur les routers,
# pour laisser passer les preflights OPTIONS.
app.include_router(players_router)
app.include_router(rooms_router)
app.include_router(game_router)
app.include_router(chat_router)
app.include_router(ws_router)  # /ws/rooms/{room_id}
app.include_router(health_router)


@app.get("/")
async def root():
    """Ping basique (sans appel au backend de narration)."""
    return {"ok": True, "service": "oarigin-backend"}


@app.on_event("startup")
async def list_routes():
    logger.info(
        "Narration config: provider=%s model=%s endpoint=%s",
        settings.LLM_PROVIDER,
        settings.LLM_MODEL,
        settings.LLM_ENDPOINT,
    )
    for r in app.routes:
        methods = getattr(r, "methods", None)
        logger.info("Route %s %s", getattr(r, "path", "?"), sorted(methods) if methods else "WS")

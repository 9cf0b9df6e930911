import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from config import settings

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    from agents.word_suggester import WordSuggester
    from services.engine import Engine
    from services.store_factory import build_store

    logger.info("Squabbl backend starting up...")
    # Tests install their own engine before startup.
    if getattr(app.state, "engine", None) is None:
        app.state.engine = Engine(
            build_store(settings),
            suggester=WordSuggester(settings.gemini_api_key, settings.word_model),
        )
    yield
    await app.state.engine.close()
    logger.info("Backend shutting down.")


app = FastAPI(
    title="Squabbl",
    version="0.1.0",
    description="Real-time multiplayer party word-guessing game",
    lifespan=lifespan,
)

_origins = list(settings.allowed_origins)
if settings.extra_origin:
    _origins.append(settings.extra_origin)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.get("/health")
async def health_check():
    engine = getattr(app.state, "engine", None)
    return {
        "status": "ok",
        "service": "squabbl",
        "version": "0.1.0",
        "store": engine.store.name if engine else None,
    }


from routers.game_router import router as game_router, register_error_handlers
from routers.ws_router import router as ws_router

register_error_handlers(app)
app.include_router(game_router, prefix="/api")
app.include_router(ws_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.debug)

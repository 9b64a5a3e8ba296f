"""
HTTP API adapter for the image arena.

Architectural role:
- Expose generation, pair retrieval, voting and statistics over JSON.
- Enforce adapter-level input validation.
- Delegate all work to `arena.core.engine.ArenaEngine`, stored on `app.state`.

Endpoint responsibilities (prefix `/api/v1`):
- `POST /generate`: generate a pair through the provider fallback loop.
- `GET /images/pair`: random pair not excluded and not yet seen by the session.
- `POST /images/rate`: record a vote for one side of a pair.
- `GET /statistics`, `GET /leaderboard`, `GET /votes/recent`: vote aggregates.
- `GET /images/winners`: pairs whose given side won, most votes first.
- `GET /status`: per-provider status, optionally after a quota refresh.
- `GET /health`: healthy / degraded / unhealthy.

Error handling strategy:
- `ArenaError` subclasses are rendered by `responses.arena_error_response`
  into the `{error, code, details}` envelope.
- Request body validation failures return HTTP 400 in the same envelope.
- Unexpected exceptions follow FastAPI default handling.

Threading:
- Endpoints are plain `def` so FastAPI runs them in its worker thread pool;
  each request blocks on vendor HTTP and Redis in its own thread.

Lifecycle:
- `create_app(engine)` uses the given engine; without one the lifespan hook
  builds it from configuration at startup, and starts the auto-generator
  when `AUTO_GENERATE_ENABLED` is set.
- `app.state.shutdown_event` is set when the lifespan exits; in-flight
  generations receive it as their cancellation signal.
"""

import logging
import threading
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from arena import __version__, config
from arena.api.responses import arena_error_response, error_response
from arena.core.autogen import AutoGenerator
from arena.core.engine import UNHEALTHY, ArenaEngine, build_engine
from arena.core.errors import ArenaError


logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


# ============================================================
# Request Schemas
# ============================================================

class GenerateRequest(BaseModel):
    prompt: str | None = None
    count: int | None = None


class RateRequest(BaseModel):
    pair_id: str = ""
    winner: str = ""


# ============================================================
# Dependencies
# ============================================================

def get_engine(request: Request) -> ArenaEngine:
    return request.app.state.engine


def get_shutdown_event(request: Request) -> threading.Event:
    return request.app.state.shutdown_event


router = APIRouter(prefix=API_PREFIX)


# ============================================================
# Generation
# ============================================================

@router.post("/generate")
def generate(
    body: GenerateRequest,
    engine: ArenaEngine = Depends(get_engine),
    shutdown_event: threading.Event = Depends(get_shutdown_event),
):
    """
    Generate two images for a prompt and store them as a pair.

    Errors:
    - 400 `MISSING_PROMPT` when the prompt is missing or blank.
    - 503 `NO_PROVIDERS` when nothing is available.
    - 502 `GENERATION_FAILED` with the last provider error on exhaustion.
    - 503 `GENERATION_CANCELLED` when the server shuts down mid-request.
    """
    result, pair = engine.generate_pair(body.prompt or "", body.count, cancel_event=shutdown_event)
    images = [image.to_dict() for image in result.images]

    return {
        "pair_id": pair.pair_id if pair else None,
        "prompt": pair.prompt if pair else (body.prompt or "").strip(),
        "provider": result.provider,
        "left_url": images[0]["storage_location"] if images else None,
        "right_url": images[1]["storage_location"] if len(images) > 1 else None,
        "images": images,
        "request_id": result.request_id,
        "duration_ms": int(result.duration * 1000),
        "metadata": result.metadata,
    }


# ============================================================
# Pairs and Votes
# ============================================================

@router.get("/images/pair")
def get_pair(exclude: str = "", session_id: str | None = None, engine: ArenaEngine = Depends(get_engine)):
    """Random pair, skipping comma-separated `exclude` ids and the session's viewed pairs."""
    excluded = [pair_id.strip() for pair_id in exclude.split(",") if pair_id.strip()]
    pair = engine.next_pair(excluded, session_id)
    return pair.to_dict()


@router.post("/images/rate")
def rate_pair(body: RateRequest, engine: ArenaEngine = Depends(get_engine)):
    vote = engine.submit_rating(body.pair_id, body.winner)
    return {
        "success": True,
        "pair_id": vote.pair_id,
        "winner": vote.winner,
        "provider": vote.provider,
        "timestamp": vote.cast_at.isoformat(),
    }


@router.get("/images/winners")
def winning_pairs(side: str = "left", engine: ArenaEngine = Depends(get_engine)):
    winners = engine.winning_pairs(side)
    return {
        "side": side,
        "count": len(winners),
        "pairs": [{**pair.to_dict(), "vote_count": vote_count} for pair, vote_count in winners],
    }


@router.get("/statistics")
def statistics(engine: ArenaEngine = Depends(get_engine)):
    return engine.statistics()


@router.get("/leaderboard")
def leaderboard(engine: ArenaEngine = Depends(get_engine)):
    return {"providers": [stats.to_dict() for stats in engine.leaderboard()]}


@router.get("/votes/recent")
def recent_votes(limit: int = 50, engine: ArenaEngine = Depends(get_engine)):
    return {"votes": [vote.to_dict() for vote in engine.recent_votes(limit)]}


# ============================================================
# Status
# ============================================================

@router.get("/status")
def provider_status(refresh_quota: bool = False, engine: ArenaEngine = Depends(get_engine)):
    return {"providers": engine.provider_status(refresh_quota=refresh_quota)}


@router.get("/health")
def health(engine: ArenaEngine = Depends(get_engine)):
    report = engine.health()
    content = {**report.to_dict(), "version": __version__}
    if report.status == UNHEALTHY:
        return error_response(503, "Service unhealthy", "UNHEALTHY", content)
    return content


# ============================================================
# Application Factory
# ============================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.shutdown_event.clear()
    if app.state.engine is None:
        app.state.engine = build_engine()

    engine = app.state.engine
    generator = None
    if config.AUTO_GENERATE_ENABLED:
        if engine.generation_lock is None:
            logger.warning("Auto-generation enabled but no store is configured; not starting")
        else:
            generator = AutoGenerator(engine, engine.generation_lock)
            generator.start()

    yield

    app.state.shutdown_event.set()
    if generator is not None:
        generator.stop()


def create_app(engine: ArenaEngine | None = None) -> FastAPI:
    """Build the FastAPI application around `engine` (built at startup if None)."""
    app = FastAPI(title="Image Arena", version=__version__, lifespan=lifespan)
    app.state.engine = engine
    app.state.shutdown_event = threading.Event()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.exception_handler(ArenaError)
    async def handle_arena_error(request: Request, exc: ArenaError):
        logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc)
        return arena_error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        return error_response(400, "Invalid request body", "INVALID_REQUEST", {"validation_error": str(exc.errors())})

    app.include_router(router)

    if not config.USE_DO_SPACES:
        # Local image storage is served by this process.
        app.mount(config.IMAGES_BASE_URL, StaticFiles(directory=config.IMAGES_DIR, check_dir=False), name="images")

    return app


app = create_app()

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.settings import get_settings
from services.quiz_engine.attempts import AttemptStore, DuplicateTestError
from services.quiz_engine.loader import BlueprintValidationError, load_blueprint_from_file
from src.cache.connection import close_redis
from src.core.logging_config import setup_logging
from src.middleware.rate_limit import RateLimitingMiddleware
from src.routers import quiz as quiz_router

settings = get_settings()

# Configure logging VERY early
setup_logging(settings.log_level)
logger = logging.getLogger(__name__)


def seed_default_test(store: AttemptStore, path: Optional[Path] = None) -> None:
    """Registers the bundled blueprint so a fresh instance has a quiz to serve."""
    path = path or Path(settings.blueprint_dir) / settings.seed_blueprint_path
    if not path.is_absolute():
        path = Path(__file__).resolve().parent / path
    if not path.is_file():
        logger.warning(f"Seed blueprint not found at {path}, starting without tests")
        return
    try:
        blueprint = load_blueprint_from_file(path)
        record = store.create_test(title=blueprint.title, blueprint=blueprint, slug=settings.seed_test_slug)
        logger.info(f"Seeded test '{record.slug}' ({record.id})")
    except DuplicateTestError:
        logger.info(f"Seed test '{settings.seed_test_slug}' already registered")
    except BlueprintValidationError as e:
        logger.error(f"Seed blueprint {path} is invalid: {e.errors}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    seed_default_test(quiz_router.get_attempt_store())
    yield
    if settings.rate_limit_backend == "redis":
        await close_redis()


app = FastAPI(title="Personality Quiz Scoring Service", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
if settings.rate_limit_enabled:
    app.add_middleware(RateLimitingMiddleware)

# --- Include Routers ---
app.include_router(quiz_router.router, prefix="/api/v1", tags=["quiz"])


@app.get("/", tags=["Health Check"])
async def read_root():
    """
    Root endpoint for basic health check.
    """
    return {"status": "ok", "message": "Personality Quiz Scoring Service is running."}


@app.get("/health", tags=["Health Check"])
async def health():
    store = quiz_router.get_attempt_store()
    return {"status": "ok", "tests": len(store.list_tests())}


if __name__ == "__main__":
    import uvicorn
    # Better to run with `uvicorn main:app --reload` from the project root directory
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)

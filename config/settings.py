import os
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file if it exists, for local development.
# In production, environment variables should be set directly.
if os.path.exists(".env"):
    from dotenv import load_dotenv
    load_dotenv()


class QuizSettings(BaseSettings):
    log_level: str = "INFO"

    # Blueprints
    blueprint_dir: str = "assets"
    seed_blueprint_path: str = "big_five_blueprint.yml"  # relative to blueprint_dir
    seed_test_slug: str = "big-five"

    # In-memory attempt store
    max_stored_attempts: int = 100_000

    # Rate limiting
    rate_limit_enabled: bool = True
    rate_limit_backend: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://localhost:6379/0"
    rate_limit_attempt_start: int = 10
    rate_limit_quiz: int = 100
    rate_limit_admin: int = 60
    rate_limit_window_seconds: int = 60

    model_config = SettingsConfigDict(env_prefix="QUIZ_")


@lru_cache
def get_settings() -> QuizSettings:
    return QuizSettings()

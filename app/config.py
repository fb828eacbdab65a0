import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()

DEFAULT_CORS_ORIGINS = (
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:8080",
)


@dataclass(frozen=True)
class Settings:
    mongo_url: str
    mongo_db: str
    openai_api_key: str
    openai_model: str
    tz: str
    cors_origins: tuple[str, ...]
    content_cache_ttl_seconds: float = 300.0
    content_cache_sweep_seconds: float = 600.0
    content_cache_max_age_seconds: float = 300.0
    question_batch_size: int = 10
    prior_topics_seed: int = 5
    prior_topics_limit: int = 50
    log_level: str = "INFO"
    log_format: str = "json"


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"Env var {name} must be a number, got {raw!r}") from exc


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"Env var {name} must be an integer, got {raw!r}") from exc


def _env_origins() -> tuple[str, ...]:
    raw = (os.getenv("CORS_ORIGINS") or "").strip()
    if not raw:
        return DEFAULT_CORS_ORIGINS
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    tz = (os.getenv("TZ") or "UTC").strip() or "UTC"
    return Settings(
        mongo_url=(os.getenv("MONGO_URL") or "").strip(),
        mongo_db=(os.getenv("MONGO_DB") or "").strip(),
        openai_api_key=(os.getenv("OPENAI_API_KEY") or "").strip(),
        openai_model=(os.getenv("OPENAI_MODEL") or "gpt-4.1-mini").strip(),
        tz=tz,
        cors_origins=_env_origins(),
        content_cache_ttl_seconds=_env_float("CONTENT_CACHE_TTL_SECONDS", 300.0),
        content_cache_sweep_seconds=_env_float("CONTENT_CACHE_SWEEP_SECONDS", 600.0),
        content_cache_max_age_seconds=_env_float("CONTENT_CACHE_MAX_AGE_SECONDS", 300.0),
        question_batch_size=_env_int("QUESTION_BATCH_SIZE", 10),
        prior_topics_seed=_env_int("PRIOR_TOPICS_SEED", 5),
        prior_topics_limit=_env_int("PRIOR_TOPICS_LIMIT", 50),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper(),
        log_format=(os.getenv("LOG_FORMAT") or "json").strip().lower(),
    )


def validate_mongo_settings(settings: Settings | None = None) -> Settings:
    cfg = settings or get_settings()
    if not cfg.mongo_url or not cfg.mongo_db:
        raise RuntimeError(
            "Missing required env vars: MONGO_URL and MONGO_DB. "
            "Copy .env.example to .env and set both values before starting the app."
        )
    return cfg

import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import get_settings, validate_mongo_settings
from app.db import create_indexes, get_db, ping_db
from app.errors import ConflictError, GenerationError, NotFoundError, ValidationError
from app.routes.generate import router as generate_router
from app.routes.practice import router as practice_router
from app.routes.review import router as review_router
from app.routes.stats import router as stats_router
from app.services.coordinator import ContentCache, GenerationCoordinator
from app.services.question_generator import get_question_generator
from app.services.question_session import QuestionSessionService
from app.utils.log import configure_logging, reset_request_context, set_request_context

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    settings = get_settings()
    try:
        validate_mongo_settings(settings)
        await ping_db()
        await create_indexes()
    except RuntimeError:
        raise
    except Exception as exc:
        raise RuntimeError(
            "Failed to start backend. Check MongoDB connection and env values (MONGO_URL, MONGO_DB)."
        ) from exc

    coordinator = GenerationCoordinator(
        ContentCache(
            ttl=settings.content_cache_ttl_seconds,
            max_age=settings.content_cache_max_age_seconds,
        )
    )
    generator = get_question_generator()
    app.state.coordinator = coordinator
    app.state.generator = generator
    app.state.question_sessions = QuestionSessionService(get_db().question_sessions, generator, settings)
    coordinator.start_sweeper(settings.content_cache_sweep_seconds)
    logger.info("startup_complete", extra={"generator": generator.provider_name})
    try:
        yield
    finally:
        await coordinator.stop_sweeper()


app = FastAPI(title="StudyMaster Backend", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(get_settings().cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_logging(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    token = set_request_context(request_id, request.headers.get("X-User-Id"))
    start = time.perf_counter()
    try:
        response = await call_next(request)
        duration_ms = round((time.perf_counter() - start) * 1000, 1)
        logger.info(
            "http_request",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        response.headers["X-Request-ID"] = request_id
        return response
    finally:
        reset_request_context(token)


@app.exception_handler(ValidationError)
async def _validation_error(_: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def _not_found(_: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ConflictError)
async def _conflict(_: Request, exc: ConflictError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(GenerationError)
async def _generation_failed(_: Request, exc: GenerationError):
    logger.warning("generation_failed", extra={"error": str(exc)})
    return JSONResponse(status_code=502, content={"detail": f"Content generation failed: {exc}"})


app.include_router(generate_router)
app.include_router(review_router)
app.include_router(practice_router)
app.include_router(stats_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}

import contextvars
import logging
import sys

from pythonjsonlogger import jsonlogger

from app.config import get_settings

_request_ctx: contextvars.ContextVar[dict[str, str | None]] = contextvars.ContextVar("request_ctx", default={})

_ROOT_LOGGER = "app"


def set_request_context(request_id: str, user_id: str | None = None) -> contextvars.Token:
    return _request_ctx.set({"request_id": request_id, "user_id": user_id})


def reset_request_context(token: contextvars.Token) -> None:
    _request_ctx.reset(token)


def get_request_context() -> dict[str, str | None]:
    return _request_ctx.get()


class RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        ctx = get_request_context()
        record.request_id = ctx.get("request_id")
        record.user_id = ctx.get("user_id")
        return True


def configure_logging() -> logging.Logger:
    """Attach a stdout handler to the ``app`` logger once; later calls are no-ops."""
    settings = get_settings()
    logger = logging.getLogger(_ROOT_LOGGER)
    if logger.handlers:
        return logger

    logger.setLevel(settings.log_level)
    handler = logging.StreamHandler(sys.stdout)
    if settings.log_format == "json":
        formatter: logging.Formatter = jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s %(user_id)s"
        )
    else:
        formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s [%(request_id)s] %(message)s")
    handler.setFormatter(formatter)
    handler.addFilter(RequestContextFilter())
    logger.addHandler(handler)
    logger.propagate = False
    return logger

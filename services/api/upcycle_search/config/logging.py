from __future__ import annotations
import os
import uuid
import logging
import contextvars
import tempfile
from pathlib import Path
from logging.handlers import RotatingFileHandler

LOG_FORMAT = "%(asctime)s | [%(levelname)s] [%(name)s] rid=%(request_id)s %(message)s"
LOG_FILENAME = "search-api.log"
_FALLBACK_DIRNAME = "upcycle-search"


def _resolve_log_dir() -> Path:
    # APP_LOG_DIR wins, then APP_DATA_DIR/logs, then the system temp dir
    base = os.getenv("APP_LOG_DIR")
    if base:
        return Path(base)
    data = os.getenv("APP_DATA_DIR")
    if data:
        return Path(data) / "logs"
    return Path(tempfile.gettempdir()) / _FALLBACK_DIRNAME


_rid_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "request_id", default="-"
)


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        record.request_id = _rid_var.get()  # type: ignore[attr-defined]
        return True


def new_request_id() -> str:
    return uuid.uuid4().hex


def set_request_id(rid: str | None) -> str:
    """Bind ``rid`` (or a fresh id when empty) to the current context."""
    value = (rid or "").strip() or new_request_id()
    _rid_var.set(value)
    return value


def get_request_id() -> str:
    return _rid_var.get()


def clear_request_id() -> None:
    _rid_var.set("-")


def configure_logging() -> Path:
    log_dir = _resolve_log_dir()
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except PermissionError:
        log_dir = Path(tempfile.gettempdir()) / _FALLBACK_DIRNAME
        log_dir.mkdir(parents=True, exist_ok=True)

    logfile = log_dir / LOG_FILENAME

    root = logging.getLogger()
    root.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())

    # Drop handlers from a previous call (uvicorn --reload, repeated lifespans)
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(LOG_FORMAT)
    rid_filter = RequestIdFilter()
    fileh = RotatingFileHandler(logfile, maxBytes=2_000_000, backupCount=2)
    streamh = logging.StreamHandler()
    for handler in (fileh, streamh):
        handler.setFormatter(fmt)
        handler.addFilter(rid_filter)
        root.addHandler(handler)

    logging.getLogger(__name__).info("Logging to %s", logfile)
    return logfile

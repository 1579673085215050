import logging
import logging.handlers
import contextvars
import re
import uuid
from pathlib import Path
from typing import Optional

from mediahub.core.config import settings
from mediahub.core.errors import AppError
from mediahub.core.tokens import ACCESS, token_issuer
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

SECURITY_LOGGER = "mediahub.security"
REQUEST_ID_HEADER = "X-Request-ID"

# header.payload.signature, base64url segments
_JWT_RE = re.compile(r"eyJ[\w-]+\.[\w-]+\.[\w-]+")


def map_log_level(level_name: str) -> int:
    level = logging.getLevelName((level_name or "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


user_id_var = contextvars.ContextVar("user_id", default="-")
api_var = contextvars.ContextVar("api", default="-")
request_id_var = contextvars.ContextVar("request_id", default="-")


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.user_id = user_id_var.get()
        record.api = api_var.get()
        record.request_id = request_id_var.get()
        return True


class RedactTokensFilter(logging.Filter):
    """Mask anything that looks like a JWT before it reaches a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if "eyJ" in message:
            record.msg = _JWT_RE.sub("<redacted-token>", message)
            record.args = None
        return True


def _file_handler(filename: str, level: int, formatter: logging.Formatter, log_dir: Path) -> logging.Handler:
    # Rotates at midnight UTC; LOG_TTL_DAYS old files are kept
    handler = logging.handlers.TimedRotatingFileHandler(
        filename=str(log_dir / filename),
        when="midnight",
        interval=1,
        backupCount=max(int(settings.LOG_TTL_DAYS), 0),
        encoding="utf-8",
        utc=True,
    )
    handler.suffix = "%Y-%m-%d"
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def _build_handlers(level: int, log_dir: Path) -> dict:
    formatter = logging.Formatter(
        fmt="%(levelname)s - %(asctime)s - %(request_id)s - %(user_id)s - %(api)s - %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(formatter)

    handlers = {
        "app": _file_handler("app.log", level, formatter, log_dir),
        "error": _file_handler("error.log", logging.WARNING, formatter, log_dir),
        "access": _file_handler("access.log", level, formatter, log_dir),
        "security": _file_handler("security.log", logging.INFO, formatter, log_dir),
        "console": console,
    }
    for handler in handlers.values():
        handler.addFilter(ContextFilter())
        handler.addFilter(RedactTokensFilter())
    return handlers


def _attach(name: Optional[str], handlers: list, level: int, propagate: bool = False) -> logging.Logger:
    target = logging.getLogger(name)
    for h in list(target.handlers):
        target.removeHandler(h)
        h.close()
    for h in handlers:
        target.addHandler(h)
    target.setLevel(level)
    if name:
        target.propagate = propagate
    return target


def configure_logging(app_logger_name: Optional[str] = None) -> logging.Logger:
    """Configure logging with daily rotation and TTL-based retention.

    - ``app.log`` / ``error.log`` / console for the application, root and Uvicorn
    - ``access.log`` for ``uvicorn.access``
    - ``security.log`` for session reuse and other security events; these
      also propagate to the application handlers
    - Calling it again replaces handlers instead of stacking them
    """
    log_dir = Path(settings.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)

    level = map_log_level(settings.LOG_LEVEL)
    handlers = _build_handlers(level, log_dir)
    standard = [handlers["app"], handlers["error"], handlers["console"]]

    _attach(None, standard, level)
    app_logger = _attach(app_logger_name or "mediahub", standard, level)
    _attach(SECURITY_LOGGER, [handlers["security"]], min(level, logging.INFO), propagate=True)
    for name in ("uvicorn", "uvicorn.error", "fastapi"):
        _attach(name, standard, level)
    _attach("uvicorn.access", [handlers["access"], handlers["console"]], level)

    return app_logger


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds request id, caller id and route to the logging context."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        tokens = [
            request_id_var.set(request_id),
            user_id_var.set(self._caller(request)),
            api_var.set(f"{request.method} {request.url.path}"),
        ]
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            for var, token in zip((request_id_var, user_id_var, api_var), tokens):
                try:
                    var.reset(token)
                except ValueError:
                    # Token created in another context; clear instead of reset
                    var.set("-")

    @staticmethod
    def _caller(request: Request) -> str:
        auth_header = request.headers.get("authorization") or ""
        token = request.cookies.get("access_token")
        if auth_header.startswith("Bearer "):
            token = auth_header.split(" ", 1)[1]
        if not token:
            return "-"
        try:
            return token_issuer.verify(token, ACCESS).get("sub") or "-"
        except AppError:
            return "-"

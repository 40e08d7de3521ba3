"""
Logging configuration for Simulive Backend

Structured logging over the standard library. Three context variables ride
along with every record emitted while they are set:

- ``request_id``: one per HTTP request, echoed in ``X-Request-ID``
- ``session``: the class session a trigger tick or chat call is working on
- ``socket_id``: the realtime connection a hub log line belongs to
"""

import logging
import sys
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator, Optional

import structlog
from pythonjsonlogger import jsonlogger

from simulive.core.config import settings

request_id_var: ContextVar[str] = ContextVar("request_id", default="")
session_var: ContextVar[str] = ContextVar("session", default="")
socket_id_var: ContextVar[str] = ContextVar("socket_id", default="")

_CONTEXT_VARS = (
    ("request_id", request_id_var),
    ("session", session_var),
    ("socket_id", socket_id_var),
)

REQUEST_ID_HEADER = b"x-request-id"
REQUEST_ID_MAX_LENGTH = 64

# Viewer polling endpoints, logged at debug on success
QUIET_PATHS = ("/health", "/chat/trigger-admin-message")


def add_log_context(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Copy the request, session and socket context into the event"""
    for key, var in _CONTEXT_VARS:
        value = var.get()
        if value and key not in event_dict:
            event_dict[key] = value
    return event_dict


class LogContextFilter(logging.Filter):
    """Same context for plain ``logging`` records (the hub's console stream)"""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, var in _CONTEXT_VARS:
            if not hasattr(record, key):
                setattr(record, key, var.get() or "-")
        return True


@contextmanager
def bind_log_context(session: Optional[str] = None, socket_id: Optional[str] = None) -> Iterator[None]:
    tokens = []
    if session:
        tokens.append((session_var, session_var.set(session)))
    if socket_id:
        tokens.append((socket_id_var, socket_id_var.set(socket_id)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def setup_logging() -> None:
    """Configure structured logging for the application"""

    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.is_production:
        formatter = jsonlogger.JsonFormatter(
            "%(asctime)s %(name)s %(levelname)s %(message)s %(request_id)s %(session)s %(socket_id)s"
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - [%(session)s] %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(LogContextFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.addHandler(handler)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_log_context,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
            if settings.is_production
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    # Channel hub traffic, one line per socket event
    ws_logger = logging.getLogger("simulive.ws")
    ws_logger.setLevel(logging.INFO)
    ws_handler = logging.StreamHandler(sys.stdout)
    ws_handler.setFormatter(logging.Formatter("%(asctime)s | %(socket_id)s | %(message)s"))
    ws_handler.addFilter(LogContextFilter())
    ws_logger.addHandler(ws_handler)
    ws_logger.propagate = False


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance"""
    return structlog.get_logger(name)


def _incoming_request_id(scope) -> Optional[str]:
    for name, value in scope.get("headers") or []:
        if name == REQUEST_ID_HEADER:
            candidate = value.decode("latin-1").strip()
            if candidate and len(candidate) <= REQUEST_ID_MAX_LENGTH:
                return candidate
    return None


class RequestIDMiddleware:
    """
    Track one id per request. A caller-supplied ``X-Request-ID`` (the viewer
    client sends one per call) is kept so client and server logs line up.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = _incoming_request_id(scope) or uuid.uuid4().hex
        token = request_id_var.set(request_id)

        async def send_with_request_id(message):
            if message["type"] == "http.response.start":
                headers = [(k, v) for k, v in message.get("headers", []) if k != REQUEST_ID_HEADER]
                headers.append((REQUEST_ID_HEADER, request_id.encode()))
                message["headers"] = headers
            await send(message)

        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            request_id_var.reset(token)


class RequestLoggingMiddleware:
    """One line per HTTP request; viewer polling paths log at debug"""

    def __init__(self, app):
        self.app = app
        self.logger = get_logger("simulive.request")

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start_time = time.perf_counter()
        status_code = None
        path = scope.get("path", "")
        fields = {
            "method": scope.get("method"),
            "path": path,
            "client_host": (scope.get("client") or (None, None))[0],
        }

        async def send_with_status(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status")
            await send(message)

        try:
            await self.app(scope, receive, send_with_status)
        except Exception as exc:
            self.logger.exception("request.error", error=str(exc), **fields)
            raise
        finally:
            status = status_code or 500
            duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
            if status >= 500:
                log = self.logger.error
            elif status >= 400:
                log = self.logger.warning
            elif path.endswith(QUIET_PATHS):
                log = self.logger.debug
            else:
                log = self.logger.info
            log("request.end", status_code=status, duration_ms=duration_ms, **fields)


class LatencyLogger:
    """
    Context manager for logging operation latency.

    Extra keyword fields are attached to the completion line; runs slower
    than ``slow_ms`` are logged as warnings.
    """

    def __init__(
        self,
        operation: str,
        logger: structlog.stdlib.BoundLogger,
        slow_ms: Optional[float] = None,
        **fields: Any,
    ):
        self.operation = operation
        self.logger = logger
        self.slow_ms = slow_ms
        self.fields = fields
        self.start_time = None
        self.latency_ms: Optional[float] = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.latency_ms = round((time.perf_counter() - self.start_time) * 1000, 2)
        slow = self.slow_ms is not None and self.latency_ms > self.slow_ms
        log = self.logger.warning if slow or exc_type is not None else self.logger.info
        log(
            f"{self.operation} completed",
            operation=self.operation,
            latency_ms=self.latency_ms,
            success=exc_type is None,
            slow=slow,
            **self.fields,
        )

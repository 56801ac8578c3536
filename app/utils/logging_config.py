"""
Structured Logging Configuration

One log line per event, either plain text (development) or JSON (production).
Every record carries the current request id; booking and payment events also
carry ``booking_id`` / ``tx_ref`` as top-level keys so a single payment can be
followed across the verify path, the webhook and the return page.
"""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Optional, Any, Dict
from contextvars import ContextVar

request_id_var: ContextVar[str] = ContextVar('request_id', default='')

# Record attributes promoted to top-level JSON keys
CONTEXT_FIELDS = ("booking_id", "tx_ref", "event", "source", "duration_ms")

PLAIN_FORMAT = '%(asctime)s [%(request_id)s] %(name)s %(levelname)s: %(message)s'

NOISY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine")


class RequestIdFilter(logging.Filter):
    """Stamp the active request id onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or '-'
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        request_id = getattr(record, "request_id", "-")
        if request_id != "-":
            payload["request_id"] = request_id

        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                payload[name] = value

        details = getattr(record, "details", None)
        if details:
            payload["details"] = details

        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


class StructuredLogger(logging.LoggerAdapter):
    """Adapter with helpers for the booking and payment lifecycle."""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        kwargs['extra'] = {**self.extra, **kwargs.get('extra', {})}
        return msg, kwargs

    def _event(self, level: int, msg: str, booking_id: Optional[str] = None,
               tx_ref: Optional[str] = None, **fields):
        extra: Dict[str, Any] = {"booking_id": booking_id, "tx_ref": tx_ref}
        for name in ("event", "source", "duration_ms"):
            extra[name] = fields.pop(name, None)
        extra["details"] = fields or None
        self.log(level, msg, extra=extra)

    def booking_created(self, booking_id: str, service: str, amount: float, duration_ms: float = None):
        self._event(
            logging.INFO,
            f"Booking created: {booking_id} ({service})",
            booking_id=booking_id,
            event="booking_created",
            duration_ms=duration_ms,
            service=service,
            amount=amount,
        )

    def booking_status_changed(self, booking_id: str, old_status: str, new_status: str, source: str):
        self._event(
            logging.INFO,
            f"Booking {booking_id}: {old_status} -> {new_status} ({source})",
            booking_id=booking_id,
            event="status_changed",
            source=source,
            old_status=old_status,
            new_status=new_status,
        )

    def payment_event(self, tx_ref: str, event: str, level: int = logging.INFO, **data):
        """Payment lifecycle event keyed by tx_ref; ``booking_id`` may be passed in ``data``."""
        booking_id = data.pop("booking_id", None)
        self._event(level, f"Payment {event}: {tx_ref}", booking_id=booking_id,
                    tx_ref=tx_ref, event=event, **data)


def setup_logging(level: str = "INFO", json_format: bool = True) -> None:
    """
    Route all logging (app and uvicorn) through one stdout handler.

    ``json_format`` is on in production; development gets readable lines.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(PLAIN_FORMAT))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    for name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = []
        uvicorn_logger.propagate = True

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> StructuredLogger:
    return StructuredLogger(logging.getLogger(name), {})


def set_request_context(request_id: str):
    request_id_var.set(request_id)


def clear_request_context():
    request_id_var.set('')

"""
Logging configuration for the datekey gateway.

Provides structured JSON logging for audit trails and debugging.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Optional

# Context variable for request ID tracking
request_id_var: ContextVar[str] = ContextVar('request_id', default='')


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs in a consistent JSON format suitable for
    log aggregation systems like ELK, Splunk, or CloudWatch.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class AuditLogger:
    """
    Specialized logger for audit events.

    Records gate decisions, availability changes, message dispatch and
    configuration problems. Denials are logged with their internal
    outcome; the HTTP response never carries it.
    """

    def __init__(self, name: str = "datekey.audit"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        """Internal logging method with extra fields."""
        extra = {
            "event_type": event_type,
            "request_id": request_id_var.get(),
            **kwargs
        }

        record = self._logger.makeRecord(
            self._logger.name,
            level,
            "",
            0,
            f"{event_type}: {kwargs.get('message', '')}",
            (),
            None
        )
        record.extra_fields = extra
        self._logger.handle(record)

    def credential_accepted(
        self,
        route: str,
        client_id: str,
        offset_days: Optional[int] = None
    ) -> None:
        self._log(
            logging.INFO,
            "CREDENTIAL_ACCEPTED",
            route=route,
            client_id=client_id,
            offset_days=offset_days,
            message=f"Credential accepted on {route}"
        )

    def credential_rejected(
        self,
        route: str,
        client_id: str,
        reason: str,
        outcome: Optional[str] = None,
        fingerprint: Optional[str] = None
    ) -> None:
        """Log a gate denial with the internal verification outcome."""
        self._log(
            logging.WARNING,
            "CREDENTIAL_REJECTED",
            route=route,
            client_id=client_id,
            reason=reason,
            outcome=outcome,
            credential_fingerprint=fingerprint,
            message=f"Credential rejected on {route}: {reason}"
        )

    def availability_changed(
        self,
        available: bool,
        client_id: str
    ) -> None:
        self._log(
            logging.WARNING,
            "AVAILABILITY_CHANGED",
            available=available,
            client_id=client_id,
            message=f"Server {'enabled' if available else 'disabled'}"
        )

    def request_refused_unavailable(self, route: str) -> None:
        self._log(
            logging.INFO,
            "UNAVAILABLE",
            route=route,
            message=f"Refused {route} while disabled"
        )

    def message_dispatched(
        self,
        message_id: str,
        recipients: int
    ) -> None:
        self._log(
            logging.INFO,
            "MESSAGE_DISPATCHED",
            message_id=message_id,
            recipients=recipients,
            message=f"Message {message_id} dispatched"
        )

    def message_failed(self, cause: str) -> None:
        self._log(
            logging.ERROR,
            "MESSAGE_FAILED",
            cause=cause,
            message="Message dispatch failed"
        )

    def configuration_error(self, detail: str, **details) -> None:
        self._log(
            logging.ERROR,
            "CONFIGURATION_ERROR",
            detail=detail,
            **details,
            message=f"Configuration error: {detail}"
        )

    def config_loaded(self, summary: Dict[str, Any]) -> None:
        self._log(
            logging.INFO,
            "CONFIG_LOADED",
            config=summary,
            message="Configuration loaded"
        )


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting (recommended for production)
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Set the request ID for the current context.

    Args:
        request_id: Request ID to set, or None to generate one

    Returns:
        The request ID that was set
    """
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


# Global audit logger instance
audit_log = AuditLogger()

"""
Logging configuration for SealedKYC.

Provides structured JSON logging and an audit logger for every
accepted and rejected operation.
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

    One JSON object per line, suitable for log aggregation.
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
    Audit logger for SealedKYC operations.

    Never logs handle contents or disclosed values beyond what the
    emitted events already carry.
    """

    def __init__(self, name: str = "sealedkyc.audit"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs: Any) -> None:
        if not self._logger.isEnabledFor(level):
            return
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

    def role_changed(self, provider: str, added: bool, by: str) -> None:
        action = "added" if added else "removed"
        self._log(
            logging.INFO,
            "ROLE_CHANGED",
            provider=provider,
            action=action,
            by=by,
            message=f"Provider {provider} {action}"
        )

    def pause_changed(self, paused: bool, by: str) -> None:
        self._log(
            logging.WARNING if paused else logging.INFO,
            "PAUSE_CHANGED",
            paused=paused,
            by=by,
            message="Service paused" if paused else "Service unpaused"
        )

    def cooldown_changed(self, old: int, new: int, by: str) -> None:
        self._log(
            logging.INFO,
            "COOLDOWN_CHANGED",
            old=old,
            new=new,
            by=by,
            message=f"Cooldown changed {old}s -> {new}s"
        )

    def batch_transition(self, batch_id: int, transition: str) -> None:
        self._log(
            logging.INFO,
            "BATCH_TRANSITION",
            batch_id=batch_id,
            transition=transition,
            message=f"Batch {batch_id} {transition}"
        )

    def submission_accepted(self, batch_id: int, user: str, provider: str) -> None:
        self._log(
            logging.INFO,
            "SUBMISSION_ACCEPTED",
            batch_id=batch_id,
            user=user,
            provider=provider,
            message=f"Submission for {user} in batch {batch_id}"
        )

    def decryption_requested(self, correlation_id: int, batch_id: int, provider: str, commitment: str) -> None:
        self._log(
            logging.INFO,
            "DECRYPTION_REQUESTED",
            correlation_id=correlation_id,
            batch_id=batch_id,
            provider=provider,
            commitment=commitment,
            message=f"Decryption {correlation_id} requested for batch {batch_id}"
        )

    def decryption_completed(self, correlation_id: int, batch_id: int) -> None:
        self._log(
            logging.INFO,
            "DECRYPTION_COMPLETED",
            correlation_id=correlation_id,
            batch_id=batch_id,
            message=f"Decryption {correlation_id} completed"
        )

    def decryption_cancelled(self, correlation_id: int, batch_id: int, by: str) -> None:
        self._log(
            logging.WARNING,
            "DECRYPTION_CANCELLED",
            correlation_id=correlation_id,
            batch_id=batch_id,
            by=by,
            message=f"Decryption {correlation_id} cancelled"
        )

    def operation_rejected(self, operation: str, error: Dict[str, Any], caller: Optional[str] = None) -> None:
        """Log a rejected operation. `error` is SealedKYCError.to_dict()."""
        self._log(
            logging.WARNING,
            "OPERATION_REJECTED",
            operation=operation,
            caller=caller,
            error=error,
            message=f"{operation} rejected: {error.get('error')}"
        )

    def security_event(
        self,
        event: str,
        severity: str = "medium",
        **details: Any
    ) -> None:
        """Log a security-relevant event."""
        level = {
            "low": logging.INFO,
            "medium": logging.WARNING,
            "high": logging.ERROR,
            "critical": logging.CRITICAL
        }.get(severity, logging.WARNING)

        self._log(
            level,
            "SECURITY_EVENT",
            security_event=event,
            severity=severity,
            **details,
            message=f"Security event: {event}"
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
    root_logger.setLevel(getattr(logging, level.upper()))

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
    """Set the request ID for the current context, generating one if None."""
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


# Global audit logger instance
audit_log = AuditLogger()

"""
Logging configuration for TrustWrapper.

Structured JSON logging plus a dedicated audit logger for local
verification records. Audit records carry digests and aggregate scores
only, never decision text or metadata.
"""

import json
import logging
import sys
import time
from contextvars import ContextVar
from typing import List, Optional

from .config import log_level_from_env
from .security import sanitize_for_logging

# Context variable for correlating log lines with one verification
verification_id_var: ContextVar[str] = ContextVar('verification_id', default='')


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    One JSON object per record, suitable for log aggregation.
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

        verification_id = verification_id_var.get()
        if verification_id:
            log_data["verification_id"] = verification_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class AuditLogger:
    """
    Logger for local audit events.

    Every payload passes through sanitize_for_logging before it is
    attached to the record.
    """

    def __init__(self, name: str = "trustwrapper.audit"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        extra = sanitize_for_logging({
            "event_type": event_type,
            "verification_id": verification_id_var.get(),
            **kwargs
        })

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

    def verification_complete(
        self,
        verification_id: str,
        action: str,
        asset: str,
        trust_score: int,
        risk_level: str,
        recommendation: str,
        warning_count: int,
        context_present: bool,
        config_hash: str,
        reasoning_digest: Optional[str],
        processing_time_ms: float
    ) -> None:
        """Log a completed verification."""
        level = logging.INFO if recommendation != "rejected" else logging.WARNING
        self._log(
            level,
            "VERIFICATION_COMPLETE",
            verification_id=verification_id,
            action=action,
            asset=asset,
            trust_score=trust_score,
            risk_level=risk_level,
            recommendation=recommendation,
            warning_count=warning_count,
            context_present=context_present,
            config_hash=config_hash[:8],
            reasoning_digest=reasoning_digest,
            processing_time_ms=round(processing_time_ms, 3),
            message=f"Verification {verification_id} {recommendation}"
        )

    def verification_failed(self, error_code: str, reason: str) -> None:
        """Log a verification that raised."""
        self._log(
            logging.ERROR,
            "VERIFICATION_FAILED",
            error_code=error_code,
            reason=reason,
            message=f"Verification failed: {error_code}"
        )

    def degraded_analysis(self, components: List[str]) -> None:
        """Log analyzers that fell back to maximum risk."""
        self._log(
            logging.WARNING,
            "DEGRADED_ANALYSIS",
            components=components,
            message=f"Degraded analysis: {', '.join(components)}"
        )

    def rules_updated(self, sections: List[str], rules_hash: str) -> None:
        """Log an accepted rule-table update."""
        self._log(
            logging.INFO,
            "RULES_UPDATED",
            sections=sections,
            rules_hash=rules_hash[:16],
            message=f"Rules updated: {', '.join(sections)}"
        )

    def rules_rejected(self, reason: str) -> None:
        """Log a rejected rule-table update."""
        self._log(
            logging.WARNING,
            "RULES_REJECTED",
            reason=reason,
            message="Rule update rejected; previous rules kept"
        )


def configure_logging(
    level: Optional[str] = None,
    json_format: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL);
            defaults to TRUSTWRAPPER_LOG_LEVEL, then INFO
        json_format: Use JSON formatting
        log_file: Optional file path for log output
    """
    level = level or log_level_from_env()
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


def set_verification_id(verification_id: str) -> None:
    """Set the verification ID for the current context."""
    verification_id_var.set(verification_id)


# Global audit logger instance
audit_log = AuditLogger()

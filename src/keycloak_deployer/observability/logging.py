"""
Structured logging utilities for the Keycloak deployer.

This module provides correlation ID tracking, structured log formatting,
and step/result logging helpers for deployment runs.
"""

import json
import logging
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from keycloak_deployer.errors import DeployerError
    from keycloak_deployer.models.resources import ReconcileResult

# Context variable for tracking the correlation ID of one deployer run
correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")

STRUCTURED_FIELDS = (
    "resource_type",
    "resource_name",
    "namespace",
    "operation",
    "outcome",
    "duration",
    "error_type",
    "category",
    "step",
    "source_path",
    "target_path",
    "field",
)


class CorrelationIDFilter(logging.Filter):
    """Logging filter that adds correlation ID to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """
        Add correlation ID to the log record.

        Args:
            record: The log record to process

        Returns:
            True to allow the record to be processed
        """
        current_correlation_id = correlation_id.get()
        if not current_correlation_id:
            current_correlation_id = generate_correlation_id()
            correlation_id.set(current_correlation_id)

        record.correlation_id = current_correlation_id
        return True


class StructuredFormatter(logging.Formatter):
    """
    Structured JSON formatter for logs with correlation ID support.

    Formats log records as structured JSON for better parsing and analysis
    in log aggregation systems.
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format the log record as structured JSON.

        Args:
            record: The log record to format

        Returns:
            JSON-formatted log message
        """
        log_data = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", ""),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Extra fields are set as attributes on the record
        for field in STRUCTURED_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        return json.dumps(log_data, default=str)


def generate_correlation_id() -> str:
    """
    Generate a new correlation ID.

    Returns:
        Unique correlation ID string
    """
    return str(uuid.uuid4())[:8]


def set_correlation_id(corr_id: str) -> str:
    """
    Set the correlation ID for the current context.

    Args:
        corr_id: Correlation ID to set

    Returns:
        The correlation ID that was set
    """
    correlation_id.set(corr_id)
    return corr_id


def get_correlation_id() -> str:
    """Get the current correlation ID, or empty string if none set."""
    return correlation_id.get("")


def setup_structured_logging(
    log_level: str = "INFO",
    enable_json_formatting: bool = False,
    correlation_id_enabled: bool = True,
) -> None:
    """
    Set up structured logging for the deployer.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        enable_json_formatting: Whether to use JSON formatting
        correlation_id_enabled: Whether to enable correlation ID tracking
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()

    if enable_json_formatting:
        formatter: logging.Formatter = StructuredFormatter()
    elif correlation_id_enabled:
        formatter = logging.Formatter(
            "%(asctime)s - %(correlation_id)s - %(name)s - %(levelname)s - %(message)s"
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    handler.setFormatter(formatter)

    if correlation_id_enabled:
        handler.addFilter(CorrelationIDFilter())

    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Third-party client libraries are noisy at INFO
    logging.getLogger("kubernetes").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


class DeployerLogger:
    """
    Logger for deployment steps with structured logging support.

    Provides convenient methods for logging pipeline steps and reconcile
    results with structured data.
    """

    def __init__(self, name: str):
        """
        Initialize deployer logger.

        Args:
            name: Logger name (usually the module or class name)
        """
        self.logger = logging.getLogger(name)

    def log_step(self, step: int | str, description: str, **kwargs) -> None:
        """Log the start of a numbered pipeline step."""
        self.logger.info(
            f"Step {step}: {description}",
            extra={"step": step, "operation": "step_start", **kwargs},
        )

    def log_reconcile_result(self, result: "ReconcileResult") -> None:
        """
        Log the outcome of reconciling one resource.

        Args:
            result: The reconcile result to record
        """
        descriptor = result.descriptor
        level = logging.INFO if result.ok else logging.ERROR
        if result.warning is not None:
            level = logging.WARNING
        message = f"{descriptor} -> {result.outcome.value}"
        if result.message:
            message = f"{message}: {result.message}"

        self.logger.log(
            level,
            message,
            extra={
                "resource_type": descriptor.kind,
                "resource_name": descriptor.name,
                "namespace": descriptor.namespace,
                "operation": "reconcile",
                "outcome": result.outcome.value,
            },
        )

    def log_warning_condition(self, warning: "DeployerError") -> None:
        """Log a recoverable condition without affecting the exit code."""
        self.logger.warning(
            warning.message,
            extra={
                "category": warning.category,
                "error_type": type(warning).__name__,
            },
        )

    def log_error(self, error: "DeployerError", duration: float | None = None) -> None:
        """Log a fatal deployer error."""
        extra: dict = {
            "category": error.category,
            "error_type": type(error).__name__,
        }
        if duration is not None:
            extra["duration"] = duration
        self.logger.error(str(error), extra=extra)

    def info(self, message: str, **kwargs) -> None:
        """Log info message with extra data."""
        self.logger.info(message, extra=kwargs)

    def warning(self, message: str, **kwargs) -> None:
        """Log warning message with extra data."""
        self.logger.warning(message, extra=kwargs)

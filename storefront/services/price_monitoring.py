"""
Price Monitoring

Counts price validations and keeps the most recent price errors so the
health endpoint can tell whether the catalog is sending malformed prices.
"""
import os
from collections import deque
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Deque, List, Optional

from storefront.logging import get_logger, sanitize_string_for_logging

logger = get_logger(__name__)

# Keep last 100 errors
MAX_ERROR_LOGS = 100

# Error rate (percent) above which health becomes critical
ERROR_RATE_THRESHOLD = 5.0


@dataclass
class PriceErrorLog:
    """Single recorded price error."""
    timestamp: str
    kind: str  # validation | conversion | formatting
    context: str
    original_value: str
    error: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class PriceMetrics:
    """Snapshot of monitor counters."""
    total_validations: int = 0
    validation_failures: int = 0
    conversion_errors: int = 0
    formatting_errors: int = 0
    last_error: Optional[PriceErrorLog] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["last_error"] = self.last_error.to_dict() if self.last_error else None
        return data


@dataclass
class PriceHealthStatus:
    status: str  # healthy | warning | critical
    metrics: PriceMetrics
    error_rate: float
    message: str

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "metrics": self.metrics.to_dict(),
            "error_rate": round(self.error_rate, 2),
            "message": self.message,
        }


def _is_development() -> bool:
    return os.environ.get("ENVIRONMENT", "production").lower() == "development"


class PriceMonitor:
    """
    In-process price error tracker.

    Usage:
        monitor = get_price_monitor()
        monitor.log_validation_error("validate_price", raw, "Invalid price format")
        monitor.get_error_rate()
    """

    def __init__(self, max_logs: int = MAX_ERROR_LOGS):
        self._metrics = PriceMetrics()
        self._errors: Deque[PriceErrorLog] = deque(maxlen=max_logs)

    def log_successful_validation(self) -> None:
        self._metrics.total_validations += 1

    def log_validation_error(self, context: str, original_value: Any, error: str) -> None:
        self._metrics.total_validations += 1
        self._metrics.validation_failures += 1
        self._record("validation", context, original_value, error)

    def log_conversion_error(self, context: str, original_value: Any, error: str) -> None:
        self._metrics.conversion_errors += 1
        self._record("conversion", context, original_value, error)

    def log_formatting_error(self, context: str, original_value: Any, error: str) -> None:
        self._metrics.formatting_errors += 1
        self._record("formatting", context, original_value, error)

    def _record(self, kind: str, context: str, original_value: Any, error: str) -> None:
        entry = PriceErrorLog(
            timestamp=datetime.now(timezone.utc).isoformat(),
            kind=kind,
            context=context,
            original_value=sanitize_string_for_logging(original_value),
            error=error,
        )
        self._errors.append(entry)
        self._metrics.last_error = entry

        message = f"Price {kind} error in {context}: {error} (value={entry.original_value})"
        if _is_development():
            logger.warning(message)
        else:
            logger.error(message)

    def get_metrics(self) -> PriceMetrics:
        """Copy of the current counters."""
        m = self._metrics
        return PriceMetrics(
            total_validations=m.total_validations,
            validation_failures=m.validation_failures,
            conversion_errors=m.conversion_errors,
            formatting_errors=m.formatting_errors,
            last_error=m.last_error,
        )

    def get_recent_errors(self, limit: int = 10) -> List[PriceErrorLog]:
        if limit <= 0:
            return []
        return list(self._errors)[-limit:]

    def get_error_rate(self) -> float:
        """Percentage of validations that failed."""
        if self._metrics.total_validations == 0:
            return 0.0
        return self._metrics.validation_failures / self._metrics.total_validations * 100

    def is_error_rate_high(self, threshold: float = ERROR_RATE_THRESHOLD) -> bool:
        return self.get_error_rate() > threshold

    def reset_metrics(self) -> None:
        self._metrics = PriceMetrics()
        self._errors.clear()

    def generate_report(self) -> str:
        metrics = self.get_metrics()
        lines = [
            "Price Monitoring Report",
            "=======================",
            f"Total Validations: {metrics.total_validations}",
            f"Validation Failures: {metrics.validation_failures}",
            f"Conversion Errors: {metrics.conversion_errors}",
            f"Formatting Errors: {metrics.formatting_errors}",
            f"Error Rate: {self.get_error_rate():.2f}%",
            "",
            "Recent Errors:",
        ]
        lines.extend(
            f"- {entry.timestamp}: {entry.context} - {entry.error}"
            for entry in self.get_recent_errors(5)
        )
        return "\n".join(lines)


def get_price_health_status(monitor: Optional["PriceMonitor"] = None) -> PriceHealthStatus:
    """
    Classify price health by error rate.

    0% is healthy, below the threshold is a warning, anything else critical.
    """
    monitor = monitor or get_price_monitor()
    metrics = monitor.get_metrics()
    error_rate = monitor.get_error_rate()

    if error_rate == 0:
        return PriceHealthStatus(
            status="healthy",
            metrics=metrics,
            error_rate=error_rate,
            message="All price operations are functioning normally",
        )
    if error_rate < ERROR_RATE_THRESHOLD:
        return PriceHealthStatus(
            status="warning",
            metrics=metrics,
            error_rate=error_rate,
            message=f"Price error rate is {error_rate:.2f}% - monitoring closely",
        )
    return PriceHealthStatus(
        status="critical",
        metrics=metrics,
        error_rate=error_rate,
        message=f"High price error rate: {error_rate:.2f}% - immediate attention required",
    )


# Singleton instance
_price_monitor: Optional[PriceMonitor] = None


def get_price_monitor() -> PriceMonitor:
    """Get PriceMonitor singleton."""
    global _price_monitor
    if _price_monitor is None:
        _price_monitor = PriceMonitor()
    return _price_monitor


__all__ = [
    "PriceErrorLog",
    "PriceMetrics",
    "PriceHealthStatus",
    "PriceMonitor",
    "get_price_monitor",
    "get_price_health_status",
]

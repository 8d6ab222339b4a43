"""Error taxonomy and central error bookkeeping."""

import logging
import threading
import traceback
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional


class ScoringError(Exception):
    """Base class for every error raised by the scoring core."""


class InvalidImage(ScoringError):
    """Zero-dimension or undecodable photo."""


class InvalidModelOutput(ScoringError):
    """Raw model output does not match the configured layout or label table."""


class InferenceFailure(ScoringError):
    """The inference gateway failed to run the model."""


class AlreadyProcessing(ScoringError):
    """The same image buffer is already running through the pipeline."""


class ConfigurationLoadFailure(ScoringError):
    """Configuration could not be loaded at startup."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = list(errors or [])


class ModelLoadError(ScoringError):
    """Model asset missing or rejected by the runtime."""


class CalibrationError(ScoringError):
    """No target geometry could be established for a photo."""


class PipelineCancelled(ScoringError):
    """Processing was cancelled before scoring completed."""


class ErrorSeverity(Enum):
    """Error severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ComponentStatus(Enum):
    """Component status levels."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    FAILED = "failed"
    UNKNOWN = "unknown"


@dataclass
class ErrorRecord:
    """Record of an error occurrence."""
    component_name: str
    error: Exception
    severity: ErrorSeverity
    timestamp: datetime = field(default_factory=datetime.now)
    traceback_str: str = ""

    @property
    def error_type(self) -> str:
        return type(self.error).__name__


class ErrorHandler:
    """Records errors per component and tracks component health.

    The handler only keeps books: it never swallows or replaces the exception
    it is told about. Callers decide whether to re-raise or convert the error
    into a result value.
    """

    def __init__(self, max_records: int = 1000):
        self.logger = logging.getLogger("arrow_scoring.error_handler")
        self.max_records = max_records
        self.error_records: List[ErrorRecord] = []
        self.component_error_counts: Dict[str, int] = {}
        self.component_status: Dict[str, ComponentStatus] = {}
        self._lock = threading.Lock()

    def register_component(self, component_name: str) -> None:
        """Register a component for error tracking."""
        with self._lock:
            self.component_error_counts.setdefault(component_name, 0)
            self.component_status.setdefault(component_name, ComponentStatus.HEALTHY)
        self.logger.debug(f"Component registered: {component_name}")

    def handle_error(self, component_name: str, error: Exception,
                     severity: ErrorSeverity = ErrorSeverity.MEDIUM) -> ErrorRecord:
        """Record an error from a component and update its status."""
        error_record = ErrorRecord(
            component_name=component_name,
            error=error,
            severity=severity,
            traceback_str="".join(traceback.format_exception(type(error), error, error.__traceback__))
        )

        with self._lock:
            self.error_records.append(error_record)
            if len(self.error_records) > self.max_records:
                self.error_records = self.error_records[-self.max_records:]

            self.component_error_counts[component_name] = (
                self.component_error_counts.get(component_name, 0) + 1
            )

            if severity == ErrorSeverity.CRITICAL:
                self.component_status[component_name] = ComponentStatus.FAILED
            elif severity == ErrorSeverity.HIGH:
                self.component_status[component_name] = ComponentStatus.DEGRADED
            else:
                self.component_status.setdefault(component_name, ComponentStatus.HEALTHY)

        log_level = logging.ERROR if severity in (ErrorSeverity.HIGH, ErrorSeverity.CRITICAL) else logging.WARNING
        self.logger.log(log_level, f"Error in {component_name}: {type(error).__name__}: {error} "
                                   f"(Severity: {severity.value})")

        return error_record

    def get_component_health(self) -> Dict[str, ComponentStatus]:
        """Get health status of all registered components."""
        with self._lock:
            return dict(self.component_status)

    def reset_component(self, component_name: Optional[str] = None) -> None:
        """Reset error counts and status for a component or all components."""
        with self._lock:
            names = [component_name] if component_name else list(self.component_error_counts)
            for name in names:
                self.component_error_counts[name] = 0
                self.component_status[name] = ComponentStatus.HEALTHY

    def get_error_stats(self) -> Dict[str, Any]:
        """Totals, per-component counts, per-type counts and component status."""
        with self._lock:
            return {
                "total_errors": len(self.error_records),
                "component_error_counts": dict(self.component_error_counts),
                "error_type_counts": dict(Counter(record.error_type for record in self.error_records)),
                "component_status": {name: status.value for name, status in self.component_status.items()}
            }

    def get_error_summary(self, hours: int = 24) -> Dict[str, Any]:
        """Counts per component and per severity over the last ``hours``."""
        since = datetime.now() - timedelta(hours=hours)

        with self._lock:
            window = [record for record in self.error_records if record.timestamp >= since]

        by_severity = Counter(record.severity.value for record in window)

        return {
            "total_errors": len(window),
            "component_counts": dict(Counter(record.component_name for record in window)),
            "severity_counts": {severity.value: by_severity[severity.value] for severity in ErrorSeverity},
            "time_period_hours": hours
        }


# Shared by components that are not handed their own handler
global_error_handler = ErrorHandler()

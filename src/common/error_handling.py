"""
Structured error ledger for analysis pipeline runs.

Stage fallbacks are recovered locally and never surfaced as exceptions, so
each one is recorded here instead. The ledger travels with the PipelineRun
so callers can see which stages degraded and why.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional


@dataclass
class StageFailure:
    """
    Structured record of one recovered pipeline failure.

    Provides consistent error tracking with severity and recoverability.
    """

    stage: str  # e.g., "technical_signals", "evidence"
    operation: str  # e.g., "capability_analysis", "collect_facet"
    severity: str  # "critical", "high", "medium", "low"
    message: str
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    recoverable: bool = True  # Did the run continue?
    exception_type: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "stage": self.stage,
            "operation": self.operation,
            "severity": self.severity,
            "message": self.message,
            "timestamp": self.timestamp,
            "recoverable": self.recoverable,
            "exception_type": self.exception_type,
        }


class ErrorCollector:
    """
    Collects failures during a pipeline run.

    Provides aggregation and summary capabilities for error tracking.
    """

    def __init__(self):
        self.errors: List[StageFailure] = []

    def __len__(self) -> int:
        return len(self.errors)

    def add(self, error: StageFailure) -> None:
        """Add a failure to the collection."""
        self.errors.append(error)

    def add_error(
        self,
        stage: str,
        operation: str,
        message: str,
        severity: str = "medium",
        recoverable: bool = True,
        exception: Optional[BaseException] = None,
    ) -> None:
        """Convenience method to add a failure with parameters."""
        self.errors.append(
            StageFailure(
                stage=stage,
                operation=operation,
                message=message,
                severity=severity,
                recoverable=recoverable,
                exception_type=type(exception).__name__ if exception else None,
            )
        )

    def stages(self) -> List[str]:
        """Names of the stages that recorded at least one failure, in order."""
        seen: List[str] = []
        for error in self.errors:
            if error.stage not in seen:
                seen.append(error.stage)
        return seen

    def has_critical_errors(self) -> bool:
        """Check if any critical (non-recoverable) errors occurred."""
        return any(e.severity == "critical" and not e.recoverable for e in self.errors)

    def to_list(self) -> List[dict]:
        return [e.to_dict() for e in self.errors]

    def summary(self) -> dict:
        """Get error summary statistics."""
        by_severity = {"critical": 0, "high": 0, "medium": 0, "low": 0}
        for error in self.errors:
            if error.severity in by_severity:
                by_severity[error.severity] += 1
        return {
            "total": len(self.errors),
            "by_severity": by_severity,
            "recoverable": sum(1 for e in self.errors if e.recoverable),
            "non_recoverable": sum(1 for e in self.errors if not e.recoverable),
        }

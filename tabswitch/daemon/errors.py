"""Error tracking for the daemon's status report.

Nothing here retries or recovers: protocol errors are answered as failure
responses, stale tab references are dropped, and this module only keeps a
bounded window of what went wrong so ``/status`` can show it.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Deque, Dict, Optional

from loguru import logger

from ..errors import EnvelopeError, RemoteError, UnknownMethodError


class ErrorSeverity(Enum):
    """Error severity levels."""
    LOW = 1
    MEDIUM = 2
    HIGH = 3


@dataclass
class ErrorEvent:
    """Represents an error event."""
    component: str
    error_type: str
    message: str
    severity: ErrorSeverity
    timestamp: datetime = field(default_factory=datetime.now)
    context: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp.isoformat(),
            'component': self.component,
            'error_type': self.error_type,
            'message': self.message,
            'severity': self.severity.name.lower(),
            'context': self.context,
        }


def classify_severity(error: BaseException) -> ErrorSeverity:
    """Caller mistakes are low, everything unexpected is high."""
    if isinstance(error, (UnknownMethodError, EnvelopeError)):
        return ErrorSeverity.LOW
    if isinstance(error, (KeyError, ValueError, TypeError, RemoteError)):
        return ErrorSeverity.MEDIUM
    return ErrorSeverity.HIGH


class ErrorLog:
    """Bounded window of recent errors with per-type counts."""

    def __init__(self, window_size: int = 100):
        self.errors: Deque[ErrorEvent] = deque(maxlen=window_size)
        self.error_counts: Dict[str, int] = {}

    def record(self, component: str, error: BaseException, **context: Any) -> ErrorEvent:
        event = ErrorEvent(
            component=component,
            error_type=type(error).__name__,
            message=str(error),
            severity=classify_severity(error),
            context=context,
        )
        self.errors.append(event)

        key = f"{component}:{event.error_type}"
        self.error_counts[key] = self.error_counts.get(key, 0) + 1

        if event.severity == ErrorSeverity.HIGH:
            logger.error(f"{component}: {event.error_type}: {event.message}")
        return event

    def last(self) -> Optional[ErrorEvent]:
        return self.errors[-1] if self.errors else None

    def summary(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Counts for the last hour plus the most frequent error keys."""
        now = now or datetime.now()
        recent = [e for e in self.errors if now - e.timestamp < timedelta(hours=1)]

        by_severity = {s.name.lower(): 0 for s in ErrorSeverity}
        for error in recent:
            by_severity[error.severity.name.lower()] += 1

        top_errors = sorted(self.error_counts.items(), key=lambda x: x[1], reverse=True)[:5]
        last = self.last()

        return {
            'total_errors': len(self.errors),
            'recent_errors': len(recent),
            'by_severity': by_severity,
            'top_errors': [{'error': k, 'count': v} for k, v in top_errors],
            'last_error': last.to_dict() if last else None,
        }

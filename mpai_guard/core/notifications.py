"""
Best-effort admin notification of unexpected failures.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ErrorReport:
    type: str
    message: str
    context: Dict[str, Any] = field(default_factory=dict)
    stack: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class ErrorNotifier(Protocol):
    def notify(self, report: ErrorReport) -> None:
        ...


class LoggingErrorNotifier:
    """Writes reports to the log instead of sending them anywhere."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled

    def notify(self, report: ErrorReport) -> None:
        if not self.enabled:
            logger.info("Error notifications disabled - would have sent: %s", report.type)
            return
        logger.error(
            "[%s] %s | context=%s", report.type, report.message, report.context
        )


def notify_best_effort(notifier: Optional[ErrorNotifier], report: ErrorReport) -> bool:
    """Deliver a report, never raising.

    Returns:
        True if the notifier accepted the report
    """
    if notifier is None:
        return False
    try:
        notifier.notify(report)
        return True
    except Exception as e:
        logger.error("Failed to send error notification: %s", e)
        return False

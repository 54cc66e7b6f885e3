"""Qt timer that wakes live attempts once per second."""

from __future__ import annotations

import logging

from PySide6.QtCore import QObject, QTimer, Signal

from quiz_admin.constants.quiz_constants import TICK_INTERVAL_MS
from quiz_admin.core.quiz_manager import QuizManager, TickReport

logger = logging.getLogger(__name__)


class CountdownDriver(QObject):
    """Drives ``QuizManager.tick_active_attempts`` from the Qt event loop.

    The timer carries no countdown state of its own: each timeout asks the
    manager to recompute remaining time from the clock, so a late or skipped
    timeout only delays the auto-submit until the next wake-up.
    """

    attempts_expired = Signal(list)  # ids of attempts submitted on time expiry
    submissions_recovered = Signal(list)  # ids of attempts stored by a retried write
    submission_failed = Signal(str, str)  # session id, error message

    def __init__(
        self,
        quiz_manager: QuizManager,
        interval_ms: int = TICK_INTERVAL_MS,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self.quiz_manager = quiz_manager
        self._timer = QTimer(self)
        self._timer.setInterval(interval_ms)
        self._timer.timeout.connect(self.tick)

    def start(self) -> None:
        if not self._timer.isActive():
            self._timer.start()

    def stop(self) -> None:
        if self._timer.isActive():
            self._timer.stop()

    def is_running(self) -> bool:
        return self._timer.isActive()

    def interval_ms(self) -> int:
        return self._timer.interval()

    def tick(self) -> TickReport:
        report = self.quiz_manager.tick_active_attempts()
        if report.expired:
            logger.info("Auto-submitted %d attempt(s) on time expiry", len(report.expired))
            self.attempts_expired.emit([attempt.id for attempt in report.expired])
        if report.recovered:
            logger.info("Stored %d attempt(s) after retrying a failed write", len(report.recovered))
            self.submissions_recovered.emit([attempt.id for attempt in report.recovered])
        for session_id, message in report.failures.items():
            logger.warning("Attempt session %s could not be submitted: %s", session_id, message)
            self.submission_failed.emit(session_id, message)
        return report

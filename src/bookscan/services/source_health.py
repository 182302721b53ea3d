from __future__ import annotations

import logging
from enum import StrEnum

from bookscan.domain.models import DataSource

logger = logging.getLogger(__name__)


class LookupOutcome(StrEnum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"
    TIMEOUT = "timeout"


class SourceHealthMonitor:
    """
    Zählt aufeinanderfolgende transiente Fehler pro Quelle.

    Absence is a healthy answer and resets the streak just like a hit does;
    only errors and timeouts count towards ``degraded_threshold``.
    """

    def __init__(self, degraded_threshold: int = 3) -> None:
        self._threshold = degraded_threshold
        self._failure_streaks: dict[DataSource, int] = {}

    def record(self, source: DataSource, outcome: LookupOutcome) -> None:
        if outcome in (LookupOutcome.ERROR, LookupOutcome.TIMEOUT):
            streak = self._failure_streaks.get(source, 0) + 1
            self._failure_streaks[source] = streak
            if streak == self._threshold:
                logger.warning(
                    "Source '%s' marked degraded after %d consecutive failures", source, streak
                )
            return

        if self._failure_streaks.pop(source, 0) >= self._threshold:
            logger.info("Source '%s' recovered", source)

    def failure_streak(self, source: DataSource) -> int:
        return self._failure_streaks.get(source, 0)

    def is_degraded(self, source: DataSource) -> bool:
        return self.failure_streak(source) >= self._threshold

    def prioritize(self, order: list[DataSource]) -> list[DataSource]:
        """Stable partition: healthy sources keep their order, degraded ones move last."""
        healthy = [s for s in order if not self.is_degraded(s)]
        degraded = [s for s in order if self.is_degraded(s)]
        return healthy + degraded

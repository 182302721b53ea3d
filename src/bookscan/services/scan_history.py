from __future__ import annotations

from collections.abc import Iterable


class ScanHistory:
    """
    Per-session scan state: debounce timestamps and the SeenSet.

    Created when a scan session starts and discarded when it ends; nothing
    here is persisted. Debounce timestamps older than the retention period
    can no longer suppress an event, so they are swept instead of growing
    with every identifier ever scanned.
    """

    def __init__(
        self,
        debounce_window: float = 1.5,
        retention_seconds: float = 60.0,
        seen: Iterable[str] = (),
    ) -> None:
        self._window = debounce_window
        self._retention = max(debounce_window, retention_seconds)
        # Key: identifier, Value: Zeitpunkt des letzten angenommenen Scans
        self._last_handled: dict[str, float] = {}
        self._last_sweep = float("-inf")
        self._seen: set[str] = set(seen)

    # ------------------------------------------------------------------
    # Debounce
    # ------------------------------------------------------------------

    def accept(self, identifier: str, timestamp: float) -> bool:
        """Returns False for a repeat inside the window; otherwise records the event."""
        self._sweep(timestamp)
        last = self._last_handled.get(identifier)
        if last is not None and timestamp - last < self._window:
            return False
        self._last_handled[identifier] = timestamp
        return True

    def _sweep(self, now: float) -> None:
        if now - self._last_sweep < self._retention:
            return
        self._last_sweep = now
        expired = [k for k, ts in self._last_handled.items() if now - ts >= self._retention]
        for key in expired:
            del self._last_handled[key]

    @property
    def tracked_count(self) -> int:
        return len(self._last_handled)

    # ------------------------------------------------------------------
    # SeenSet
    # ------------------------------------------------------------------

    def classify(self, identifier: str) -> bool:
        """Returns is_duplicate relative to prior state, then marks the identifier seen."""
        is_duplicate = identifier in self._seen
        self._seen.add(identifier)
        return is_duplicate

    def mark_seen(self, identifier: str) -> None:
        self._seen.add(identifier)

    def forget(self, identifier: str) -> None:
        self._seen.discard(identifier)

    def is_seen(self, identifier: str) -> bool:
        return identifier in self._seen

    @property
    def seen_count(self) -> int:
        return len(self._seen)

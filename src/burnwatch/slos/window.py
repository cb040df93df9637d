"""Rolling sample window for a single SLO target."""

from __future__ import annotations

from datetime import datetime, timedelta

from burnwatch.slos.models import MetricSample


class MetricWindow:
    """
    Timestamped samples bounded by twice the SLO window.

    The extra window of history is kept for trend comparison. Samples may
    arrive out of order; the structure is append plus filter.
    """

    def __init__(self, window: timedelta) -> None:
        self.window = window
        self.retention = window * 2
        self._samples: list[MetricSample] = []

    def __len__(self) -> int:
        return len(self._samples)

    def insert(
        self,
        value: float,
        timestamp: datetime,
        tags: dict[str, str] | None = None,
        *,
        now: datetime | None = None,
    ) -> None:
        self._samples.append(MetricSample(value=value, timestamp=timestamp, tags=tags or {}))
        reference = max(now, timestamp) if now is not None else timestamp
        self.prune(reference)

    def prune(self, now: datetime) -> int:
        """Drop samples older than ``now - 2×window``; returns how many were dropped."""
        cutoff = now - self.retention
        before = len(self._samples)
        self._samples = [s for s in self._samples if s.timestamp > cutoff]
        return before - len(self._samples)

    def samples_in_window(self, now: datetime) -> list[MetricSample]:
        cutoff = now - self.window
        return sorted(
            (s for s in self._samples if s.timestamp > cutoff),
            key=lambda s: s.timestamp,
        )

    def snapshot(self) -> list[MetricSample]:
        return list(self._samples)

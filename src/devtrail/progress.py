from __future__ import annotations

from typing import Protocol


class ProgressSink(Protocol):
    def update_progress(self, value: int, message: str | None = None) -> int: ...


class ProgressTracker:
    """Maps "processed of total" onto one phase's [base, max] slice of 0..100.

    Intermediate items floor; the item that completes the phase lands exactly on max.
    A phase that discovers nothing jumps straight to max.
    """

    def __init__(self, sink: ProgressSink, base: int, maximum: int, label: str = "items") -> None:
        if not 0 <= base <= maximum <= 100:
            raise ValueError(f"invalid progress window [{base}, {maximum}]")
        self.sink = sink
        self.base = base
        self.maximum = maximum
        self.label = label
        self.total = 1
        self.processed = 0
        self.current = base

    def set_total_items(self, count: int, label: str | None = None) -> int:
        if label:
            self.label = label
        self.total = max(1, int(count))
        self.processed = 0
        if count <= 0:
            return self._report(self.maximum, f"No {self.label} to process")
        return self._report(self.base, f"Found {count} {self.label}")

    def increment_processed(self, item: str | None = None) -> int:
        self.processed += 1
        message = f"Processing {self.label} ({self.processed}/{self.total})"
        if item:
            message += f": {item}"
        return self._report(self.compute(self.processed), message)

    def compute(self, processed: int) -> int:
        if processed >= self.total:
            return self.maximum
        span = self.maximum - self.base
        return self.base + (span * processed) // self.total

    def _report(self, value: int, message: str) -> int:
        self.current = max(self.current, min(self.maximum, value))
        self.sink.update_progress(self.current, message)
        return self.current

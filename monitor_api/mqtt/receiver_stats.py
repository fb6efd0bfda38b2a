"""Statistics for the telemetry ingestor."""

from __future__ import annotations

import threading


class ReceiverStats:
    """Estadísticas del receptor MQTT de telemetría."""

    def __init__(self):
        self.received = 0
        self.processed = 0
        self.failed = 0
        self.aggregates = 0
        self.last_message_at: float = 0
        self._lock = threading.Lock()

    def incr(self, name: str, amount: int = 1) -> None:
        with self._lock:
            setattr(self, name, getattr(self, name) + amount)

    def __str__(self) -> str:
        return (
            f"Stats: received={self.received} processed={self.processed} "
            f"failed={self.failed} aggregates={self.aggregates}"
        )

    def to_dict(self) -> dict:
        """Convert stats to dictionary."""
        with self._lock:
            return {
                "received": self.received,
                "processed": self.processed,
                "failed": self.failed,
                "aggregates": self.aggregates,
                "last_message_at": self.last_message_at,
            }

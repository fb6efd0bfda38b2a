"""Singleton management for the telemetry receiver."""

from __future__ import annotations

import logging
from typing import Optional

from common.config import Settings
from common.data_store import DataStore
from ..telemetry.sink import AggregateSink
from .receiver import TelemetryReceiver

logger = logging.getLogger(__name__)

# Singleton
_receiver: Optional[TelemetryReceiver] = None


def get_receiver() -> Optional[TelemetryReceiver]:
    """Obtiene el receptor singleton."""
    return _receiver


def start_receiver(settings: Settings, store: DataStore) -> bool:
    """Inicia el receptor (idempotente)."""
    global _receiver

    if _receiver is not None:
        return _receiver.is_running

    sink = AggregateSink(store, settings.aggregates_collection)
    _receiver = TelemetryReceiver.from_settings(settings, sink)
    return _receiver.start()


def stop_receiver():
    """Detiene el receptor."""
    global _receiver

    if _receiver is not None:
        _receiver.stop()
        _receiver = None

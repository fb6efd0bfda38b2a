"""Pipeline de telemetría: ventanas de agregación y persistencia de medias."""

from .models import AggregatedReading, SensorReading
from .sink import AggregateSink
from .window import DEFAULT_CAPACITY, AggregationWindow, WindowRegistry

__all__ = [
    "AggregatedReading",
    "SensorReading",
    "AggregateSink",
    "AggregationWindow",
    "WindowRegistry",
    "DEFAULT_CAPACITY",
]

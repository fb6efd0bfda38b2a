"""Receptor MQTT de telemetría.

Estructura modular:
- client.py: conexión paho-mqtt (TLS, suscripciones)
- validators.py: validación de payloads
- receiver.py: ingestor de lecturas y receptor
- receiver_singleton.py: ciclo de vida del receptor del proceso
"""

from .client import MQTTClient
from .receiver import LastReading, ReadingIngestor, TelemetryReceiver
from .receiver_singleton import get_receiver, start_receiver, stop_receiver
from .validators import SensorReadingPayload, ValidationResult, validate_sensor_reading

__all__ = [
    "MQTTClient",
    "LastReading",
    "ReadingIngestor",
    "TelemetryReceiver",
    "get_receiver",
    "start_receiver",
    "stop_receiver",
    "SensorReadingPayload",
    "ValidationResult",
    "validate_sensor_reading",
]

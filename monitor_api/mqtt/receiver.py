"""Receptor MQTT de telemetría.

Flujo:
  MQTT topic robot/sensores
  → ReadingIngestor.on_message (este archivo)
  → WindowRegistry (una ventana por dispositivo)
  → AggregateSink → colección de agregados

Un mensaje malformado se descarta y se contabiliza; nunca corta la
suscripción ni toca la ventana.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import orjson
from prometheus_client import Counter

from common.config import Settings
from ..telemetry.models import AggregatedReading, SensorReading
from ..telemetry.sink import AggregateSink
from ..telemetry.window import WindowRegistry
from .client import MQTTClient
from .receiver_stats import ReceiverStats
from .validators import validate_sensor_reading

logger = logging.getLogger(__name__)

MQTT_TELEMETRY_MESSAGES = Counter(
    "mqtt_telemetry_messages_total",
    "Telemetry messages received over MQTT",
    ["status"],  # processed, parse_error, validation_error, processing_error
)


@dataclass(frozen=True)
class LastReading:
    """Última lectura individual recibida (antes de agregar)."""

    reading: SensorReading
    device_key: str
    topic: str
    received_at: datetime

    def to_dict(self) -> dict:
        return {
            **self.reading.to_dict(),
            "deviceKey": self.device_key,
            "receivedAt": self.received_at.isoformat(),
        }


class ReadingIngestor:
    """Convierte mensajes crudos en lecturas y alimenta las ventanas."""

    def __init__(self, windows: WindowRegistry, sink: AggregateSink):
        self._windows = windows
        self._sink = sink
        self._stats = ReceiverStats()
        self._last: Optional[LastReading] = None
        self._last_lock = threading.Lock()

    @property
    def windows(self) -> WindowRegistry:
        return self._windows

    @property
    def sink(self) -> AggregateSink:
        return self._sink

    @property
    def stats(self) -> ReceiverStats:
        return self._stats

    @property
    def last_reading(self) -> Optional[LastReading]:
        with self._last_lock:
            return self._last

    def on_message(self, topic: str, raw_payload: bytes) -> Optional[AggregatedReading]:
        """Procesa un mensaje del broker. Devuelve el agregado si cerró ventana."""
        self._stats.incr("received")
        self._stats.last_message_at = time.time()

        try:
            try:
                data = orjson.loads(raw_payload)
            except orjson.JSONDecodeError as e:
                logger.warning("[INGEST] Invalid JSON: %s (topic=%s)", e, topic)
                self._stats.incr("failed")
                MQTT_TELEMETRY_MESSAGES.labels(status="parse_error").inc()
                return None

            validation = validate_sensor_reading(data)
            if not validation.valid:
                logger.warning(
                    "[INGEST] Validation failed: %s (topic=%s)",
                    validation.error,
                    topic,
                )
                self._stats.incr("failed")
                MQTT_TELEMETRY_MESSAGES.labels(status="validation_error").inc()
                return None

            for warn in validation.warnings:
                logger.debug("[INGEST] Warning: %s", warn)

            payload = validation.payload
            reading = payload.to_reading()
            device_key = payload.device_id or topic
            logger.debug("[INGEST] Received: topic=%s device=%s reading=%s", topic, device_key, reading)

            with self._last_lock:
                self._last = LastReading(
                    reading=reading,
                    device_key=device_key,
                    topic=topic,
                    received_at=datetime.now(timezone.utc),
                )

            aggregate = self._windows.push(device_key, reading)
            self._stats.incr("processed")
            MQTT_TELEMETRY_MESSAGES.labels(status="processed").inc()

            if aggregate is not None:
                self._stats.incr("aggregates")
                self._sink.persist(aggregate)
            return aggregate

        except Exception as e:
            logger.exception("[INGEST] Processing error: %s", e)
            self._stats.incr("failed")
            MQTT_TELEMETRY_MESSAGES.labels(status="processing_error").inc()
            return None


class TelemetryReceiver:
    """Une el cliente MQTT con el ingestor."""

    def __init__(self, client: MQTTClient, ingestor: ReadingIngestor):
        self._client = client
        self._ingestor = ingestor
        self._running = False
        self._client.set_message_handler(self._ingestor.on_message)

    @classmethod
    def from_settings(cls, settings: Settings, sink: AggregateSink) -> "TelemetryReceiver":
        client = MQTTClient(
            broker_host=settings.mqtt_broker_host,
            broker_port=settings.mqtt_broker_port,
            username=settings.mqtt_username,
            password=settings.mqtt_password,
            topics=settings.mqtt_topics,
            tls=settings.mqtt_tls,
        )
        ingestor = ReadingIngestor(WindowRegistry(settings.window_capacity, settings.window_max_devices), sink)
        return cls(client, ingestor)

    @property
    def ingestor(self) -> ReadingIngestor:
        return self._ingestor

    def start(self) -> bool:
        """Inicia el receptor MQTT."""
        self._running = self._client.connect()
        if self._running:
            logger.info("[MQTT] Receiver started topics=%s", ",".join(self._client.topics))
        else:
            logger.error("[MQTT] Receiver failed to start")
        return self._running

    def stop(self):
        """Detiene el receptor."""
        self._running = False
        self._client.disconnect()
        logger.info("[MQTT] Receiver stopped. %s", self._ingestor.stats)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_connected(self) -> bool:
        return self._client.is_connected

    def health_check(self) -> dict:
        stats = self._ingestor.stats.to_dict()
        last_at = stats["last_message_at"]
        return {
            "healthy": self._running and self.is_connected,
            "running": self._running,
            "connected": self.is_connected,
            "broker": f"{self._client.broker_host}:{self._client.broker_port}",
            "reconnect_count": self._client.reconnect_count,
            "messages": stats,
            "last_message_age_seconds": time.time() - last_at if last_at > 0 else None,
            "windows": self._ingestor.windows.stats(),
            "sink": self._ingestor.sink.stats,
        }

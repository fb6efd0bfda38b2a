"""Cliente MQTT para recepción de telemetría."""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, Optional

import paho.mqtt.client as mqtt

logger = logging.getLogger(__name__)

MessageHandler = Callable[[str, bytes], None]


class MQTTClient:
    """Cliente MQTT ligero para recepción de lecturas.

    Responsabilidades:
    - Conexión/desconexión a broker MQTT (TLS opcional)
    - Suscripción a topics (se repite en cada reconexión)
    - Delegación de mensajes a handler
    """

    def __init__(
        self,
        broker_host: str = "localhost",
        broker_port: int = 8883,
        username: Optional[str] = None,
        password: Optional[str] = None,
        topics: Iterable[str] = ("robot/sensores",),
        tls: bool = True,
        client_id: str = "monitor-telemetry",
    ):
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.username = username
        self.password = password
        self.topics = tuple(topics)
        self.tls = tls
        self.client_id = f"{client_id}-{int(time.time())}"

        self._client: Optional[mqtt.Client] = None
        self._connected = False
        self._connect_count = 0
        self._message_handler: Optional[MessageHandler] = None

    def set_message_handler(self, handler: MessageHandler):
        """Configura el handler de mensajes."""
        self._message_handler = handler

    def connect(self, timeout_seconds: float = 5.0) -> bool:
        """Conecta al broker MQTT. No lanza excepciones."""
        try:
            self._client = mqtt.Client(
                callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
                client_id=self.client_id,
                protocol=mqtt.MQTTv311,
            )

            self._client.on_connect = self._on_connect
            self._client.on_disconnect = self._on_disconnect
            self._client.on_message = self._on_message

            if self.username and self.password:
                self._client.username_pw_set(self.username, self.password)
            if self.tls:
                self._client.tls_set()
            self._client.reconnect_delay_set(min_delay=1, max_delay=30)

            logger.info(
                "[MQTT] Connecting to %s:%d tls=%s",
                self.broker_host,
                self.broker_port,
                self.tls,
            )
            self._client.connect(self.broker_host, self.broker_port, keepalive=60)
            self._client.loop_start()

            # Esperar conexión
            for _ in range(max(1, int(timeout_seconds * 10))):
                if self._connected:
                    return True
                time.sleep(0.1)

            logger.error("[MQTT] Connection timeout")
            return False

        except Exception as e:
            logger.exception("[MQTT] Connection failed: %s", e)
            return False

    def disconnect(self):
        """Desconecta del broker."""
        if self._client:
            try:
                self._client.loop_stop()
                self._client.disconnect()
            except Exception as e:
                logger.warning("[MQTT] Disconnect error: %s", e)
        self._connected = False

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        """Callback de conexión."""
        if reason_code.is_failure:
            self._connected = False
            logger.error("[MQTT] Connection refused: %s", reason_code)
            return

        self._connected = True
        self._connect_count += 1
        logger.info("[MQTT] Connected to broker (connects=%d)", self._connect_count)
        for topic in self.topics:
            client.subscribe(topic, qos=1)
            logger.info("[MQTT] Subscribed to %s", topic)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        """Callback de desconexión."""
        self._connected = False
        logger.warning("[MQTT] Disconnected (%s)", reason_code)

    def _on_message(self, client, userdata, msg):
        """Callback de mensaje - delega al handler."""
        if self._message_handler:
            self._message_handler(msg.topic, msg.payload)

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def reconnect_count(self) -> int:
        return max(0, self._connect_count - 1)

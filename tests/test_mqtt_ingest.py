"""Tests de ingesta MQTT de telemetría.

Cubre:
1. Validación de payloads (nombres actuales y del firmware)
2. Payload malformado: se descarta sin tocar la ventana
3. Clave de dispositivo (deviceId o topic)
4. Cierre de ventana → agregado persistido
5. Callbacks del cliente paho (suscripción en cada conexión)

Ejecutar:
    pytest tests/test_mqtt_ingest.py -v
"""

import json
from typing import Any, Dict
from unittest.mock import MagicMock

import pytest

from common.data_store import InMemoryDataStore
from monitor_api.mqtt.client import MQTTClient
from monitor_api.mqtt.receiver import ReadingIngestor, TelemetryReceiver
from monitor_api.mqtt.validators import SensorReadingPayload, validate_sensor_reading
from monitor_api.telemetry import AggregateSink, WindowRegistry

TOPIC = "robot/sensores"


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def valid_payload() -> Dict[str, Any]:
    """Payload MQTT válido."""
    return {"temperature": 23.4, "humidity": 51.0, "gasLevel": 12.7, "deviceId": "robot-1"}


@pytest.fixture
def firmware_payload() -> Dict[str, Any]:
    """Payload con los nombres que publica el firmware."""
    return {"temperatura": 23.4, "humedad": 51.0, "gas": 12.7}


@pytest.fixture
def store() -> InMemoryDataStore:
    return InMemoryDataStore()


@pytest.fixture
def ingestor(store) -> ReadingIngestor:
    return ReadingIngestor(WindowRegistry(capacity=3), AggregateSink(store))


def _raw(data: Dict[str, Any]) -> bytes:
    return json.dumps(data).encode()


# =============================================================================
# TEST 1: VALIDACIÓN
# =============================================================================

class TestPayloadValidation:
    """Validación de payloads de lectura."""

    def test_valid_payload(self, valid_payload):
        result = validate_sensor_reading(valid_payload)

        assert result.valid
        assert result.payload.device_id == "robot-1"
        reading = result.payload.to_reading()
        assert (reading.temperature, reading.humidity, reading.gas_level) == (23.4, 51.0, 12.7)
        assert result.warnings == []

    def test_firmware_field_names(self, firmware_payload):
        result = validate_sensor_reading(firmware_payload)

        assert result.valid
        assert result.payload.gas_level == 12.7
        assert result.payload.device_id is None
        assert result.warnings

    def test_integer_values_accepted(self):
        result = validate_sensor_reading({"temperature": 20, "humidity": 50, "gasLevel": 0})
        assert result.valid
        assert result.payload.gas_level == 0.0

    def test_numeric_device_id_normalized(self, valid_payload):
        valid_payload["deviceId"] = 7
        assert validate_sensor_reading(valid_payload).payload.device_id == "7"

    @pytest.mark.parametrize("missing", ["temperature", "humidity", "gasLevel"])
    def test_missing_field(self, valid_payload, missing):
        del valid_payload[missing]
        result = validate_sensor_reading(valid_payload)

        assert not result.valid
        assert "Invalid fields" in result.error

    @pytest.mark.parametrize("bad", ["23.4", True, None, [1], {"v": 1}])
    def test_non_numeric_rejected(self, valid_payload, bad):
        valid_payload["temperature"] = bad
        assert not validate_sensor_reading(valid_payload).valid

    @pytest.mark.parametrize("bad", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_rejected(self, valid_payload, bad):
        valid_payload["humidity"] = bad
        assert not validate_sensor_reading(valid_payload).valid

    @pytest.mark.parametrize("data", [[1, 2, 3], "hola", 42, None])
    def test_non_object_rejected(self, data):
        result = validate_sensor_reading(data)
        assert not result.valid
        assert "JSON object" in result.error

    def test_model_ignores_extra_fields(self, valid_payload):
        valid_payload["firmware"] = "1.2.3"
        payload = SensorReadingPayload.model_validate(valid_payload)
        assert payload.temperature == 23.4


# =============================================================================
# TEST 2: INGESTOR
# =============================================================================

class TestReadingIngestor:
    """Flujo mensaje → ventana → sink."""

    def test_malformed_json_dropped(self, ingestor):
        assert ingestor.on_message(TOPIC, b"{not json") is None

        assert ingestor.stats.failed == 1
        assert ingestor.stats.processed == 0
        assert ingestor.windows.pending(TOPIC) == 0
        assert ingestor.last_reading is None

    def test_invalid_payload_does_not_touch_window(self, ingestor, valid_payload):
        ingestor.on_message(TOPIC, _raw(valid_payload))
        ingestor.on_message(TOPIC, _raw({"temperature": "hot"}))

        assert ingestor.windows.pending("robot-1") == 1
        assert ingestor.stats.received == 2
        assert ingestor.stats.failed == 1

    def test_device_key_falls_back_to_topic(self, ingestor, firmware_payload):
        ingestor.on_message(TOPIC, _raw(firmware_payload))

        assert ingestor.windows.pending(TOPIC) == 1
        assert ingestor.last_reading.device_key == TOPIC

    def test_last_reading(self, ingestor, valid_payload):
        ingestor.on_message(TOPIC, _raw(valid_payload))

        last = ingestor.last_reading.to_dict()
        assert last["temperature"] == 23.4
        assert last["gasLevel"] == 12.7
        assert last["deviceKey"] == "robot-1"
        assert "receivedAt" in last

    def test_full_window_persists_aggregate(self, ingestor, store):
        readings = [
            {"temperature": 20, "humidity": 40, "gasLevel": 10, "deviceId": "r"},
            {"temperature": 22, "humidity": 42, "gasLevel": 11, "deviceId": "r"},
            {"temperature": 24, "humidity": 44, "gasLevel": 12, "deviceId": "r"},
        ]
        results = [ingestor.on_message(TOPIC, _raw(r)) for r in readings]

        assert results[:2] == [None, None]
        assert results[2].temperature == 22.0
        rows = store.select("sensores_Data").data
        assert len(rows) == 1
        assert rows[0]["humidity"] == 42.0
        assert rows[0]["gasLevel"] == 11.0
        assert ingestor.stats.aggregates == 1

    def test_sink_failure_keeps_pipeline_running(self, valid_payload):
        failing_store = MagicMock()
        failing_store.insert.side_effect = RuntimeError("db down")
        ingestor = ReadingIngestor(WindowRegistry(capacity=1), AggregateSink(failing_store))

        assert ingestor.on_message(TOPIC, _raw(valid_payload)) is not None
        assert ingestor.on_message(TOPIC, _raw(valid_payload)) is not None
        assert ingestor.stats.processed == 2


# =============================================================================
# TEST 3: CLIENTE MQTT
# =============================================================================

class TestMQTTClient:
    """Callbacks paho v2."""

    def test_on_connect_subscribes_all_topics(self):
        client = MQTTClient(topics=("robot/sensores", "robot/extra"), tls=False)
        paho = MagicMock()
        reason = MagicMock(is_failure=False)

        client._on_connect(paho, None, None, reason, None)

        assert client.is_connected
        subscribed = [c.args[0] for c in paho.subscribe.call_args_list]
        assert subscribed == ["robot/sensores", "robot/extra"]

    def test_reconnect_counted(self):
        client = MQTTClient(tls=False)
        paho = MagicMock()
        ok = MagicMock(is_failure=False)

        client._on_connect(paho, None, None, ok, None)
        client._on_disconnect(paho, None, None, MagicMock(), None)
        assert not client.is_connected
        client._on_connect(paho, None, None, ok, None)

        assert client.reconnect_count == 1

    def test_refused_connection(self):
        client = MQTTClient(tls=False)
        paho = MagicMock()

        client._on_connect(paho, None, None, MagicMock(is_failure=True), None)

        assert not client.is_connected
        paho.subscribe.assert_not_called()

    def test_on_message_delegates(self):
        client = MQTTClient(tls=False)
        handler = MagicMock()
        client.set_message_handler(handler)

        client._on_message(None, None, MagicMock(topic=TOPIC, payload=b"{}"))

        handler.assert_called_once_with(TOPIC, b"{}")


# =============================================================================
# TEST 4: RECEPTOR
# =============================================================================

class TestTelemetryReceiver:

    def test_start_stop(self, ingestor):
        client = MagicMock(topics=(TOPIC,), broker_host="localhost", broker_port=1883, reconnect_count=0)
        client.connect.return_value = True
        client.is_connected = True
        receiver = TelemetryReceiver(client, ingestor)

        assert receiver.start() is True
        client.set_message_handler.assert_called_once_with(ingestor.on_message)
        health = receiver.health_check()
        assert health["healthy"] is True
        assert health["windows"]["capacity"] == 3

        receiver.stop()
        assert receiver.is_running is False
        client.disconnect.assert_called_once()

    def test_failed_start(self, ingestor):
        client = MagicMock(topics=(TOPIC,))
        client.connect.return_value = False
        receiver = TelemetryReceiver(client, ingestor)

        assert receiver.start() is False
        assert receiver.is_running is False

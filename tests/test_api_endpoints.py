"""Tests de la API HTTP (SOS, telemetría, health).

Las dependencias se sustituyen en conftest.py: store en memoria y
transportes falsos. El lifespan no se ejecuta.

Ejecutar:
    pytest tests/test_api_endpoints.py -v
"""

import json
from unittest.mock import patch

import pytest

from common.data_store import InMemoryDataStore
from monitor_api import deps
from monitor_api.mqtt.receiver import ReadingIngestor
from monitor_api.telemetry import AggregateSink, AggregatedReading, WindowRegistry

from conftest import make_settings


# =============================================================================
# TEST: IDENTIDAD Y API KEY
# =============================================================================

class TestAuth:

    def test_missing_user_header(self, client):
        response = client.get("/api/sos/configuracion")
        assert response.status_code == 401

    def test_api_key_required_when_configured(self, app, client, auth_headers, add_user):
        add_user("u1")
        app.dependency_overrides[deps.get_app_settings] = lambda: make_settings(api_key="secret")

        assert client.get("/api/sos/configuracion", headers=auth_headers).status_code == 401
        headers = {**auth_headers, "X-API-Key": "wrong"}
        assert client.get("/api/sos/configuracion", headers=headers).status_code == 401
        headers = {**auth_headers, "X-API-Key": "secret"}
        assert client.get("/api/sos/configuracion", headers=headers).status_code == 200

    def test_production_without_api_key(self, app, client, auth_headers):
        app.dependency_overrides[deps.get_app_settings] = lambda: make_settings(environment="production")
        assert client.get("/api/sos/configuracion", headers=auth_headers).status_code == 500


# =============================================================================
# TEST: CONTACTOS Y CONFIGURACIÓN
# =============================================================================

class TestContactEndpoints:

    @pytest.mark.parametrize("path", ["/api/sos/configure-contacts", "/api/sos/configurar-contactos"])
    def test_configure_contacts(self, client, auth_headers, add_user, path):
        add_user("u1", phone=None, chat_id=None)
        response = client.post(path, json={"telefono_sos": "+5493512345678"}, headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["telefono_sos"] == "+5493512345678"
        assert body["telegram_id"] is None

    def test_invalid_phone(self, client, auth_headers):
        response = client.post("/api/sos/configurar-contactos", json={"telefono_sos": "12345"}, headers=auth_headers)

        assert response.status_code == 400
        assert "Formato de teléfono inválido" in response.json()["detail"]

    def test_numeric_chat_id(self, client, auth_headers, add_user):
        add_user("u1")
        response = client.post("/api/sos/configurar-contactos", json={"telegram_id": 123456789}, headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["telegram_id"] == "123456789"

    def test_empty_body(self, client, auth_headers):
        assert client.post("/api/sos/configurar-contactos", json={}, headers=auth_headers).status_code == 400

    def test_get_configuration(self, client, auth_headers, add_user):
        add_user("u1")

        body = client.get("/api/sos/configuracion", headers=auth_headers).json()

        assert body["telefono_sos"] == "+5493512345678"
        assert body["sos_activado"] is True
        assert body["sos_auto_enviar"] is False
        assert body["sos_umbrales"] == {"temperatura_max": 40, "co_max": 50, "bateria_min": 10}

    def test_get_configuration_unknown_user(self, client, auth_headers):
        assert client.get("/api/sos/configuracion", headers=auth_headers).status_code == 404

    def test_configure_thresholds(self, client, auth_headers):
        response = client.put(
            "/api/sos/configurar-umbrales",
            json={"temperatura_max": 38, "sos_auto_enviar": True},
            headers=auth_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["umbrales"] == {"temperatura_max": 38, "co_max": 50, "bateria_min": 10}
        assert body["sos_auto_enviar"] is True
        assert body["enviar_por_telegram"] is None

    def test_delete_contact(self, client, auth_headers, add_user, store):
        add_user("u1")

        response = client.delete("/api/sos/eliminar-contacto", params={"tipo": "telegram"}, headers=auth_headers)

        assert response.status_code == 200
        assert store.select("usuarios", {"id": "u1"}).first["telegram_id"] is None

    def test_unknown_user_contacts_not_created(self, client, auth_headers, store):
        configure = client.post("/api/sos/configurar-contactos", json={"telegram_id": "123456789"}, headers=auth_headers)
        delete = client.delete("/api/sos/eliminar-contacto", params={"tipo": "telefono"}, headers=auth_headers)

        assert configure.status_code == 404
        assert delete.status_code == 404
        assert delete.json()["detail"] == "Usuario no encontrado"
        assert store.select("usuarios").data == []
        assert client.get("/api/sos/configuracion", headers=auth_headers).status_code == 404
        assert client.post("/api/sos/enviar", json={}, headers=auth_headers).json()["detail"] == "Usuario no encontrado"

    @pytest.mark.parametrize("params", [{}, {"tipo": "email"}])
    def test_delete_contact_invalid_type(self, client, auth_headers, params):
        response = client.delete("/api/sos/eliminar-contacto", params=params, headers=auth_headers)
        assert response.status_code == 400


# =============================================================================
# TEST: ENVÍO SOS
# =============================================================================

class TestSendEndpoints:

    def test_manual_without_contacts(self, client, auth_headers, add_user, store):
        add_user("u1", phone=None, chat_id=None)

        response = client.post("/api/sos/enviar", json={}, headers=auth_headers)

        assert response.status_code == 400
        assert "contactos SOS" in response.json()["detail"]
        assert store.select("mensajes_sos").data == []

    def test_manual_success(self, client, auth_headers, add_user, whatsapp, telegram, store):
        add_user("u1")

        response = client.post(
            "/api/sos/enviar",
            json={"ubicacion": {"lat": -31.4, "lon": -64.2}},
            headers=auth_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["canales_enviados"] == ["whatsapp", "telegram"]
        assert body["total_enviados"] == 2
        assert "ana@example.com" in whatsapp.sent[0][1]
        assert len(telegram.locations) == 1
        assert len(store.select("alertas").data) == 1

    def test_manual_all_channels_fail(self, client, auth_headers, add_user, whatsapp, telegram, store):
        add_user("u1")
        whatsapp.ok = False
        telegram.ok = False

        response = client.post("/api/sos/enviar", json={"mensaje": "ayuda"}, headers=auth_headers)

        assert response.status_code == 500
        assert response.json()["detail"] == "No se pudo enviar ningún mensaje SOS"
        assert len(store.select("mensajes_sos").data) == 2
        assert store.select("alertas").data == []

    def test_automatic_sos_disabled(self, client, auth_headers, add_user, store):
        add_user("u1")
        store.insert("configuracion_usuario", {"user_id": "u1", "sos_activado": False, "sos_auto_enviar": True})

        response = client.post(
            "/api/sos/enviar-automatico",
            json={"tipo_emergencia": "gas_detectado", "valor_actual": 300},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Sistema SOS no está activado"

    def test_automatic_missing_fields(self, client, auth_headers):
        response = client.post("/api/sos/enviar-automatico", json={"tipo_emergencia": "gas_detectado"}, headers=auth_headers)
        assert response.status_code == 400

    def test_automatic_success(self, client, auth_headers, add_user, store, telegram):
        add_user("u1", phone=None)
        store.insert("configuracion_usuario", {"user_id": "u1", "sos_auto_enviar": True})

        response = client.post(
            "/api/sos/enviar-automatico",
            json={"tipo_emergencia": "gas_detectado", "valor_actual": 300, "dispositivo_id": 4},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["canales_enviados"] == ["telegram"]
        assert telegram.sent[0][1] == "💨 EMERGENCIA: Nivel de gas peligroso detectado: 300ppm"
        alert = store.select("alertas").data[0]
        assert alert["tipo_alerta"] == "gas_detectado"
        assert alert["dispositivo_id"] == 4

    def test_test_telegram(self, client, auth_headers, add_user, telegram):
        add_user("u1")

        response = client.post("/api/sos/test-telegram", headers=auth_headers)

        assert response.status_code == 200
        assert telegram.sent[0][0] == "123456789"

    def test_test_telegram_without_chat(self, client, auth_headers, add_user):
        add_user("u1", chat_id=None)
        assert client.post("/api/sos/test-telegram", headers=auth_headers).status_code == 400

    def test_test_telegram_failure(self, client, auth_headers, add_user, telegram):
        add_user("u1")
        telegram.ok = False
        assert client.post("/api/sos/test-telegram", headers=auth_headers).status_code == 500


# =============================================================================
# TEST: HISTORIAL
# =============================================================================

class TestHistoryEndpoint:

    def _send(self, client, auth_headers, n):
        for _ in range(n):
            assert client.post("/api/sos/enviar", json={}, headers=auth_headers).status_code == 200

    def test_history(self, client, auth_headers, add_user):
        add_user("u1")
        self._send(client, auth_headers, 3)

        body = client.get("/api/sos/historial", params={"limite": 4}, headers=auth_headers).json()

        assert body["total"] == 4
        stamps = [r["enviado_at"] for r in body["data"]]
        assert stamps == sorted(stamps, reverse=True)

    @pytest.mark.parametrize("canal, expected", [("chat", "telegram"), ("phone", "whatsapp"), ("telegram", "telegram")])
    def test_history_channel_alias(self, client, auth_headers, add_user, canal, expected):
        add_user("u1")
        self._send(client, auth_headers, 2)

        body = client.get("/api/sos/historial", params={"canal": canal}, headers=auth_headers).json()

        assert body["total"] == 2
        assert {r["canal"] for r in body["data"]} == {expected}

    def test_history_invalid_channel(self, client, auth_headers):
        response = client.get("/api/sos/historial", params={"canal": "sms"}, headers=auth_headers)
        assert response.status_code == 400

    def test_history_invalid_limit(self, client, auth_headers):
        response = client.get("/api/sos/historial", params={"limite": 0}, headers=auth_headers)
        assert response.status_code == 422


# =============================================================================
# TEST: TELEMETRÍA Y HEALTH
# =============================================================================

class TestTelemetryEndpoints:

    def test_no_reading_yet(self, app, client):
        app.dependency_overrides[deps.get_ingestor] = lambda: None
        assert client.get("/api/sensores").status_code == 404

    def test_latest_reading(self, app, client, store):
        ingestor = ReadingIngestor(WindowRegistry(capacity=12), AggregateSink(store))
        ingestor.on_message("robot/sensores", json.dumps({"temperatura": 21.5, "humedad": 40, "gas": 3}).encode())
        app.dependency_overrides[deps.get_ingestor] = lambda: ingestor

        body = client.get("/api/sensores").json()

        assert body["temperature"] == 21.5
        assert body["gasLevel"] == 3.0
        assert body["deviceKey"] == "robot/sensores"

    def test_latest_aggregates(self, client, store):
        sink = AggregateSink(store)
        for t in range(12):
            sink.persist(AggregatedReading(float(t), 50.0, 10.0))

        rows = client.get("/api/promedios").json()

        assert len(rows) == 10
        assert rows[0]["temperature"] == 11.0


class TestHealthEndpoints:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_ready_without_mqtt(self, client):
        # mqtt_enabled=False en los settings de test
        assert client.get("/ready").status_code == 200

    def test_not_ready_without_receiver(self, app, client):
        app.dependency_overrides[deps.get_app_settings] = lambda: make_settings(mqtt_enabled=True)
        with patch("monitor_api.endpoints.health.get_receiver", return_value=None):
            assert client.get("/ready").status_code == 503

    def test_metrics_without_receiver(self, client):
        with patch("monitor_api.endpoints.health.get_receiver", return_value=None):
            assert client.get("/metrics").json() == {"mqtt": {"status": "not_initialized"}}

    def test_prometheus(self, client):
        response = client.get("/metrics/prometheus")
        assert response.status_code == 200
        assert "sos_channel_deliveries" in response.text


def test_in_memory_store_used_in_dev():
    from common.data_store import create_data_store

    assert isinstance(create_data_store(make_settings()), InMemoryDataStore)


def test_production_requires_database():
    from common.data_store import create_data_store

    with pytest.raises(RuntimeError):
        create_data_store(make_settings(environment="production"))

"""Fixtures compartidas: store en memoria, transportes falsos y cliente HTTP."""

from __future__ import annotations

from typing import List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

from common.config import Settings
from common.data_store import InMemoryDataStore
from monitor_api import deps
from monitor_api.main import create_app
from monitor_api.sos.channels import ChannelResult, ChannelTransport
from monitor_api.sos.config_store import AlertConfigurationStore
from monitor_api.sos.delivery_tracker import DeliveryTracker
from monitor_api.sos.dispatcher import DispatchCoordinator
from monitor_api.sos.models import Channel, Coordinates


def make_settings(**overrides) -> Settings:
    values = dict(
        environment="test",
        database_url="",
        default_device_id=1,
        mqtt_enabled=False,
        mqtt_broker_host="localhost",
        mqtt_broker_port=1883,
        mqtt_username=None,
        mqtt_password=None,
        mqtt_tls=False,
        mqtt_topics=("robot/sensores",),
        window_capacity=12,
        window_max_devices=1000,
        aggregates_collection="sensores_Data",
        telegram_bot_token=None,
        telegram_api_url="https://api.telegram.org",
        whatsapp_api_url="https://graph.facebook.com/v19.0",
        whatsapp_token=None,
        whatsapp_phone_number_id=None,
        channel_timeout_seconds=5.0,
        api_key=None,
    )
    values.update(overrides)
    return Settings(**values)


class FakeTransport(ChannelTransport):
    """Transporte que registra los envíos y devuelve un resultado fijo."""

    def __init__(
        self,
        channel: Channel,
        ok: bool = True,
        error: str = "send failed",
        location_ok: bool = True,
        location_raises: bool = False,
    ):
        self.channel = channel
        self.ok = ok
        self.error = error
        self.location_ok = location_ok
        self.location_raises = location_raises
        self.sent: List[Tuple[str, str]] = []
        self.locations: List[Tuple[str, Coordinates]] = []

    def send_message(self, destination: str, text: str) -> ChannelResult:
        self.sent.append((destination, text))
        if self.ok:
            return ChannelResult(ok=True, response={"ok": True})
        return ChannelResult.failed(self.error)

    def send_location(self, destination: str, coordinates: Coordinates) -> ChannelResult:
        self.locations.append((destination, coordinates))
        if self.location_raises:
            raise RuntimeError("location boom")
        if self.location_ok:
            return ChannelResult(ok=True)
        return ChannelResult.failed("location rejected")


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def store() -> InMemoryDataStore:
    return InMemoryDataStore()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def config_store(store) -> AlertConfigurationStore:
    return AlertConfigurationStore(store)


@pytest.fixture
def tracker(store) -> DeliveryTracker:
    return DeliveryTracker(store)


@pytest.fixture
def whatsapp() -> FakeTransport:
    return FakeTransport(Channel.WHATSAPP)


@pytest.fixture
def telegram() -> FakeTransport:
    return FakeTransport(Channel.TELEGRAM)


@pytest.fixture
def transports(whatsapp, telegram):
    return {Channel.WHATSAPP: whatsapp, Channel.TELEGRAM: telegram}


@pytest.fixture
def dispatcher(transports, tracker, store) -> DispatchCoordinator:
    return DispatchCoordinator(transports, tracker, store, default_device_id=1)


def _seed_user(
    store: InMemoryDataStore,
    user_id: str = "u1",
    phone: Optional[str] = "+5493512345678",
    chat_id: Optional[str] = "123456789",
    email: Optional[str] = "ana@example.com",
) -> None:
    store.insert(
        "usuarios",
        {"id": user_id, "telefono_sos": phone, "telegram_id": chat_id, "email": email},
    )


@pytest.fixture
def add_user(store):
    """Crea filas en `usuarios`: add_user(user_id, phone=..., chat_id=...)."""
    def _add(user_id: str = "u1", **kwargs) -> None:
        _seed_user(store, user_id, **kwargs)
    return _add


@pytest.fixture
def app(store, settings, transports):
    application = create_app()
    application.dependency_overrides[deps.get_store] = lambda: store
    application.dependency_overrides[deps.get_app_settings] = lambda: settings
    application.dependency_overrides[deps.get_transports] = lambda: transports
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def client(app) -> TestClient:
    # Sin context manager: el lifespan (MQTT, store real) no se ejecuta
    return TestClient(app)


@pytest.fixture
def auth_headers():
    return {"X-User-Id": "u1", "X-User-Email": "ana@example.com"}

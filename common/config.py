from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple
from urllib.parse import urlparse

from dotenv import load_dotenv


def _default_env_file() -> str:
    return str(Path.cwd() / ".env")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    environment: str

    database_url: str
    default_device_id: int

    mqtt_enabled: bool
    mqtt_broker_host: str
    mqtt_broker_port: int
    mqtt_username: str | None
    mqtt_password: str | None
    mqtt_tls: bool
    mqtt_topics: Tuple[str, ...]

    window_capacity: int
    window_max_devices: int
    aggregates_collection: str

    telegram_bot_token: str | None
    telegram_api_url: str
    whatsapp_api_url: str
    whatsapp_token: str | None
    whatsapp_phone_number_id: str | None
    channel_timeout_seconds: float

    api_key: str | None

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


def _broker_from_url(url: str, host: str, port: int, tls: bool) -> Tuple[str, int, bool]:
    # mqtts://host:8883 -> TLS; mqtt://host:1883 -> plano
    parsed = urlparse(url)
    if not parsed.hostname:
        return host, port, tls
    secure = parsed.scheme in ("mqtts", "ssl", "tls")
    default_port = 8883 if secure else 1883
    return parsed.hostname, parsed.port or default_port, secure


def get_settings() -> Settings:
    # Load env file (if present) but still allow overriding via real environment variables.
    env_file = os.getenv("MONITOR_ENV_FILE", _default_env_file())
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    mqtt_host = os.getenv("MQTT_BROKER_HOST", "localhost")
    mqtt_port = int(os.getenv("MQTT_BROKER_PORT", "8883"))
    mqtt_tls = _env_bool("MQTT_TLS", True)

    broker_url = os.getenv("MQTT_BROKER_URL", "").strip()
    if broker_url:
        mqtt_host, mqtt_port, mqtt_tls = _broker_from_url(broker_url, mqtt_host, mqtt_port, mqtt_tls)

    topics = tuple(
        t.strip()
        for t in os.getenv("MQTT_TOPICS", "robot/sensores").split(",")
        if t.strip()
    )

    return Settings(
        environment=os.getenv("ENVIRONMENT", "development"),
        database_url=os.getenv("DATABASE_URL", "").strip(),
        default_device_id=int(os.getenv("SOS_DEFAULT_DEVICE_ID", "1")),
        mqtt_enabled=_env_bool("MQTT_ENABLED", True),
        mqtt_broker_host=mqtt_host,
        mqtt_broker_port=mqtt_port,
        mqtt_username=os.getenv("MQTT_USERNAME") or None,
        mqtt_password=os.getenv("MQTT_PASSWORD") or None,
        mqtt_tls=mqtt_tls,
        mqtt_topics=topics,
        window_capacity=int(os.getenv("TELEMETRY_WINDOW_CAPACITY", "12")),
        window_max_devices=int(os.getenv("TELEMETRY_WINDOW_MAX_DEVICES", "1000")),
        aggregates_collection=os.getenv("TELEMETRY_AGGREGATES_COLLECTION", "sensores_Data"),
        telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN") or None,
        telegram_api_url=os.getenv("TELEGRAM_API_URL", "https://api.telegram.org"),
        whatsapp_api_url=os.getenv("WHATSAPP_API_URL", "https://graph.facebook.com/v19.0"),
        whatsapp_token=os.getenv("WHATSAPP_TOKEN") or None,
        whatsapp_phone_number_id=os.getenv("WHATSAPP_PHONE_NUMBER_ID") or None,
        channel_timeout_seconds=float(os.getenv("SOS_CHANNEL_TIMEOUT_SECONDS", "10")),
        api_key=os.getenv("MONITOR_API_KEY") or None,
    )

"""Modelos de dominio del subsistema SOS.

Las columnas persistidas conservan los nombres del esquema existente
(`mensajes_sos`, `alertas`, `configuracion_usuario`, `usuarios`).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Channel(str, Enum):
    """Canal de notificación. WHATSAPP es el canal telefónico, TELEGRAM el de chat."""

    WHATSAPP = "whatsapp"
    TELEGRAM = "telegram"

    @classmethod
    def parse(cls, value: str) -> "Channel":
        """Acepta el nombre del canal o su alias genérico (phone/chat)."""
        normalized = (value or "").strip().lower()
        aliases = {"phone": cls.WHATSAPP, "chat": cls.TELEGRAM}
        if normalized in aliases:
            return aliases[normalized]
        return cls(normalized)


# Orden fijo de intento de canales
CHANNEL_ORDER: Tuple[Channel, ...] = (Channel.WHATSAPP, Channel.TELEGRAM)


class DeliveryStatus(str, Enum):
    SENT = "enviado"
    FAILED = "fallido"


class ContactKind(str, Enum):
    PHONE = "telefono"
    TELEGRAM = "telegram"


SEVERITY_CRITICAL = "critica"
MANUAL_ALERT_TYPE = "sos_activado"
MANUAL_EMERGENCY_TYPE = "manual"


@dataclass(frozen=True)
class Thresholds:
    temperature_max: float = 40
    co_max: float = 50
    battery_min: float = 10

    def to_dict(self) -> dict:
        return {
            "temperatura_max": self.temperature_max,
            "co_max": self.co_max,
            "bateria_min": self.battery_min,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Thresholds":
        if not data:
            return cls()
        defaults = cls()
        return cls(
            temperature_max=_or_default(data.get("temperatura_max"), defaults.temperature_max),
            co_max=_or_default(data.get("co_max"), defaults.co_max),
            battery_min=_or_default(data.get("bateria_min"), defaults.battery_min),
        )


def _or_default(value: Any, default: float) -> float:
    return default if value is None else value


@dataclass(frozen=True)
class AlertConfiguration:
    """Configuración SOS de un usuario (fila de `configuracion_usuario`)."""

    user_id: str
    sos_enabled: bool = True
    auto_send_enabled: bool = False
    channel_enabled: Dict[Channel, bool] = field(default_factory=dict)
    thresholds: Thresholds = field(default_factory=Thresholds)

    def is_channel_enabled(self, channel: Channel) -> bool:
        # Habilitado salvo que esté explícitamente en False
        return self.channel_enabled.get(channel) is not False

    @classmethod
    def from_row(cls, user_id: str, row: Optional[dict]) -> "AlertConfiguration":
        if not row:
            return cls(user_id=user_id)
        channel_enabled = {}
        for channel, column in ((Channel.WHATSAPP, "enviar_por_whatsapp"), (Channel.TELEGRAM, "enviar_por_telegram")):
            if row.get(column) is not None:
                channel_enabled[channel] = bool(row[column])
        return cls(
            user_id=user_id,
            sos_enabled=row.get("sos_activado") is not False,
            auto_send_enabled=bool(row.get("sos_auto_enviar")),
            channel_enabled=channel_enabled,
            thresholds=Thresholds.from_dict(row.get("sos_umbrales")),
        )


@dataclass(frozen=True)
class ContactSet:
    user_id: str
    phone_number: Optional[str] = None
    chat_id: Optional[str] = None
    email: Optional[str] = None

    def has_any(self) -> bool:
        return bool(self.phone_number or self.chat_id)

    def destination_for(self, channel: Channel) -> Optional[str]:
        return self.phone_number if channel is Channel.WHATSAPP else self.chat_id


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lon: float


@dataclass(frozen=True)
class EmergencyRequest:
    emergency_type: str
    current_value: Optional[float] = None
    device_id: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    location: Optional[Coordinates] = None


@dataclass(frozen=True)
class DeliveryRecord:
    """Un intento de envío por un canal dentro de un despacho. Inmutable."""

    user_id: str
    device_id: Optional[int]
    channel: Channel
    destination: str
    message: str
    emergency_type: str
    status: DeliveryStatus
    coordinates: Optional[Coordinates] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    sent_at: Optional[datetime] = None
    id: Optional[int] = None

    def _persisted_metadata(self) -> Dict[str, Any]:
        # El motivo del fallo viaja dentro de `metadata`: la tabla no tiene columna propia
        if self.error is None:
            return dict(self.metadata)
        return {**self.metadata, "error": self.error}

    def to_row(self) -> dict:
        return {
            "user_id": self.user_id,
            "dispositivo_id": self.device_id,
            "telefono_destino": self.destination if self.channel is Channel.WHATSAPP else None,
            "telegram_id": self.destination if self.channel is Channel.TELEGRAM else None,
            "canal": self.channel.value,
            "mensaje": self.message,
            "tipo_emergencia": self.emergency_type,
            "estado": self.status.value,
            "ubicacion_lat": self.coordinates.lat if self.coordinates else None,
            "ubicacion_lon": self.coordinates.lon if self.coordinates else None,
            "metadata": self._persisted_metadata(),
            "enviado_at": self.sent_at,
        }

    @classmethod
    def from_row(cls, row: dict) -> "DeliveryRecord":
        channel = Channel(row["canal"])
        destination = row.get("telefono_destino") if channel is Channel.WHATSAPP else row.get("telegram_id")
        metadata = dict(row.get("metadata") or {})
        error = metadata.pop("error", None)
        coordinates = None
        if row.get("ubicacion_lat") is not None and row.get("ubicacion_lon") is not None:
            coordinates = Coordinates(lat=row["ubicacion_lat"], lon=row["ubicacion_lon"])
        return cls(
            id=row.get("id"),
            user_id=row["user_id"],
            device_id=row.get("dispositivo_id"),
            channel=channel,
            destination=destination or "",
            message=row.get("mensaje") or "",
            emergency_type=row.get("tipo_emergencia") or "",
            status=DeliveryStatus(row["estado"]),
            coordinates=coordinates,
            metadata=metadata,
            error=error,
            sent_at=parse_timestamp(row.get("enviado_at")),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            **self.to_row(),
            "metadata": self.metadata,
            "error": self.error,
            "enviado_at": self.sent_at.isoformat() if self.sent_at else None,
        }


@dataclass(frozen=True)
class AlertEvent:
    user_id: str
    device_id: Optional[int]
    alert_type: str
    description: str
    severity: str = SEVERITY_CRITICAL
    current_value: Optional[float] = None
    acknowledged: bool = False

    def to_row(self) -> dict:
        row = {
            "user_id": self.user_id,
            "dispositivo_id": self.device_id,
            "tipo_alerta": self.alert_type,
            "descripcion": self.description,
            "severidad": self.severity,
            "leida": self.acknowledged,
        }
        if self.current_value is not None:
            row["valor_actual"] = self.current_value
        return row


@dataclass(frozen=True)
class DispatchResult:
    channels_attempted: List[Channel]
    channels_succeeded: List[Channel]
    alert_event_id: Optional[int]
    deliveries: List[DeliveryRecord] = field(default_factory=list)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Normaliza timestamps del almacenamiento (datetime o ISO-8601) a UTC aware."""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value

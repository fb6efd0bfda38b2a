"""Validadores de payloads MQTT de telemetría.

Valida y transforma mensajes del robot al modelo interno `SensorReading`.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..telemetry.models import SensorReading

logger = logging.getLogger(__name__)


class SensorReadingPayload(BaseModel):
    """Schema de validación para lecturas del robot.

    Formato esperado:
    {
        "temperature": 23.4,
        "humidity": 51.0,
        "gasLevel": 12.7,
        "deviceId": "robot-1"      (opcional)
    }

    También se aceptan los nombres que publica el firmware
    (`temperatura`, `humedad`, `gas`).
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    temperature: float = Field(validation_alias=AliasChoices("temperature", "temperatura"))
    humidity: float = Field(validation_alias=AliasChoices("humidity", "humedad"))
    gas_level: float = Field(validation_alias=AliasChoices("gasLevel", "gas_level", "gas"))
    device_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("deviceId", "device_id"),
    )

    @field_validator("temperature", "humidity", "gas_level", mode="before")
    @classmethod
    def require_number(cls, v):
        # bool es subclase de int; "23.4" no es una lectura numérica
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise ValueError(f"must be a number, got {type(v).__name__}")
        return v

    @field_validator("temperature", "humidity", "gas_level")
    @classmethod
    def require_finite(cls, v: float) -> float:
        if math.isnan(v):
            raise ValueError("Value is NaN")
        if math.isinf(v):
            raise ValueError("Value is infinite")
        return v

    @field_validator("device_id", mode="before")
    @classmethod
    def normalize_device_id(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    def to_reading(self) -> SensorReading:
        return SensorReading(
            temperature=float(self.temperature),
            humidity=float(self.humidity),
            gas_level=float(self.gas_level),
        )


@dataclass
class ValidationResult:
    """Resultado de validación."""

    valid: bool
    payload: Optional[SensorReadingPayload] = None
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)


def validate_sensor_reading(data: Any) -> ValidationResult:
    """Valida payload de lectura MQTT.

    Args:
        data: Objeto ya decodificado del mensaje MQTT

    Returns:
        ValidationResult con payload validado o error
    """
    if not isinstance(data, dict):
        return ValidationResult(
            valid=False,
            error=f"Payload must be a JSON object, got {type(data).__name__}",
        )

    try:
        payload = SensorReadingPayload.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        return ValidationResult(valid=False, error=f"Invalid fields: {fields} ({e.error_count()} errors)")

    warnings = []
    if "gasLevel" not in data and "gas" in data:
        warnings.append("Used legacy field names (temperatura/humedad/gas)")

    return ValidationResult(valid=True, payload=payload, warnings=warnings)

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


class UbicacionIn(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)


class ConfigureContactsIn(BaseModel):
    telefono_sos: Optional[str] = None
    telegram_id: Optional[str] = None

    @field_validator("telefono_sos", "telegram_id", mode="before")
    @classmethod
    def _as_text(cls, v: Any) -> Optional[str]:
        # El frontend a veces envía el chat id como número
        if v is None or isinstance(v, bool):
            return v
        if isinstance(v, int):
            return str(v)
        if isinstance(v, str):
            return v.strip() or None
        return v


class ManualSosIn(BaseModel):
    mensaje: Optional[str] = None
    tipo_emergencia: Optional[str] = None
    dispositivo_id: Optional[int] = None
    ubicacion: Optional[UbicacionIn] = None


class AutomaticSosIn(BaseModel):
    tipo_emergencia: Optional[str] = None
    valor_actual: Optional[float] = None
    dispositivo_id: Optional[int] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    ubicacion: Optional[UbicacionIn] = None


class ThresholdsIn(BaseModel):
    temperatura_max: Optional[float] = None
    co_max: Optional[float] = None
    bateria_min: Optional[float] = None
    sos_auto_enviar: Optional[bool] = None
    enviar_por_whatsapp: Optional[bool] = None
    enviar_por_telegram: Optional[bool] = None

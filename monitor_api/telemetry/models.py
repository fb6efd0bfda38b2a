"""Modelos de dominio del pipeline de telemetría."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SensorReading:
    """Lectura individual del robot. Transitoria, nunca se persiste sola."""

    temperature: float
    humidity: float
    gas_level: float

    def to_dict(self) -> dict:
        return {
            "temperature": self.temperature,
            "humidity": self.humidity,
            "gasLevel": self.gas_level,
        }


@dataclass(frozen=True)
class AggregatedReading:
    """Media de una ventana completa, redondeada a 2 decimales por campo."""

    temperature: float
    humidity: float
    gas_level: float
    device_key: str = ""
    sample_count: int = 0

    def to_row(self) -> dict:
        """Forma persistida del agregado."""
        return {
            "temperature": self.temperature,
            "humidity": self.humidity,
            "gasLevel": self.gas_level,
        }

"""Módulo de endpoints HTTP.

Contiene los endpoints de la API organizados por función.
"""

from .health import router as health_router
from .sos import router as sos_router
from .telemetry import router as telemetry_router

__all__ = [
    "health_router",
    "sos_router",
    "telemetry_router",
]

"""Despacho de alertas SOS.

Estructura modular:
- models.py / errors.py: dominio y errores con código HTTP
- config_store.py: contactos, flags y umbrales por usuario
- evaluator.py: admisión manual y automática
- messages.py: textos de los mensajes
- channels.py: transportes Telegram / WhatsApp
- dispatcher.py: intentos por canal, registro y alerta
- delivery_tracker.py: historial de intentos
"""

from .channels import ChannelResult, ChannelTransport, TelegramTransport, WhatsAppTransport, build_transports
from .config_store import AlertConfigurationStore
from .delivery_tracker import DeliveryTracker
from .dispatcher import DispatchCoordinator, plan_channels
from .errors import (
    AdmissionError,
    AdmissionReason,
    ContactValidationError,
    PersistenceError,
    SosError,
    UserNotFoundError,
)
from .evaluator import AlertEvaluator
from .models import (
    AlertConfiguration,
    AlertEvent,
    Channel,
    ContactKind,
    ContactSet,
    Coordinates,
    DeliveryRecord,
    DeliveryStatus,
    DispatchResult,
    EmergencyRequest,
    Thresholds,
)

__all__ = [
    "ChannelResult",
    "ChannelTransport",
    "TelegramTransport",
    "WhatsAppTransport",
    "build_transports",
    "AlertConfigurationStore",
    "DeliveryTracker",
    "DispatchCoordinator",
    "plan_channels",
    "AdmissionError",
    "AdmissionReason",
    "ContactValidationError",
    "PersistenceError",
    "SosError",
    "UserNotFoundError",
    "AlertEvaluator",
    "AlertConfiguration",
    "AlertEvent",
    "Channel",
    "ContactKind",
    "ContactSet",
    "Coordinates",
    "DeliveryRecord",
    "DeliveryStatus",
    "DispatchResult",
    "EmergencyRequest",
    "Thresholds",
]

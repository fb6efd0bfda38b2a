"""Errores del subsistema SOS.

Cada error lleva el código HTTP con el que se expone al llamador.
"""

from __future__ import annotations

from enum import Enum


class AdmissionReason(str, Enum):
    NO_CONTACTS = "no_contacts"
    SOS_DISABLED = "sos_disabled"
    AUTO_SEND_DISABLED = "auto_send_disabled"
    MISSING_FIELDS = "missing_fields"
    NO_CHANNEL_SUCCEEDED = "no_channel_succeeded"


_ADMISSION_MESSAGES = {
    AdmissionReason.NO_CONTACTS: "No tienes contactos SOS configurados. Configúralos primero.",
    AdmissionReason.SOS_DISABLED: "Sistema SOS no está activado",
    AdmissionReason.AUTO_SEND_DISABLED: "Envío automático no está activado",
    AdmissionReason.MISSING_FIELDS: "tipo_emergencia y valor_actual son requeridos",
    AdmissionReason.NO_CHANNEL_SUCCEEDED: "No se pudo enviar ningún mensaje SOS",
}


class SosError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ContactValidationError(SosError):
    status_code = 400


class UserNotFoundError(SosError):
    status_code = 404

    def __init__(self, user_id: str):
        super().__init__("Usuario no encontrado")
        self.user_id = user_id


class PersistenceError(SosError):
    status_code = 500


class AdmissionError(SosError):
    def __init__(self, reason: AdmissionReason, message: str | None = None):
        super().__init__(message or _ADMISSION_MESSAGES[reason])
        self.reason = reason

    @property
    def status_code(self) -> int:  # type: ignore[override]
        return 500 if self.reason is AdmissionReason.NO_CHANNEL_SUCCEEDED else 400

"""Admisión de peticiones SOS.

Decide si una petición puede pasar al despacho ANTES de contactar
cualquier canal. El orden de las comprobaciones automáticas distingue
rechazos de configuración de la falta de contactos, para que el
llamador pueda indicar la acción correctiva correcta.
"""

from __future__ import annotations

import logging
from typing import Tuple

from .config_store import AlertConfigurationStore
from .errors import AdmissionError, AdmissionReason, UserNotFoundError
from .models import AlertConfiguration, ContactSet, EmergencyRequest

logger = logging.getLogger(__name__)


class AlertEvaluator:
    def __init__(self, config_store: AlertConfigurationStore):
        self._config_store = config_store

    def admit_manual(self, user_id: str) -> Tuple[ContactSet, AlertConfiguration]:
        contacts = self._config_store.get_contacts(user_id)
        if contacts is None:
            raise UserNotFoundError(user_id)
        if not contacts.has_any():
            logger.info("[SOS] Manual dispatch rejected user=%s reason=no_contacts", user_id)
            raise AdmissionError(AdmissionReason.NO_CONTACTS)
        return contacts, self._config_store.get_configuration(user_id)

    def admit_automatic(
        self,
        user_id: str,
        request: EmergencyRequest,
    ) -> Tuple[ContactSet, AlertConfiguration]:
        if not request.emergency_type or request.current_value is None:
            raise AdmissionError(AdmissionReason.MISSING_FIELDS)

        config = self._config_store.get_configuration(user_id)
        if not config.sos_enabled:
            logger.info("[SOS] Automatic dispatch rejected user=%s reason=sos_disabled", user_id)
            raise AdmissionError(AdmissionReason.SOS_DISABLED)
        if not config.auto_send_enabled:
            logger.info("[SOS] Automatic dispatch rejected user=%s reason=auto_send_disabled", user_id)
            raise AdmissionError(AdmissionReason.AUTO_SEND_DISABLED)

        contacts = self._config_store.get_contacts(user_id)
        if contacts is None or not contacts.has_any():
            logger.info("[SOS] Automatic dispatch rejected user=%s reason=no_contacts", user_id)
            raise AdmissionError(AdmissionReason.NO_CONTACTS, "No hay contactos SOS configurados")
        return contacts, config

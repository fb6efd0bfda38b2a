"""Configuración SOS por usuario: contactos, flags y umbrales.

Los contactos viven en `usuarios` y la configuración en
`configuracion_usuario` (creada al primer write).
"""

from __future__ import annotations

import logging
import re
from typing import Optional, Tuple

from common.data_store import DataStore, StoreResult
from .errors import ContactValidationError, PersistenceError, UserNotFoundError
from .models import AlertConfiguration, Channel, ContactKind, ContactSet, Thresholds

logger = logging.getLogger(__name__)

USERS_COLLECTION = "usuarios"
CONFIG_COLLECTION = "configuracion_usuario"

PHONE_PATTERN = re.compile(r"\+\d{10,15}")
CHAT_ID_PATTERN = re.compile(r"\d{8,12}")


def validate_phone(phone: str) -> str:
    if not PHONE_PATTERN.fullmatch(phone):
        raise ContactValidationError(
            "Formato de teléfono inválido. Use formato internacional: +5493512345678"
        )
    return phone


def validate_chat_id(chat_id: str) -> str:
    if not CHAT_ID_PATTERN.fullmatch(chat_id):
        raise ContactValidationError("Telegram ID inválido. Debe ser un número de 8-12 dígitos")
    return chat_id


def _checked(result: StoreResult, action: str) -> StoreResult:
    if not result.success:
        logger.error("[SOS] Store error while %s: %s", action, result.error)
        raise PersistenceError(result.error or f"Error while {action}")
    return result


class AlertConfigurationStore:
    def __init__(self, store: DataStore):
        self._store = store

    # --- contactos ---------------------------------------------------------

    def get_contacts(self, user_id: str) -> Optional[ContactSet]:
        """Contactos del usuario, o None si el usuario no existe."""
        row = _checked(self._store.select(USERS_COLLECTION, {"id": user_id}), "reading user").first
        if row is None:
            return None
        chat_id = row.get("telegram_id")
        return ContactSet(
            user_id=user_id,
            phone_number=row.get("telefono_sos") or None,
            chat_id=str(chat_id) if chat_id else None,
            email=row.get("email"),
        )

    def configure_contacts(
        self,
        user_id: str,
        phone: Optional[str] = None,
        chat_id: Optional[str] = None,
    ) -> ContactSet:
        """Valida y guarda los contactos enviados. Devuelve solo los campos escritos."""
        if not phone and not chat_id:
            raise ContactValidationError(
                "Debes proporcionar al menos un método de contacto (teléfono o Telegram)"
            )

        updates = {}
        if phone:
            updates["telefono_sos"] = validate_phone(phone)
        if chat_id:
            updates["telegram_id"] = validate_chat_id(chat_id)

        self._update_user(user_id, updates)
        logger.info("[SOS] Contacts configured user=%s fields=%s", user_id, ",".join(updates))
        return ContactSet(
            user_id=user_id,
            phone_number=updates.get("telefono_sos"),
            chat_id=updates.get("telegram_id"),
        )

    def delete_contact(self, user_id: str, kind: ContactKind) -> None:
        column = "telefono_sos" if kind is ContactKind.PHONE else "telegram_id"
        self._update_user(user_id, {column: None})
        logger.info("[SOS] Contact removed user=%s kind=%s", user_id, kind.value)

    def _update_user(self, user_id: str, values: dict) -> None:
        """Solo actualiza: la fila de `usuarios` nunca se crea desde aquí."""
        result = _checked(
            self._store.update(USERS_COLLECTION, values, {"id": user_id}),
            "updating user contacts",
        )
        if not result.data:
            raise UserNotFoundError(user_id)

    # --- configuración -----------------------------------------------------

    def _config_row(self, user_id: str) -> Optional[dict]:
        result = _checked(
            self._store.select(CONFIG_COLLECTION, {"user_id": user_id}),
            "reading configuration",
        )
        return result.first

    def get_configuration(self, user_id: str) -> AlertConfiguration:
        return AlertConfiguration.from_row(user_id, self._config_row(user_id))

    def update_thresholds(
        self,
        user_id: str,
        temperature_max: Optional[float] = None,
        co_max: Optional[float] = None,
        battery_min: Optional[float] = None,
        auto_send: Optional[bool] = None,
        whatsapp: Optional[bool] = None,
        telegram: Optional[bool] = None,
    ) -> Tuple[Thresholds, dict]:
        """Actualiza umbrales y flags; crea la fila si no existe.

        Los umbrales ausentes vuelven a su valor por defecto (40/50/10);
        los flags solo se escriben si vienen informados.
        """
        defaults = Thresholds()
        thresholds = Thresholds(
            temperature_max=defaults.temperature_max if temperature_max is None else temperature_max,
            co_max=defaults.co_max if co_max is None else co_max,
            battery_min=defaults.battery_min if battery_min is None else battery_min,
        )

        flags = {}
        if auto_send is not None:
            flags["sos_auto_enviar"] = auto_send
        if whatsapp is not None:
            flags["enviar_por_whatsapp"] = whatsapp
        if telegram is not None:
            flags["enviar_por_telegram"] = telegram

        updates = {"sos_umbrales": thresholds.to_dict(), **flags}
        if self._config_row(user_id) is not None:
            _checked(
                self._store.update(CONFIG_COLLECTION, updates, {"user_id": user_id}),
                "updating configuration",
            )
        else:
            _checked(
                self._store.insert(CONFIG_COLLECTION, {"user_id": user_id, **updates}),
                "creating configuration",
            )
        logger.info("[SOS] Thresholds updated user=%s flags=%s", user_id, flags)
        return thresholds, flags

    def merged_view(self, user_id: str) -> dict:
        """Vista combinada usuario + configuración para la UI."""
        contacts = self.get_contacts(user_id)
        if contacts is None:
            raise UserNotFoundError(user_id)
        config = self.get_configuration(user_id)
        return {
            "telefono_sos": contacts.phone_number,
            "telegram_id": contacts.chat_id,
            "sos_activado": config.sos_enabled,
            "sos_auto_enviar": config.auto_send_enabled,
            "enviar_por_whatsapp": config.is_channel_enabled(Channel.WHATSAPP),
            "enviar_por_telegram": config.is_channel_enabled(Channel.TELEGRAM),
            "sos_umbrales": config.thresholds.to_dict(),
        }

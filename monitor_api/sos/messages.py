"""Textos de los mensajes SOS."""

from __future__ import annotations

from typing import Optional

AUTOMATIC_TEMPLATES = {
    "temperatura_critica": "🔥 EMERGENCIA: Temperatura crítica de {value}°C detectada",
    "gas_detectado": "💨 EMERGENCIA: Nivel de gas peligroso detectado: {value}ppm",
    "co_detectado": "☠️ EMERGENCIA: Monóxido de carbono detectado: {value}ppm",
    "bateria_baja": "🔋 ALERTA: Batería crítica del robot: {value}%",
    "obstaculo": "⚠️ ALERTA: Robot detenido por obstáculo",
    "conexion_perdida": "📡 ALERTA: Conexión perdida con dispositivo",
}

FALLBACK_TEMPLATE = "🚨 EMERGENCIA detectada: {type}"

MANUAL_DEFAULT_TEMPLATE = (
    "🚨 ALERTA SOS - Usuario {user} activó emergencia. Revisar dispositivo inmediatamente."
)

TELEGRAM_TEST_MESSAGE = (
    "✅ Prueba de conexión SOS - Tu bot de Telegram está configurado correctamente!"
)


def _format_value(value) -> str:
    # 38.0 -> "38", 38.5 -> "38.5"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def automatic_message(emergency_type: str, current_value) -> str:
    template = AUTOMATIC_TEMPLATES.get(emergency_type)
    if template is None:
        return FALLBACK_TEMPLATE.format(type=emergency_type)
    return template.format(value=_format_value(current_value))


def manual_message(custom: Optional[str], requester: str) -> str:
    if custom:
        return custom
    return MANUAL_DEFAULT_TEMPLATE.format(user=requester)

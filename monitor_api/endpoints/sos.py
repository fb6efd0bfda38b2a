"""Endpoints del sistema SOS (contactos, configuración, envíos, historial)."""

from __future__ import annotations

import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..auth import CurrentUser, get_current_user, require_api_key
from ..deps import get_config_store, get_dispatcher, get_evaluator, get_tracker, get_transports
from ..schemas import AutomaticSosIn, ConfigureContactsIn, ManualSosIn, ThresholdsIn, UbicacionIn
from ..sos import messages
from ..sos.channels import ChannelTransport
from ..sos.config_store import AlertConfigurationStore
from ..sos.delivery_tracker import DEFAULT_HISTORY_LIMIT, DeliveryTracker
from ..sos.dispatcher import DispatchCoordinator
from ..sos.errors import SosError
from ..sos.evaluator import AlertEvaluator
from ..sos.models import (
    MANUAL_EMERGENCY_TYPE,
    Channel,
    ContactKind,
    Coordinates,
    EmergencyRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/sos",
    tags=["sos"],
    dependencies=[Depends(require_api_key)],
)


def _http_error(e: SosError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.message)


def _coordinates(ubicacion: Optional[UbicacionIn]) -> Optional[Coordinates]:
    if ubicacion is None:
        return None
    return Coordinates(lat=ubicacion.lat, lon=ubicacion.lon)


@router.post("/configure-contacts")
@router.post("/configurar-contactos")
def configure_contacts(
    body: ConfigureContactsIn,
    user: CurrentUser = Depends(get_current_user),
    config_store: AlertConfigurationStore = Depends(get_config_store),
):
    """Guarda teléfono SOS y/o Telegram ID del usuario."""
    try:
        written = config_store.configure_contacts(user.id, body.telefono_sos, body.telegram_id)
    except SosError as e:
        raise _http_error(e)
    return {
        "mensaje": "✅ Contactos SOS configurados correctamente",
        "telefono_sos": written.phone_number,
        "telegram_id": written.chat_id,
    }


@router.get("/configuracion")
def get_configuration(
    user: CurrentUser = Depends(get_current_user),
    config_store: AlertConfigurationStore = Depends(get_config_store),
):
    try:
        return config_store.merged_view(user.id)
    except SosError as e:
        raise _http_error(e)


@router.post("/enviar")
def send_manual(
    body: ManualSosIn,
    user: CurrentUser = Depends(get_current_user),
    evaluator: AlertEvaluator = Depends(get_evaluator),
    dispatcher: DispatchCoordinator = Depends(get_dispatcher),
):
    """SOS manual: se envía a todos los contactos habilitados."""
    try:
        contacts, config = evaluator.admit_manual(user.id)
        request = EmergencyRequest(
            emergency_type=body.tipo_emergencia or MANUAL_EMERGENCY_TYPE,
            device_id=body.dispositivo_id,
            location=_coordinates(body.ubicacion),
        )
        text = messages.manual_message(body.mensaje, user.email or contacts.email or user.id)
        result = dispatcher.dispatch(user.id, contacts, config, text, request, manual=True)
    except SosError as e:
        raise _http_error(e)

    return {
        "mensaje": "✅ Mensaje SOS enviado correctamente",
        "canales_enviados": [c.value for c in result.channels_succeeded],
        "total_enviados": len(result.channels_succeeded),
        "alerta_id": result.alert_event_id,
    }


@router.post("/enviar-automatico")
def send_automatic(
    body: AutomaticSosIn,
    user: CurrentUser = Depends(get_current_user),
    evaluator: AlertEvaluator = Depends(get_evaluator),
    dispatcher: DispatchCoordinator = Depends(get_dispatcher),
):
    """SOS automático disparado por una condición de sensor."""
    request = EmergencyRequest(
        emergency_type=body.tipo_emergencia or "",
        current_value=body.valor_actual,
        device_id=body.dispositivo_id,
        metadata=body.metadata,
        location=_coordinates(body.ubicacion),
    )
    try:
        contacts, config = evaluator.admit_automatic(user.id, request)
        text = messages.automatic_message(request.emergency_type, request.current_value)
        result = dispatcher.dispatch(user.id, contacts, config, text, request, manual=False)
    except SosError as e:
        raise _http_error(e)

    return {
        "mensaje": "✅ SOS automático enviado",
        "canales_enviados": [c.value for c in result.channels_succeeded],
        "tipo_emergencia": request.emergency_type,
        "alerta_id": result.alert_event_id,
    }


@router.get("/historial")
def get_history(
    limite: int = Query(DEFAULT_HISTORY_LIMIT, ge=1),
    canal: Optional[str] = None,
    user: CurrentUser = Depends(get_current_user),
    tracker: DeliveryTracker = Depends(get_tracker),
):
    channel = None
    if canal:
        try:
            channel = Channel.parse(canal)
        except ValueError:
            raise HTTPException(status_code=400, detail="Canal inválido. Use phone, chat, whatsapp o telegram")
    try:
        records = tracker.history(user.id, channel=channel, limit=limite)
    except SosError as e:
        raise _http_error(e)
    return {
        "total": len(records),
        "data": [r.to_dict() for r in records],
    }


@router.put("/configurar-umbrales")
def configure_thresholds(
    body: ThresholdsIn,
    user: CurrentUser = Depends(get_current_user),
    config_store: AlertConfigurationStore = Depends(get_config_store),
):
    try:
        thresholds, flags = config_store.update_thresholds(
            user.id,
            temperature_max=body.temperatura_max,
            co_max=body.co_max,
            battery_min=body.bateria_min,
            auto_send=body.sos_auto_enviar,
            whatsapp=body.enviar_por_whatsapp,
            telegram=body.enviar_por_telegram,
        )
    except SosError as e:
        raise _http_error(e)
    return {
        "mensaje": "✅ Configuración actualizada correctamente",
        "umbrales": thresholds.to_dict(),
        "sos_auto_enviar": flags.get("sos_auto_enviar"),
        "enviar_por_whatsapp": flags.get("enviar_por_whatsapp"),
        "enviar_por_telegram": flags.get("enviar_por_telegram"),
    }


@router.delete("/eliminar-contacto")
def delete_contact(
    tipo: Optional[str] = None,
    user: CurrentUser = Depends(get_current_user),
    config_store: AlertConfigurationStore = Depends(get_config_store),
):
    try:
        kind = ContactKind(tipo)
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail='Tipo de contacto inválido. Use "telefono" o "telegram"',
        )
    try:
        config_store.delete_contact(user.id, kind)
    except SosError as e:
        raise _http_error(e)
    label = "Teléfono" if kind is ContactKind.PHONE else "Telegram ID"
    return {"mensaje": f"✅ {label} SOS eliminado"}


@router.post("/test-telegram")
def test_telegram(
    user: CurrentUser = Depends(get_current_user),
    config_store: AlertConfigurationStore = Depends(get_config_store),
    transports: Dict[Channel, ChannelTransport] = Depends(get_transports),
):
    """Envía el mensaje de prueba al Telegram configurado."""
    try:
        contacts = config_store.get_contacts(user.id)
    except SosError as e:
        raise _http_error(e)
    if contacts is None or not contacts.chat_id:
        raise HTTPException(status_code=400, detail="No tienes Telegram ID configurado")

    result = transports[Channel.TELEGRAM].send_message(contacts.chat_id, messages.TELEGRAM_TEST_MESSAGE)
    if not result.ok:
        logger.warning("[SOS] Telegram test failed user=%s: %s", user.id, result.error)
        raise HTTPException(status_code=500, detail="No se pudo enviar el mensaje de prueba")
    return {
        "mensaje": "✅ Mensaje de prueba enviado por Telegram",
        "telegram_id": contacts.chat_id,
    }

"""Despacho SOS: un intento por canal habilitado, registro y alerta.

Flujo:
1. Plan: un canal se intenta si hay contacto para él y no está deshabilitado
2. Intentos en paralelo (ThreadPoolExecutor), sin reintentos
3. Un DeliveryRecord por intento, con éxito o error
4. Si al menos un canal tuvo éxito se crea UN AlertEvent; si ninguno,
   AdmissionError(NO_CHANNEL_SUCCEEDED) y no se crea alerta
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace
from typing import Dict, List, Mapping, Optional

from prometheus_client import Counter

from common.data_store import DataStore
from .channels import ChannelResult, ChannelTransport
from .delivery_tracker import DeliveryTracker
from .errors import AdmissionError, AdmissionReason
from .models import (
    CHANNEL_ORDER,
    MANUAL_ALERT_TYPE,
    AlertConfiguration,
    AlertEvent,
    Channel,
    ContactSet,
    DeliveryRecord,
    DeliveryStatus,
    DispatchResult,
    EmergencyRequest,
)

logger = logging.getLogger(__name__)

ALERTS_COLLECTION = "alertas"

SOS_CHANNEL_DELIVERIES = Counter(
    "sos_channel_deliveries_total",
    "SOS delivery attempts by channel and outcome",
    ["channel", "status"],
)

_CHANNEL_LABELS = {Channel.WHATSAPP: "WhatsApp", Channel.TELEGRAM: "Telegram"}


def plan_channels(contacts: ContactSet, config: AlertConfiguration) -> List[Channel]:
    """Canales a intentar, en orden fijo."""
    return [
        channel
        for channel in CHANNEL_ORDER
        if contacts.destination_for(channel) and config.is_channel_enabled(channel)
    ]


def _channels_label(channels: List[Channel]) -> str:
    return " y ".join(_CHANNEL_LABELS[c] for c in channels)


class DispatchCoordinator:
    def __init__(
        self,
        transports: Mapping[Channel, ChannelTransport],
        tracker: DeliveryTracker,
        store: DataStore,
        default_device_id: int = 1,
        alerts_collection: str = ALERTS_COLLECTION,
    ):
        self._transports = dict(transports)
        self._tracker = tracker
        self._store = store
        self._default_device_id = default_device_id
        self._alerts_collection = alerts_collection

    def _attempt(self, channel: Channel, destination: str, message: str, request: EmergencyRequest) -> ChannelResult:
        transport = self._transports.get(channel)
        if transport is None:
            return ChannelResult.failed(f"No transport registered for {channel.value}")
        try:
            result = transport.send_message(destination, message)
        except Exception as e:
            logger.exception("[SOS] Transport %s raised", channel.value)
            return ChannelResult.failed(str(e))

        if result.ok and channel is Channel.TELEGRAM and request.location is not None:
            # Best-effort: el fallo de la ubicación no cambia el resultado del canal
            try:
                location = transport.send_location(destination, request.location)
                if not location.ok:
                    logger.warning("[SOS] Location not sent chat_id=%s: %s", destination, location.error)
            except Exception as e:
                logger.warning("[SOS] Location not sent chat_id=%s: %s", destination, e)
        return result

    def dispatch(
        self,
        user_id: str,
        contacts: ContactSet,
        config: AlertConfiguration,
        message: str,
        request: EmergencyRequest,
        manual: bool,
    ) -> DispatchResult:
        planned = plan_channels(contacts, config)
        device_id = request.device_id if request.device_id is not None else self._default_device_id

        if manual:
            metadata = {"manual": True}
        else:
            metadata = {"automatico": True, "valor_actual": request.current_value, **request.metadata}

        results: Dict[Channel, ChannelResult] = {}
        if planned:
            with ThreadPoolExecutor(max_workers=len(planned)) as pool:
                futures = {
                    pool.submit(self._attempt, channel, contacts.destination_for(channel), message, request): channel
                    for channel in planned
                }
                for fut in as_completed(futures):
                    results[futures[fut]] = fut.result()

        deliveries: List[DeliveryRecord] = []
        succeeded: List[Channel] = []
        for channel in planned:
            result = results[channel]
            status = DeliveryStatus.SENT if result.ok else DeliveryStatus.FAILED
            SOS_CHANNEL_DELIVERIES.labels(channel=channel.value, status=status.value).inc()
            if result.ok:
                succeeded.append(channel)
            record = DeliveryRecord(
                user_id=user_id,
                device_id=device_id,
                channel=channel,
                destination=contacts.destination_for(channel) or "",
                message=message,
                emergency_type=request.emergency_type,
                status=status,
                coordinates=request.location,
                metadata=dict(metadata),
                error=None if result.ok else result.error,
            )
            record_id = self._tracker.record(record)
            deliveries.append(record if record_id is None else replace(record, id=record_id))

        logger.info(
            "[SOS] Dispatch user=%s manual=%s attempted=%s succeeded=%s",
            user_id, manual, [c.value for c in planned], [c.value for c in succeeded],
        )

        if not succeeded:
            raise AdmissionError(AdmissionReason.NO_CHANNEL_SUCCEEDED)

        label = _channels_label(succeeded)
        if manual:
            event = AlertEvent(
                user_id=user_id,
                device_id=device_id,
                alert_type=MANUAL_ALERT_TYPE,
                description=f"Mensaje SOS enviado por {label}",
            )
        else:
            event = AlertEvent(
                user_id=user_id,
                device_id=device_id,
                alert_type=request.emergency_type,
                description=f"{message} - SOS enviado automáticamente por {label}",
                current_value=request.current_value,
            )

        return DispatchResult(
            channels_attempted=planned,
            channels_succeeded=succeeded,
            alert_event_id=self._create_alert(event),
            deliveries=deliveries,
        )

    def _create_alert(self, event: AlertEvent) -> Optional[int]:
        try:
            result = self._store.insert(self._alerts_collection, event.to_row())
        except Exception as e:
            logger.error("[SOS] Error creating alert user=%s: %s", event.user_id, e)
            return None
        if not result.success:
            logger.error("[SOS] Failed to create alert user=%s: %s", event.user_id, result.error)
            return None
        return (result.first or {}).get("id")

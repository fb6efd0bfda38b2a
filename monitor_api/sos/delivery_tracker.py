"""Registro e historial de intentos de envío SOS (`mensajes_sos`)."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import List, Optional

from common.data_store import DataStore
from .errors import PersistenceError
from .models import Channel, DeliveryRecord

logger = logging.getLogger(__name__)

DELIVERIES_COLLECTION = "mensajes_sos"
DEFAULT_HISTORY_LIMIT = 50

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class DeliveryTracker:
    def __init__(self, store: DataStore, collection: str = DELIVERIES_COLLECTION):
        self._store = store
        self._collection = collection

    def record(self, record: DeliveryRecord) -> Optional[int]:
        """Persiste un intento. Un fallo de almacenamiento se loguea y no interrumpe el despacho."""
        stamped = record if record.sent_at else replace(record, sent_at=datetime.now(timezone.utc))
        try:
            result = self._store.insert(self._collection, stamped.to_row())
        except Exception as e:
            logger.error("[SOS] Error recording delivery user=%s channel=%s: %s", record.user_id, record.channel.value, e)
            return None
        if not result.success:
            logger.error(
                "[SOS] Failed to record delivery user=%s channel=%s: %s",
                record.user_id, record.channel.value, result.error,
            )
            return None
        row = result.first or {}
        return row.get("id")

    def history(
        self,
        user_id: str,
        channel: Optional[Channel] = None,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> List[DeliveryRecord]:
        """Intentos del usuario, más recientes primero, como máximo `limit`."""
        filters = {"user_id": user_id}
        if channel is not None:
            filters["canal"] = channel.value

        result = self._store.select(self._collection, filters)
        if not result.success:
            logger.error("[SOS] Error reading history user=%s: %s", user_id, result.error)
            raise PersistenceError(result.error or "Error reading SOS history")

        records = [DeliveryRecord.from_row(row) for row in result.data]
        records.sort(key=lambda r: r.sent_at or _EPOCH, reverse=True)
        return records[:max(limit, 0)]

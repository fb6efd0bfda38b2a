"""Persistencia de agregados de telemetría.

Sin reintentos: un fallo se loguea y el pipeline sigue aceptando lecturas.
"""

from __future__ import annotations

import logging

from prometheus_client import Counter

from common.data_store import DataStore, StoreResult
from .models import AggregatedReading

logger = logging.getLogger(__name__)

TELEMETRY_AGGREGATES = Counter(
    "telemetry_aggregates_total",
    "Aggregated readings handed to the data store",
    ["status"],  # persisted, failed
)


class AggregateSink:
    """Escribe cada `AggregatedReading` en la colección de agregados."""

    def __init__(self, store: DataStore, collection: str = "sensores_Data") -> None:
        self._store = store
        self._collection = collection
        self._persisted = 0
        self._failed = 0

    @property
    def collection(self) -> str:
        return self._collection

    def persist(self, aggregate: AggregatedReading) -> bool:
        try:
            result = self._store.insert(self._collection, aggregate.to_row())
        except Exception as e:
            result = StoreResult.fail(f"{type(e).__name__}: {e}")

        if not result.success:
            self._failed += 1
            TELEMETRY_AGGREGATES.labels(status="failed").inc()
            logger.error(
                "[SINK] Failed to persist aggregate device=%s err=%s",
                aggregate.device_key,
                result.error,
            )
            return False

        self._persisted += 1
        TELEMETRY_AGGREGATES.labels(status="persisted").inc()
        logger.info(
            "[SINK] Aggregate persisted device=%s temp=%.2f hum=%.2f gas=%.2f",
            aggregate.device_key,
            aggregate.temperature,
            aggregate.humidity,
            aggregate.gas_level,
        )
        return True

    def latest(self, limit: int = 10) -> StoreResult:
        """Últimos agregados guardados, más reciente primero."""
        return self._store.select(self._collection, order_by="id", descending=True, limit=limit)

    @property
    def stats(self) -> dict:
        return {
            "collection": self._collection,
            "persisted": self._persisted,
            "failed": self._failed,
        }

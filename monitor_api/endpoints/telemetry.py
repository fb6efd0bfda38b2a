"""Lecturas de telemetría: última lectura y últimas medias."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from ..auth import require_api_key
from ..deps import get_ingestor, get_sink
from ..mqtt.receiver import ReadingIngestor
from ..telemetry.sink import AggregateSink

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["telemetry"], dependencies=[Depends(require_api_key)])

LATEST_AGGREGATES_LIMIT = 10


@router.get("/sensores")
def latest_reading(ingestor: Optional[ReadingIngestor] = Depends(get_ingestor)):
    """Última lectura individual recibida por MQTT."""
    last = ingestor.last_reading if ingestor is not None else None
    if last is None:
        raise HTTPException(status_code=404, detail="No hay datos de sensores todavía")
    return last.to_dict()


@router.get("/promedios")
def latest_aggregates(sink: AggregateSink = Depends(get_sink)):
    """Últimas medias persistidas, más reciente primero."""
    result = sink.latest(LATEST_AGGREGATES_LIMIT)
    if not result.success:
        logger.error("[SINK] Error reading aggregates: %s", result.error)
        raise HTTPException(status_code=500, detail="Error al obtener promedios")
    return result.data

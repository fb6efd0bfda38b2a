"""Health, readiness and metrics endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from common.config import Settings
from common.data_store import DataStore
from ..deps import get_app_settings, get_store
from ..mqtt.receiver_singleton import get_receiver

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    """Liveness probe: always returns ok if process is running."""
    return {"status": "ok"}


@router.get("/ready")
def ready(
    store: DataStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
):
    """Readiness probe: checks store connectivity and MQTT receiver."""
    store_ok = store.is_connected()
    receiver = get_receiver()
    mqtt_ok = not settings.mqtt_enabled or (receiver is not None and receiver.is_connected)

    if not (store_ok and mqtt_ok):
        raise HTTPException(status_code=503, detail="not ready")
    return {"status": "ready", "store": store_ok, "mqtt": mqtt_ok}


@router.get("/metrics")
def metrics():
    """Stats del receptor MQTT (ventanas, sink, mensajes)."""
    receiver = get_receiver()
    if receiver is None:
        return {"mqtt": {"status": "not_initialized"}}
    return {"mqtt": receiver.health_check()}


@router.get("/metrics/prometheus")
def prometheus_metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

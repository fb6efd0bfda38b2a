"""Dependencias FastAPI del proceso.

Estado por proceso (settings y almacenamiento) inicializado en el
lifespan de la app. Todas las dependencias se pueden sustituir con
`app.dependency_overrides` en tests.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from fastapi import Depends

from common.config import Settings, get_settings
from common.data_store import DataStore, create_data_store
from .mqtt.receiver import ReadingIngestor
from .mqtt.receiver_singleton import get_receiver
from .sos.channels import ChannelTransport, build_transports
from .sos.config_store import AlertConfigurationStore
from .sos.delivery_tracker import DeliveryTracker
from .sos.dispatcher import DispatchCoordinator
from .sos.evaluator import AlertEvaluator
from .sos.models import Channel
from .telemetry.sink import AggregateSink

logger = logging.getLogger(__name__)

_settings: Optional[Settings] = None
_store: Optional[DataStore] = None


def init_state(settings: Settings, store: DataStore) -> None:
    global _settings, _store
    _settings = settings
    _store = store


def reset_state() -> None:
    global _settings, _store
    _settings = None
    _store = None


def get_app_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = get_settings()
    return _settings


def get_store() -> DataStore:
    global _store
    if _store is None:
        _store = create_data_store(get_app_settings())
    return _store


def get_ingestor() -> Optional[ReadingIngestor]:
    """Ingestor del receptor MQTT activo, o None si no hay receptor."""
    receiver = get_receiver()
    return receiver.ingestor if receiver is not None else None


def get_sink(
    store: DataStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> AggregateSink:
    return AggregateSink(store, settings.aggregates_collection)


def get_config_store(store: DataStore = Depends(get_store)) -> AlertConfigurationStore:
    return AlertConfigurationStore(store)


def get_evaluator(
    config_store: AlertConfigurationStore = Depends(get_config_store),
) -> AlertEvaluator:
    return AlertEvaluator(config_store)


def get_tracker(store: DataStore = Depends(get_store)) -> DeliveryTracker:
    return DeliveryTracker(store)


def get_transports(settings: Settings = Depends(get_app_settings)) -> Dict[Channel, ChannelTransport]:
    return build_transports(settings)


def get_dispatcher(
    transports: Dict[Channel, ChannelTransport] = Depends(get_transports),
    tracker: DeliveryTracker = Depends(get_tracker),
    store: DataStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> DispatchCoordinator:
    return DispatchCoordinator(
        transports=transports,
        tracker=tracker,
        store=store,
        default_device_id=settings.default_device_id,
    )

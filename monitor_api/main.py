from __future__ import annotations

import argparse
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from common.config import get_settings
from common.data_store import create_data_store
from . import deps
from .endpoints import health_router, sos_router, telemetry_router
from .mqtt.receiver_singleton import start_receiver, stop_receiver

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    store = create_data_store(settings)
    deps.init_state(settings, store)

    if settings.mqtt_enabled:
        if not start_receiver(settings, store):
            logger.error("[MQTT] Receiver not connected at startup")
    else:
        logger.info("[MQTT] MQTT_ENABLED=false - telemetry receiver disabled")

    yield

    stop_receiver()
    deps.reset_state()


def create_app() -> FastAPI:
    app = FastAPI(title="Domus Monitor Service", version="0.1.0", lifespan=lifespan)
    app.include_router(health_router)
    app.include_router(telemetry_router)
    app.include_router(sos_router)
    return app


app = create_app()


def main() -> None:
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )

    p = argparse.ArgumentParser(description="Monitor API (telemetría MQTT + SOS)")
    p.add_argument("--host", default="0.0.0.0")
    p.add_argument("--port", type=int, default=8000)
    args = p.parse_args()

    uvicorn.run(app, host=args.host, port=args.port, log_config=None)


if __name__ == "__main__":
    main()

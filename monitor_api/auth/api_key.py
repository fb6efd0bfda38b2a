"""Autenticación de la API de monitorización.

- API Key opcional (MONITOR_API_KEY); obligatoria en producción
- Identidad del usuario en cabeceras X-User-Id / X-User-Email
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException

from common.config import Settings
from ..deps import get_app_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.email or self.id


def require_api_key(
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
    settings: Settings = Depends(get_app_settings),
) -> None:
    """Valida la API key.

    En producción MONITOR_API_KEY debe estar configurado.
    En modo desarrollo permite acceso sin autenticación con warning.
    """
    expected = settings.api_key

    if not expected:
        if settings.is_production:
            logger.error("CRITICAL: MONITOR_API_KEY not configured in production!")
            raise HTTPException(
                status_code=500,
                detail="Server misconfiguration: API key not set"
            )
        logger.warning(
            "[SECURITY WARNING] MONITOR_API_KEY not set - "
            "allowing unauthenticated access (DEV ONLY)"
        )
        return

    if not x_api_key:
        raise HTTPException(status_code=401, detail="API key required")

    if x_api_key != expected:
        logger.warning("Invalid API key attempt from request")
        raise HTTPException(status_code=401, detail="Invalid API key")


def get_current_user(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    x_user_email: str | None = Header(default=None, alias="X-User-Email"),
) -> CurrentUser:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="User identity required")
    return CurrentUser(id=x_user_id.strip(), email=(x_user_email or "").strip() or None)

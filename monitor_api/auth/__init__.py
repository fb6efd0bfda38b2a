"""Autenticación de la API: API key y usuario actual."""

from .api_key import CurrentUser, get_current_user, require_api_key

__all__ = [
    "CurrentUser",
    "get_current_user",
    "require_api_key",
]

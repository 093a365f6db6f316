"""API key del colector (header X-API-Key contra FOOTPRINT_API_KEY)."""

from __future__ import annotations

import logging
import os
from typing import Optional

from fastapi import Header, HTTPException

logger = logging.getLogger(__name__)


def _configured_key() -> Optional[str]:
    return os.getenv("FOOTPRINT_API_KEY") or None


def require_api_key(
    x_api_key: Optional[str] = Header(default=None, alias="X-API-Key")
) -> None:
    """Sin key configurada: acceso abierto con warning, salvo ENVIRONMENT=production."""
    expected = _configured_key()

    if expected is None:
        if os.getenv("ENVIRONMENT") == "production":
            logger.error("[AUTH] FOOTPRINT_API_KEY missing in production, rejecting request")
            raise HTTPException(status_code=500, detail="Server misconfiguration: API key not set")
        logger.warning("[AUTH] FOOTPRINT_API_KEY not set - open access (dev only)")
        return

    if x_api_key is None:
        raise HTTPException(status_code=401, detail="API key required")
    if x_api_key != expected:
        logger.warning("[AUTH] rejected request with invalid API key")
        raise HTTPException(status_code=401, detail="Invalid API key")

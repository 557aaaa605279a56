"""Health endpoint reporting service status."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Dict

from fastapi import APIRouter

from pattern_signals import __version__
from pattern_signals.config import settings

_router_start = time.time()

router = APIRouter(tags=["health"])


@router.get(
    "/health",
    summary="Report service health",
    description="Expose uptime, version and the configured market data sources.",
    response_description="Current backend status.",
)
def health() -> Dict[str, object]:
    """Return uptime, version, exchange and configured timezones."""
    return {
        "status": "ok",
        "version": __version__,
        "uptime": time.time() - _router_start,
        "exchange": settings.exchange,
        "tick_timezone": settings.tick_timezone,
        "volume_timezone": settings.volume_timezone,
        "checked_at": datetime.now(timezone.utc).isoformat(),
    }


__all__ = ["router", "health"]

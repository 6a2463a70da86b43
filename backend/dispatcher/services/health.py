import asyncio
import time
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

import httpx
from dispatcher.core.logging import get_logger
from dispatcher.schemas.subscribers import Subscriber

logger = get_logger(__name__)

HEALTH_TIMEOUT_MS = 5000


async def check_one(
    client: httpx.AsyncClient, subscriber: Subscriber, timeout_ms: int
) -> dict[str, Any]:
    started = time.perf_counter()
    status = {
        "id": subscriber.id,
        "name": subscriber.name,
        "enabled": subscriber.enabled,
    }
    try:
        response = await asyncio.wait_for(
            client.get(subscriber.health_url, timeout=timeout_ms / 1000),
            timeout=timeout_ms / 1000,
        )
        response.raise_for_status()
        status["status"] = "healthy"
    except Exception as exc:
        if isinstance(exc, asyncio.TimeoutError):
            error = f"timeout of {timeout_ms}ms exceeded"
        else:
            error = str(exc) or type(exc).__name__
        logger.warning(
            "system_health_error",
            subscriber_id=subscriber.id,
            error=error,
            error_code=type(exc).__name__,
        )
        status.update(status="unhealthy", error=error)
    status["responseTime"] = round((time.perf_counter() - started) * 1000, 1)
    status["lastChecked"] = datetime.now(UTC).isoformat()
    return status


async def check_subscribers(
    client: httpx.AsyncClient,
    subscribers: Sequence[Subscriber],
    request_id: str | None = None,
    timeout_ms: int = HEALTH_TIMEOUT_MS,
) -> dict[str, Any]:
    """Check every registered subscriber in parallel and summarise."""
    started = time.perf_counter()
    systems = await asyncio.gather(
        *(check_one(client, s, timeout_ms) for s in subscribers)
    )
    healthy = sum(1 for s in systems if s["status"] == "healthy" and s["enabled"])
    enabled = sum(1 for s in systems if s["enabled"])
    elapsed = round((time.perf_counter() - started) * 1000, 1)

    logger.info(
        "health_check_complete",
        request_id=request_id,
        healthy_systems=healthy,
        enabled_systems=enabled,
        health_check_time_ms=elapsed,
    )
    return {
        "dispatcher": "healthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "requestId": request_id,
        "systems": list(systems),
        "summary": {
            "total_systems": len(systems),
            "enabled_systems": enabled,
            "healthy_systems": healthy,
            "unhealthy_systems": enabled - healthy,
            "health_check_time_ms": elapsed,
        },
    }

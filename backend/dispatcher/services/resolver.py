"""Find which subscriber owns a payment reference.

Every enabled subscriber is asked at once through its ticket verification
endpoint. A subscriber that cannot answer in time, or answers with anything
but a confirmation, simply does not match; the lookup as a whole only ever
answers "this one" or "nobody".
"""

import asyncio
import time
from collections.abc import Sequence
from dataclasses import dataclass
from urllib.parse import quote

import httpx
from dispatcher.core.logging import get_logger
from dispatcher.schemas.subscribers import Subscriber

logger = get_logger(__name__)

DEFAULT_LOOKUP_TIMEOUT_MS = 5000


@dataclass(frozen=True)
class LookupResult:
    subscriber: Subscriber
    matched: bool
    status: int | None = None
    elapsed_ms: float = 0.0
    error: str | None = None


def confirms_ownership(response: httpx.Response) -> bool:
    """200 means the ticket exists; 400 with a ticket means it exists unverified."""
    if response.status_code == 200:
        return True
    if response.status_code != 400:
        return False
    try:
        body = response.json()
    except ValueError:
        return False
    data = body.get("data") if isinstance(body, dict) else None
    return isinstance(data, dict) and bool(data.get("ticket"))


class ReferenceResolver:
    def __init__(
        self,
        client: httpx.AsyncClient,
        default_timeout_ms: int = DEFAULT_LOOKUP_TIMEOUT_MS,
    ) -> None:
        self.client = client
        self.default_timeout_ms = default_timeout_ms

    async def resolve(
        self,
        reference: str,
        subscribers: Sequence[Subscriber],
        request_id: str | None = None,
    ) -> Subscriber | None:
        candidates = [s for s in subscribers if s.enabled]
        logger.info(
            "system_discovery_start",
            request_id=request_id,
            reference=reference,
            systems_to_check=len(candidates),
        )
        if not candidates:
            return None

        results = await self.lookup_all(reference, candidates, request_id)
        # Registry order, not completion order, decides between claimants
        found = next((r.subscriber for r in results if r.matched), None)

        if found:
            logger.info(
                "system_discovery_complete",
                request_id=request_id,
                reference=reference,
                found_system=found.id,
                checked_systems=len(candidates),
            )
        else:
            logger.warning(
                "system_discovery_failed",
                request_id=request_id,
                reference=reference,
                checked_systems=[s.id for s in candidates],
            )
        return found

    async def lookup_all(
        self,
        reference: str,
        subscribers: Sequence[Subscriber],
        request_id: str | None = None,
    ) -> list[LookupResult]:
        return list(
            await asyncio.gather(
                *(self.lookup(s, reference, request_id) for s in subscribers)
            )
        )

    async def lookup(
        self, subscriber: Subscriber, reference: str, request_id: str | None = None
    ) -> LookupResult:
        url = subscriber.verify_url(quote(reference, safe=""))
        timeout_ms = subscriber.timeout_ms or self.default_timeout_ms
        started = time.perf_counter()

        logger.debug(
            "system_check_start",
            request_id=request_id,
            subscriber_id=subscriber.id,
            check_url=url,
        )
        try:
            response = await asyncio.wait_for(
                self.client.get(url, timeout=timeout_ms / 1000),
                timeout=timeout_ms / 1000,
            )
        except Exception as exc:
            elapsed = (time.perf_counter() - started) * 1000
            error = str(exc) or type(exc).__name__
            logger.warning(
                "system_check_error",
                request_id=request_id,
                subscriber_id=subscriber.id,
                reference=reference,
                error=error,
                error_code=type(exc).__name__,
                response_time_ms=round(elapsed, 1),
                timeout_ms=timeout_ms,
            )
            return LookupResult(subscriber, False, elapsed_ms=elapsed, error=error)

        elapsed = (time.perf_counter() - started) * 1000
        matched = confirms_ownership(response)
        logger.debug(
            "system_check_complete",
            request_id=request_id,
            subscriber_id=subscriber.id,
            reference=reference,
            response_status=response.status_code,
            response_time_ms=round(elapsed, 1),
            found=matched,
        )
        return LookupResult(subscriber, matched, response.status_code, elapsed)

import asyncio
import time
from dataclasses import asdict, dataclass
from typing import Any

import httpx
from dispatcher.core.logging import get_logger
from dispatcher.schemas.subscribers import Subscriber

logger = get_logger(__name__)

DEFAULT_FORWARD_TIMEOUT_MS = 30000
DEFAULT_USER_AGENT = "Paystack-Webhook-Dispatcher/1.0"
SIGNATURE_HEADER = "X-Paystack-Signature"


@dataclass
class ForwardResult:
    success: bool
    status: int | None = None
    data: Any = None
    error: dict[str, Any] | None = None
    elapsed_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class WebhookForwarder:
    """Relay the original webhook bytes to the subscriber that owns them."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        default_timeout_ms: int = DEFAULT_FORWARD_TIMEOUT_MS,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.client = client
        self.default_timeout_ms = default_timeout_ms
        self.user_agent = user_agent

    def build_headers(
        self,
        signature: str | None,
        forwarded_for: str | None = None,
        request_id: str | None = None,
    ) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self.user_agent,
            "X-Forwarded-For": forwarded_for or "dispatcher",
        }
        if signature is not None:
            headers[SIGNATURE_HEADER] = signature
        if request_id:
            headers["X-Request-ID"] = request_id
        return headers

    async def forward(
        self,
        subscriber: Subscriber,
        raw_body: bytes,
        signature: str | None,
        forwarded_for: str | None = None,
        request_id: str | None = None,
    ) -> ForwardResult:
        url = subscriber.webhook_url
        timeout_ms = subscriber.timeout_ms or self.default_timeout_ms
        headers = self.build_headers(signature, forwarded_for, request_id)
        started = time.perf_counter()

        logger.info(
            "webhook_forward_start",
            request_id=request_id,
            subscriber_id=subscriber.id,
            webhook_url=url,
        )
        try:
            response = await asyncio.wait_for(
                self.client.post(
                    url, content=raw_body, headers=headers, timeout=timeout_ms / 1000
                ),
                timeout=timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            return self._failed(
                subscriber,
                started,
                request_id,
                message=f"timeout of {timeout_ms}ms exceeded",
                code="TIMEOUT",
            )
        except Exception as exc:
            return self._failed(
                subscriber,
                started,
                request_id,
                message=str(exc) or type(exc).__name__,
                code=type(exc).__name__,
            )

        elapsed = (time.perf_counter() - started) * 1000
        body = _response_body(response)
        if response.status_code >= 500:
            return self._failed(
                subscriber,
                started,
                request_id,
                message=f"Request failed with status code {response.status_code}",
                code=f"HTTP_{response.status_code}",
                status=response.status_code,
                data=body,
            )

        logger.info(
            "webhook_forward_complete",
            request_id=request_id,
            subscriber_id=subscriber.id,
            response_status=response.status_code,
            response_time_ms=round(elapsed, 1),
            response_size=len(response.content),
        )
        return ForwardResult(
            success=True, status=response.status_code, data=body, elapsed_ms=elapsed
        )

    def _failed(
        self,
        subscriber: Subscriber,
        started: float,
        request_id: str | None,
        *,
        message: str,
        code: str,
        status: int | None = None,
        data: Any = None,
    ) -> ForwardResult:
        elapsed = (time.perf_counter() - started) * 1000
        error = {"message": message, "code": code, "status": status}
        logger.error(
            "webhook_forward_error",
            request_id=request_id,
            subscriber_id=subscriber.id,
            webhook_url=subscriber.webhook_url,
            error=message,
            error_code=code,
            response_status=status,
            response_time_ms=round(elapsed, 1),
        )
        return ForwardResult(
            success=False, status=status, data=data, error=error, elapsed_ms=elapsed
        )

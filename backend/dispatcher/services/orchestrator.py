"""End-to-end handling of one inbound provider webhook.

    RECEIVED -> VERIFYING -> REJECTED
                          -> RESOLVING -> NOT_FOUND
                                       -> FORWARDING -> FORWARDED
                                                     -> FORWARD_FAILED

Anything unexpected along the way ends in FAILED.
"""

import enum
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from dispatcher.core.exceptions import (
    InvalidPayloadError,
    ReferenceMissingError,
    SignatureInvalidError,
    SignatureMissingError,
)
from dispatcher.core.logging import get_logger
from dispatcher.schemas.ingest import WebhookPayload
from dispatcher.schemas.subscribers import Subscriber
from dispatcher.services import signature
from dispatcher.services.forwarder import WebhookForwarder
from dispatcher.services.registry import SubscriberRegistry
from dispatcher.services.resolver import ReferenceResolver
from pydantic import ValidationError

logger = get_logger(__name__)


class DispatchState(str, enum.Enum):
    RECEIVED = "received"
    VERIFYING = "verifying"
    REJECTED = "rejected"
    RESOLVING = "resolving"
    NOT_FOUND = "not_found"
    FORWARDING = "forwarding"
    FORWARDED = "forwarded"
    FORWARD_FAILED = "forward_failed"
    FAILED = "failed"


STATUS_CODES = {
    DispatchState.REJECTED: 400,
    DispatchState.NOT_FOUND: 404,
    DispatchState.FORWARDED: 200,
    DispatchState.FORWARD_FAILED: 500,
    DispatchState.FAILED: 500,
}


@dataclass
class DispatchOutcome:
    state: DispatchState
    body: dict[str, Any]
    subscriber: Subscriber | None = None
    downstream_status: int | None = None
    downstream_body: Any = None
    error: dict[str, Any] | None = None
    resolution_ms: float | None = None
    forward_ms: float | None = None

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.state]

    @property
    def success(self) -> bool:
        return self.state is DispatchState.FORWARDED


def _header(headers: Mapping[str, str], name: str) -> str | None:
    name = name.lower()
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 1)


class WebhookDispatcher:
    def __init__(
        self,
        registry: SubscriberRegistry,
        resolver: ReferenceResolver,
        forwarder: WebhookForwarder,
        secret: str,
        signature_header: str = "x-paystack-signature",
    ) -> None:
        self.registry = registry
        self.resolver = resolver
        self.forwarder = forwarder
        self.secret = secret
        self.signature_header = signature_header

    async def dispatch(
        self, headers: Mapping[str, str], raw_body: bytes, request_id: str
    ) -> DispatchOutcome:
        try:
            return await self._dispatch(headers, raw_body, request_id)
        except Exception as exc:
            logger.exception(
                "webhook_dispatcher_error", request_id=request_id, error=str(exc)
            )
            return DispatchOutcome(
                DispatchState.FAILED,
                {"error": "Webhook processing failed", "requestId": request_id},
                error={"message": str(exc), "code": type(exc).__name__},
            )

    async def _dispatch(
        self, headers: Mapping[str, str], raw_body: bytes, request_id: str
    ) -> DispatchOutcome:
        started = time.perf_counter()
        sig = _header(headers, self.signature_header)
        logger.info(
            "webhook_received",
            request_id=request_id,
            signature="present" if sig else "missing",
            body_size=len(raw_body),
        )

        try:
            payload = self.verify(raw_body, sig, request_id)
        except (
            SignatureMissingError,
            SignatureInvalidError,
            InvalidPayloadError,
            ReferenceMissingError,
        ) as exc:
            return self.rejected(exc, request_id)

        reference = payload.reference
        logger.info(
            "webhook_processing",
            request_id=request_id,
            provider_event=payload.event,
            reference=reference,
        )

        subscribers = self.registry.snapshot()
        resolve_started = time.perf_counter()
        target = await self.resolver.resolve(reference, subscribers, request_id)
        resolution_ms = _elapsed_ms(resolve_started)

        if target is None:
            return DispatchOutcome(
                DispatchState.NOT_FOUND,
                {
                    "error": "Payment reference not found in any system",
                    "reference": reference,
                    "requestId": request_id,
                },
                resolution_ms=resolution_ms,
            )

        logger.info(
            "webhook_system_found",
            request_id=request_id,
            subscriber_id=target.id,
            reference=reference,
            resolution_ms=resolution_ms,
        )
        result = await self.forwarder.forward(
            target,
            raw_body,
            sig,
            forwarded_for=_header(headers, "x-forwarded-for"),
            request_id=request_id,
        )
        forward_ms = round(result.elapsed_ms, 1)
        outcome = DispatchOutcome(
            DispatchState.FORWARDED if result.success else DispatchState.FORWARD_FAILED,
            {},
            subscriber=target,
            downstream_status=result.status,
            downstream_body=result.data,
            error=result.error,
            resolution_ms=resolution_ms,
            forward_ms=forward_ms,
        )

        if result.success:
            outcome.body = {
                "success": True,
                "requestId": request_id,
                "forwardedTo": target.name,
                "subscriberId": target.id,
                "reference": reference,
                "processingTime": _elapsed_ms(started),
                "downstreamStatus": result.status,
                "response": result.data,
            }
        else:
            outcome.body = {
                "error": "Failed to forward webhook",
                "requestId": request_id,
                "reference": reference,
                "target": target.id,
                "details": result.error,
            }
        return outcome

    def verify(
        self, raw_body: bytes, sig: str | None, request_id: str
    ) -> WebhookPayload:
        """Check the signature over the raw bytes, then parse them."""
        signature.verify(raw_body, sig, self.secret)
        logger.info("webhook_security_success", request_id=request_id)
        try:
            payload = WebhookPayload.model_validate_json(raw_body)
        except ValidationError as ve:
            raise InvalidPayloadError(
                "Invalid JSON payload", {"errors": ve.error_count()}
            ) from ve
        if payload.reference is None:
            raise ReferenceMissingError(
                "No payment reference", {"event": payload.event}
            )
        return payload

    def rejected(self, exc: Exception, request_id: str) -> DispatchOutcome:
        reasons = {
            SignatureMissingError: "signature_missing",
            SignatureInvalidError: "signature_invalid",
            InvalidPayloadError: "invalid_payload",
            ReferenceMissingError: "reference_missing",
        }
        reason = reasons[type(exc)]
        logger.warning(
            "webhook_rejected", request_id=request_id, reason=reason, error=str(exc)
        )
        return DispatchOutcome(
            DispatchState.REJECTED,
            {"error": str(exc), "reason": reason, "requestId": request_id},
            error={"message": str(exc), "code": reason},
        )

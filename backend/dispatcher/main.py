import json
import resource
import time
from datetime import UTC, datetime

import httpx
from dispatcher.core.config import Settings, get_settings
from dispatcher.core.exceptions import (
    DuplicateSubscriberError,
    SubscriberNotFoundError,
)
from dispatcher.core.logging import configure_logging, get_logger
from dispatcher.middleware.body_size import BodySizeLimitMiddleware
from dispatcher.middleware.request_id import RequestIDMiddleware, new_request_id
from dispatcher.schemas.subscribers import Subscriber, SubscriberAdded, SubscriberList
from dispatcher.services import health as health_service
from dispatcher.services.forwarder import WebhookForwarder
from dispatcher.services.orchestrator import WebhookDispatcher
from dispatcher.services.registry import SubscriberRegistry, get_registry
from dispatcher.services.resolver import ReferenceResolver
from dispatcher.services.signature import compute_signature
from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

settings = get_settings()
configure_logging(
    settings.log_level, json_logs=settings.log_json, log_dir=settings.log_dir
)
logger = get_logger(__name__)

STARTED_AT = time.monotonic()

app = FastAPI(
    title="Paystack Webhook Dispatcher",
    description="Routes provider webhooks to the ticketing system that owns them",
    version="1.0.0",
)

app.add_middleware(BodySizeLimitMiddleware, max_body_size=settings.max_body_size)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup():
    app.state.http_client = httpx.AsyncClient()
    registry = get_registry()
    logger.info(
        "server_startup",
        provider=settings.provider,
        systems_count=len(registry),
        systems=[
            {"id": s.id, "name": s.name, "enabled": s.enabled}
            for s in registry.snapshot()
        ],
    )


@app.on_event("shutdown")
async def shutdown():
    await app.state.http_client.aclose()
    logger.info("server_shutdown")


def request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or new_request_id()


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail, "requestId": request_id(request)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    details = [
        {"loc": [str(part) for part in err["loc"]], "msg": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "Invalid request",
            "details": details,
            "requestId": request_id(request),
        },
    )


# ---------- dependencies ----------
def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def get_forwarder(
    settings: Settings = Depends(get_settings),
    client: httpx.AsyncClient = Depends(get_http_client),
) -> WebhookForwarder:
    return WebhookForwarder(
        client,
        default_timeout_ms=settings.forward_timeout_ms,
        user_agent=settings.user_agent,
    )


def get_dispatcher(
    settings: Settings = Depends(get_settings),
    registry: SubscriberRegistry = Depends(get_registry),
    client: httpx.AsyncClient = Depends(get_http_client),
    forwarder: WebhookForwarder = Depends(get_forwarder),
) -> WebhookDispatcher:
    return WebhookDispatcher(
        registry,
        ReferenceResolver(client, default_timeout_ms=settings.lookup_timeout_ms),
        forwarder,
        secret=settings.paystack_secret_key,
        signature_header=settings.signature_header,
    )


# ---------- ingress ----------
@app.post("/webhooks/{provider}")
async def receive_webhook(
    provider: str,
    request: Request,
    settings: Settings = Depends(get_settings),
    dispatcher: WebhookDispatcher = Depends(get_dispatcher),
):
    if provider != settings.provider:
        raise HTTPException(status_code=404, detail="Unknown provider")

    raw = await request.body()
    outcome = await dispatcher.dispatch(request.headers, raw, request_id(request))
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)


# ---------- health ----------
@app.get("/health")
async def health(
    request: Request,
    settings: Settings = Depends(get_settings),
    registry: SubscriberRegistry = Depends(get_registry),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    return await health_service.check_subscribers(
        client,
        registry.snapshot(),
        request_id=request_id(request),
        timeout_ms=settings.health_timeout_ms,
    )


# ---------- admin ----------
@app.get("/admin/systems", response_model=SubscriberList)
def list_systems(
    request: Request, registry: SubscriberRegistry = Depends(get_registry)
):
    logger.info("admin_systems_list", request_id=request_id(request))
    return SubscriberList(systems=list(registry.snapshot()))


@app.post(
    "/admin/systems",
    response_model=SubscriberAdded,
    status_code=status.HTTP_201_CREATED,
)
def add_system(
    data: Subscriber,
    request: Request,
    registry: SubscriberRegistry = Depends(get_registry),
):
    try:
        system = registry.add(data)
    except DuplicateSubscriberError as exc:
        raise HTTPException(status_code=409, detail=exc.message)
    logger.info(
        "admin_system_added",
        request_id=request_id(request),
        subscriber_id=system.id,
    )
    return SubscriberAdded(system=system)


@app.post("/admin/test-forward/{subscriber_id}")
async def test_forward(
    subscriber_id: str,
    request: Request,
    settings: Settings = Depends(get_settings),
    registry: SubscriberRegistry = Depends(get_registry),
    forwarder: WebhookForwarder = Depends(get_forwarder),
):
    rid = request_id(request)
    try:
        system = registry.get(subscriber_id)
    except SubscriberNotFoundError:
        raise HTTPException(status_code=404, detail="System not found")

    sample = {
        "event": "charge.success",
        "data": {
            "reference": f"TEST-{int(time.time() * 1000)}",
            "amount": 10000,
            "status": "success",
            "currency": "GHS",
            "customer": {"email": "test@example.com"},
        },
    }
    raw = json.dumps(sample).encode()
    result = await forwarder.forward(
        system,
        raw,
        compute_signature(raw, settings.paystack_secret_key),
        request_id=rid,
    )
    logger.info(
        "admin_webhook_test_complete",
        request_id=rid,
        subscriber_id=system.id,
        test_success=result.success,
    )
    return {
        "requestId": rid,
        "reference": sample["data"]["reference"],
        **result.to_dict(),
    }


@app.get("/admin/metrics")
def metrics(registry: SubscriberRegistry = Depends(get_registry)):
    return {
        "success": True,
        "metrics": {
            "uptime": round(time.monotonic() - STARTED_AT, 3),
            "timestamp": datetime.now(UTC).isoformat(),
            "systems": {
                "total": len(registry),
                "enabled": len(registry.enabled()),
            },
            "memory": {
                "max_rss_kb": resource.getrusage(resource.RUSAGE_SELF).ru_maxrss,
            },
        },
    }

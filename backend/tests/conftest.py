import json
import logging
import os
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

# Set test environment variables
SECRET = "sk_test_dispatcher"
CBS_URL = "https://cbs.test"
MMV_URL = "https://mmv.test"

os.environ.update(
    {
        "PAYSTACK_SECRET_KEY": SECRET,
        "SUBSCRIBERS": json.dumps(
            [
                {
                    "id": "cbs-ticketing",
                    "name": "CBS Ticketing",
                    "baseUrl": CBS_URL,
                    "timeoutMs": 2000,
                },
                {"id": "mmv-ticketing", "name": "MMV Ticketing", "baseUrl": MMV_URL},
            ]
        ),
        "ALLOWED_ORIGINS": "*",
        "LOG_LEVEL": "DEBUG",
    }
)

# Import app modules after setting environment variables
from dispatcher.core.config import Settings, get_settings
from dispatcher.services.registry import SubscriberRegistry, get_registry
from dispatcher.services.signature import compute_signature

logger = logging.getLogger(__name__)


@pytest.fixture(autouse=True)
def fresh_registry() -> Iterator[None]:
    """Every test starts from the configured subscribers."""
    get_registry.cache_clear()
    yield
    get_registry.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture
def registry() -> SubscriberRegistry:
    return get_registry()


@pytest.fixture
def sign():
    def _sign(body: bytes, secret: str = SECRET) -> str:
        return compute_signature(body, secret)

    return _sign


@pytest.fixture
def charge_event():
    def _event(reference: str | None = "REF-1", **data) -> bytes:
        payload = {
            "event": "charge.success",
            "data": {
                "reference": reference,
                "amount": 5000,
                "currency": "GHS",
                "customer": {"email": "buyer@example.com"},
                **data,
            },
        }
        return json.dumps(payload).encode()

    return _event


@pytest.fixture
def client() -> Iterator[TestClient]:
    from dispatcher.main import app

    with TestClient(app) as test_client:
        logger.info("Test client created")
        yield test_client
    app.dependency_overrides.clear()

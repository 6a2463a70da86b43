from concurrent.futures import ThreadPoolExecutor

import pytest
from dispatcher.core.exceptions import (
    DuplicateSubscriberError,
    SubscriberNotFoundError,
)
from dispatcher.schemas.subscribers import Subscriber
from dispatcher.services.registry import SubscriberRegistry
from pydantic import ValidationError


def _subscriber(id: str, **kwargs) -> Subscriber:
    return Subscriber(id=id, name=id.upper(), base_url=f"https://{id}.test", **kwargs)


def test_configured_registry(registry):
    assert [s.id for s in registry.snapshot()] == ["cbs-ticketing", "mmv-ticketing"]
    assert registry.get("cbs-ticketing").name == "CBS Ticketing"
    assert registry.get("cbs-ticketing").timeout_ms == 2000
    assert registry.get("mmv-ticketing").timeout_ms is None


def test_add_and_get():
    registry = SubscriberRegistry()
    registry.add(_subscriber("one"))
    assert len(registry) == 1
    assert registry.get("one").base_url == "https://one.test"


def test_get_unknown():
    with pytest.raises(SubscriberNotFoundError):
        SubscriberRegistry([_subscriber("one")]).get("two")


def test_duplicate_ids_rejected():
    registry = SubscriberRegistry([_subscriber("one")])
    with pytest.raises(DuplicateSubscriberError):
        registry.add(_subscriber("one"))
    assert len(registry) == 1


def test_duplicate_ids_rejected_at_construction():
    with pytest.raises(DuplicateSubscriberError):
        SubscriberRegistry([_subscriber("one"), _subscriber("one")])


def test_enabled_keeps_registry_order():
    registry = SubscriberRegistry(
        [_subscriber("a"), _subscriber("b", enabled=False), _subscriber("c")]
    )
    assert [s.id for s in registry.enabled()] == ["a", "c"]


def test_snapshot_unaffected_by_later_append():
    registry = SubscriberRegistry([_subscriber("a")])
    snapshot = registry.snapshot()
    registry.add(_subscriber("b"))
    assert [s.id for s in snapshot] == ["a"]
    assert [s.id for s in registry.snapshot()] == ["a", "b"]


def test_concurrent_appends_all_land():
    registry = SubscriberRegistry()
    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda i: registry.add(_subscriber(f"s{i}")), range(50)))
    assert len(registry) == 50
    assert len({s.id for s in registry.snapshot()}) == 50


def test_concurrent_duplicate_appends_keep_one():
    registry = SubscriberRegistry()

    def add():
        try:
            registry.add(_subscriber("same"))
            return True
        except DuplicateSubscriberError:
            return False

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: add(), range(20)))
    assert results.count(True) == 1
    assert len(registry) == 1


@pytest.mark.parametrize(
    "fields",
    [
        {"name": "X", "base_url": "https://x.test"},
        {"id": " ", "name": "X", "base_url": "https://x.test"},
        {"id": "x", "base_url": "https://x.test"},
        {"id": "x", "name": "X"},
        {"id": "x", "name": "X", "base_url": "ftp://x.test"},
        {"id": "x", "name": "X", "base_url": "https://x.test", "timeout_ms": 0},
        {"id": "x", "name": "X", "base_url": "https://x.test", "verify_path": "/v"},
    ],
)
def test_invalid_subscriber(fields):
    with pytest.raises(ValidationError):
        Subscriber(**fields)


def test_subscriber_urls_and_aliases():
    subscriber = Subscriber.model_validate(
        {"id": "x", "name": "X", "baseUrl": "https://x.test/", "webhookPath": "/hook"}
    )
    assert subscriber.webhook_url == "https://x.test/hook"
    assert subscriber.health_url == "https://x.test/health"
    assert subscriber.verify_url("R1") == "https://x.test/api/tickets/verify/R1"
    dumped = subscriber.model_dump(by_alias=True)
    assert dumped["baseUrl"] == "https://x.test"
    assert dumped["timeoutMs"] is None

import uuid
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from hookrelay.errors import StoreConflictError, StoreUnavailableError
from hookrelay.events import EventType, MergeEvent, PushEvent
from hookrelay.models import DeliveryStatus
from tests.payloads import (
    MERGE_PAYLOAD,
    PULL_REQUEST_PAYLOAD,
    PUSH_PAYLOAD,
    encode,
    sign,
)

WEBHOOK_URL = "/api/webhooks/github"


def signed_headers(body: bytes, event: str, delivery_id: str | None = None) -> dict:
    return {
        "Content-Type": "application/json",
        "X-GitHub-Delivery": delivery_id or str(uuid.uuid4()),
        "X-GitHub-Event": event,
        "X-Hub-Signature-256": sign(body),
    }


@pytest.fixture
def push_calls(registry):
    calls = []

    async def record_push(event):
        calls.append(event)

    registry.register(EventType.PUSH, record_push)
    return calls


def test_receive_push_webhook(client: TestClient, memory_store, push_calls):
    body = encode(PUSH_PAYLOAD)
    delivery_id = str(uuid.uuid4())

    response = client.post(
        WEBHOOK_URL, content=body, headers=signed_headers(body, "push", delivery_id)
    )

    assert response.status_code == 202
    response_data = response.json()
    assert response_data["message"] == "Webhook received"
    assert response_data["delivery_id"] == delivery_id
    assert response_data["event"] == "push"

    assert len(push_calls) == 1
    assert isinstance(push_calls[0], PushEvent)
    assert push_calls[0].ref == "refs/heads/main"
    delivery = memory_store._deliveries[delivery_id]
    assert delivery.status == DeliveryStatus.PROCESSED
    assert delivery.signature_valid is True
    assert delivery.event_type == "push"


def test_receive_merge_webhook(client: TestClient, registry):
    merges = []
    pull_requests = []

    async def on_merge(event):
        merges.append(event)

    async def on_pull_request(event):
        pull_requests.append(event)

    registry.register(EventType.MERGE, on_merge)
    registry.register(EventType.PULL_REQUEST, on_pull_request)
    body = encode(MERGE_PAYLOAD)

    response = client.post(
        WEBHOOK_URL, content=body, headers=signed_headers(body, "pull_request")
    )

    assert response.status_code == 202
    assert response.json()["event"] == "merge"
    assert len(merges) == 1
    assert isinstance(merges[0], MergeEvent)
    assert pull_requests == []


def test_replayed_delivery_returns_duplicate(client: TestClient, push_calls):
    body = encode(PUSH_PAYLOAD)
    headers = signed_headers(body, "push")

    first = client.post(WEBHOOK_URL, content=body, headers=headers)
    second = client.post(WEBHOOK_URL, content=body, headers=headers)

    assert first.status_code == 202
    assert second.status_code == 200
    assert second.json()["message"] == "Duplicate delivery"
    assert len(push_calls) == 1


def test_replayed_delivery_conflict_when_configured(client: TestClient, push_calls):
    body = encode(PUSH_PAYLOAD)
    headers = signed_headers(body, "push")

    with patch("hookrelay.routes.webhooks.settings.duplicate_status_code", 409):
        client.post(WEBHOOK_URL, content=body, headers=headers)
        response = client.post(WEBHOOK_URL, content=body, headers=headers)

    assert response.status_code == 409
    assert "Duplicate delivery" in response.json()["detail"]
    assert len(push_calls) == 1


def test_failed_handler_still_accepts_delivery(client: TestClient, registry, memory_store):
    async def broken(event):
        raise RuntimeError("boom")

    registry.register(EventType.PUSH, broken, name="broken")
    body = encode(PUSH_PAYLOAD)
    delivery_id = str(uuid.uuid4())

    response = client.post(
        WEBHOOK_URL, content=body, headers=signed_headers(body, "push", delivery_id)
    )

    assert response.status_code == 202
    delivery = memory_store._deliveries[delivery_id]
    assert delivery.status == DeliveryStatus.FAILED
    assert delivery.failed_handlers == ["broken"]


def test_failed_delivery_is_rerun_on_redelivery(client: TestClient, registry):
    attempts = []

    async def flaky(event):
        attempts.append(event)
        if len(attempts) == 1:
            raise RuntimeError("temporary")

    registry.register(EventType.PUSH, flaky, name="flaky")
    body = encode(PUSH_PAYLOAD)
    headers = signed_headers(body, "push")

    first = client.post(WEBHOOK_URL, content=body, headers=headers)
    second = client.post(WEBHOOK_URL, content=body, headers=headers)
    third = client.post(WEBHOOK_URL, content=body, headers=headers)

    assert [first.status_code, second.status_code, third.status_code] == [202, 202, 200]
    assert len(attempts) == 2


def test_unknown_event_is_accepted(client: TestClient):
    body = encode({"zen": "Design for failure.", "hook_id": 1})

    response = client.post(WEBHOOK_URL, content=body, headers=signed_headers(body, "ping"))

    assert response.status_code == 202
    assert response.json()["event"] == "unknown"


def test_missing_event_header_is_unknown(client: TestClient):
    body = encode(PULL_REQUEST_PAYLOAD)
    headers = signed_headers(body, "pull_request")
    del headers["X-GitHub-Event"]

    response = client.post(WEBHOOK_URL, content=body, headers=headers)

    assert response.status_code == 202
    assert response.json()["event"] == "unknown"


def test_missing_delivery_header(client: TestClient):
    body = encode(PUSH_PAYLOAD)
    headers = signed_headers(body, "push")
    del headers["X-GitHub-Delivery"]

    response = client.post(WEBHOOK_URL, content=body, headers=headers)

    assert response.status_code == 400
    assert "Missing X-GitHub-Delivery header" in response.json()["detail"]


def test_delivery_header_too_long(client: TestClient):
    body = encode(PUSH_PAYLOAD)

    response = client.post(
        WEBHOOK_URL, content=body, headers=signed_headers(body, "push", "x" * 300)
    )

    assert response.status_code == 400
    assert "Invalid X-GitHub-Delivery header format" in response.json()["detail"]


def test_missing_signature(client: TestClient, memory_store):
    body = encode(PUSH_PAYLOAD)
    headers = signed_headers(body, "push")
    del headers["X-Hub-Signature-256"]

    response = client.post(WEBHOOK_URL, content=body, headers=headers)

    assert response.status_code == 401
    assert "Missing X-Hub-Signature-256 header" in response.json()["detail"]
    assert memory_store._deliveries == {}


def test_invalid_signature(client: TestClient, memory_store, push_calls):
    body = encode(PUSH_PAYLOAD)
    headers = signed_headers(body, "push")
    headers["X-Hub-Signature-256"] = "sha256=invalid-signature"

    response = client.post(WEBHOOK_URL, content=body, headers=headers)

    assert response.status_code == 401
    assert "Invalid signature" in response.json()["detail"]
    assert push_calls == []
    assert memory_store._deliveries == {}


def test_invalid_json(client: TestClient):
    body = b"not-json"

    response = client.post(WEBHOOK_URL, content=body, headers=signed_headers(body, "push"))

    assert response.status_code == 400
    assert "Invalid JSON payload" in response.json()["detail"]


def test_unsigned_mode_without_secret(client: TestClient, memory_store, push_calls):
    body = encode(PUSH_PAYLOAD)
    delivery_id = str(uuid.uuid4())
    headers = {"X-GitHub-Delivery": delivery_id, "X-GitHub-Event": "push"}

    with patch("hookrelay.routes.webhooks.settings.github_webhook_secret", ""):
        response = client.post(WEBHOOK_URL, content=body, headers=headers)

    assert response.status_code == 202
    assert memory_store._deliveries[delivery_id].signature_valid is False
    assert len(push_calls) == 1


def test_store_unavailable_asks_for_redelivery(client: TestClient, memory_store):
    body = encode(PUSH_PAYLOAD)

    with patch.object(
        memory_store,
        "record_received",
        AsyncMock(side_effect=StoreUnavailableError("connection refused")),
    ):
        response = client.post(
            WEBHOOK_URL, content=body, headers=signed_headers(body, "push")
        )

    assert response.status_code == 503
    assert response.headers["Retry-After"] == "30"


def test_store_conflict(client: TestClient, memory_store):
    body = encode(PUSH_PAYLOAD)

    with patch.object(
        memory_store,
        "record_received",
        AsyncMock(side_effect=StoreConflictError("delivery-1", "insert conflicted")),
    ):
        response = client.post(
            WEBHOOK_URL, content=body, headers=signed_headers(body, "push")
        )

    assert response.status_code == 409


def test_store_error_during_dispatch_is_logged(client: TestClient, memory_store):
    body = encode(PUSH_PAYLOAD)

    with patch.object(
        memory_store,
        "acquire",
        AsyncMock(side_effect=StoreUnavailableError("connection refused")),
    ):
        response = client.post(
            WEBHOOK_URL, content=body, headers=signed_headers(body, "push")
        )

    assert response.status_code == 202
    (delivery,) = memory_store._deliveries.values()
    assert delivery.status == DeliveryStatus.PENDING


def test_health_check(client: TestClient):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}

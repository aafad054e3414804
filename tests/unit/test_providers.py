from __future__ import annotations

import threading
import time
from datetime import timedelta
from types import SimpleNamespace

import firebase_admin
import pytest
from firebase_admin import credentials, exceptions, messaging

from push_dispatch.config import Settings
from push_dispatch.models.notification import NotificationBlock, PushNotification, PushStatus
from push_dispatch.notifications.builder import build_android_payload
from push_dispatch.notifications.errors import ClientInitError, TransportError
from push_dispatch.notifications.providers import (
    DeliveryClientProvider,
    FirebaseDeliveryClient,
    MockDeliveryClient,
    create_client_provider,
    from_batch_response,
    to_multicast_message,
)
from push_dispatch.notifications.service import PushDispatchService
from push_dispatch.storage.repository import MemoryAuditLog
from push_dispatch.storage.stats import MemoryStatStorage


def test_provider_caches_first_client() -> None:
    calls: list[int] = []

    def factory() -> MockDeliveryClient:
        calls.append(1)
        return MockDeliveryClient()

    provider = DeliveryClientProvider(factory)

    first = provider.get()
    second = provider.get()

    assert first is second
    assert calls == [1]
    assert provider.initialized


def test_provider_runs_factory_once_under_concurrent_first_use() -> None:
    calls: list[int] = []

    def slow_factory() -> MockDeliveryClient:
        calls.append(1)
        time.sleep(0.05)
        return MockDeliveryClient()

    provider = DeliveryClientProvider(slow_factory)
    barrier = threading.Barrier(6)
    clients = []

    def worker() -> None:
        barrier.wait()
        clients.append(provider.get())

    threads = [threading.Thread(target=worker) for _ in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert calls == [1]
    assert len({id(client) for client in clients}) == 1


def test_failed_creation_is_not_cached() -> None:
    attempts: list[int] = []

    def flaky_factory() -> MockDeliveryClient:
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("service unreachable")
        return MockDeliveryClient()

    provider = DeliveryClientProvider(flaky_factory)

    with pytest.raises(ClientInitError, match="service unreachable"):
        provider.get()
    assert not provider.initialized

    assert isinstance(provider.get(), MockDeliveryClient)
    assert len(attempts) == 2


def test_mock_client_reports_configured_failures() -> None:
    client = MockDeliveryClient(failures={"B": "unregistered"})
    payload = build_android_payload(PushNotification(tokens=["A", "B", "C"]))

    response = client.send_multicast(payload)

    assert response.success_count == 2
    assert response.failure_count == 1
    assert [outcome.error for outcome in response.responses] == [None, "unregistered", None]
    assert client.sent == [payload]


def test_firebase_client_requires_key() -> None:
    with pytest.raises(ClientInitError):
        FirebaseDeliveryClient.create(project_id="demo", service_account_key="", http_timeout=5)


def test_firebase_client_rejects_missing_key_file(tmp_path) -> None:
    with pytest.raises(ClientInitError):
        FirebaseDeliveryClient.create(
            project_id="demo",
            service_account_key=str(tmp_path / "missing.json"),
            http_timeout=5,
        )


def test_create_client_provider_defaults_to_mock() -> None:
    provider = create_client_provider(Settings(push_provider="mock"))

    assert isinstance(provider.get(), MockDeliveryClient)


def test_to_multicast_message_maps_payload_fields() -> None:
    req = PushNotification(
        tokens=["A", "B"],
        title="Top",
        message="Body",
        data={"k": 1},
        collapse_key="score",
        priority="high",
        time_to_live=90,
        notification=NotificationBlock(title="Nested", channel_id="alerts", badge=4),
    )

    message = to_multicast_message(build_android_payload(req))

    assert isinstance(message, messaging.MulticastMessage)
    assert message.tokens == ["A", "B"]
    assert message.data == {"k": "1"}
    assert message.notification.title == "Top"
    assert message.notification.image is None
    assert message.android.collapse_key == "score"
    assert message.android.priority == "high"
    assert message.android.ttl == timedelta(seconds=90)
    assert message.android.notification.title == "Nested"
    assert message.android.notification.body == "Body"
    assert message.android.notification.channel_id == "alerts"
    assert message.android.notification.notification_count == 4
    assert message.android.notification.sound is None


def test_from_batch_response_keeps_order() -> None:
    batch = SimpleNamespace(
        success_count=1,
        failure_count=1,
        responses=[
            SimpleNamespace(success=True, message_id="projects/demo/messages/1", exception=None),
            SimpleNamespace(success=False, message_id=None, exception=ValueError("unregistered")),
        ],
    )

    response = from_batch_response(batch)

    assert response.success_count == 1
    assert response.failure_count == 1
    assert response.responses[0].message_id == "projects/demo/messages/1"
    assert response.responses[1].error == "unregistered"


def _batch(*outcomes):
    return SimpleNamespace(
        success_count=sum(1 for item in outcomes if item.success),
        failure_count=sum(1 for item in outcomes if not item.success),
        responses=list(outcomes),
    )


def test_firebase_client_sends_each_for_multicast(monkeypatch) -> None:
    sent = []

    def fake_send(message, dry_run=False, app=None):
        sent.append((message, app))
        return _batch(
            SimpleNamespace(success=True, message_id="projects/demo/messages/1", exception=None),
            SimpleNamespace(success=False, message_id=None, exception=ValueError("unregistered")),
        )

    monkeypatch.setattr(messaging, "send_each_for_multicast", fake_send)
    app = SimpleNamespace(name="push_dispatch")
    client = FirebaseDeliveryClient(app)

    response = client.send_multicast(build_android_payload(PushNotification(tokens=["A", "B"], data={"k": 1})))

    message, used_app = sent[0]
    assert used_app is app
    assert message.tokens == ["A", "B"]
    assert message.data == {"k": "1"}
    assert response.success_count == 1
    assert response.failure_count == 1
    assert [outcome.error for outcome in response.responses] == [None, "unregistered"]


def test_firebase_send_failure_becomes_transport_error(monkeypatch) -> None:
    def failing_send(message, dry_run=False, app=None):
        raise exceptions.UnavailableError("fcm unavailable")

    monkeypatch.setattr(messaging, "send_each_for_multicast", failing_send)
    stats = MemoryStatStorage()
    audit_log = MemoryAuditLog()
    service = PushDispatchService(
        client_provider=DeliveryClientProvider(lambda: FirebaseDeliveryClient(SimpleNamespace(name="push_dispatch"))),
        stats=stats,
        audit_log=audit_log,
        settings=Settings(log_hide_token=False),
    )

    with pytest.raises(TransportError) as excinfo:
        service.dispatch(PushNotification(tokens=["A", "B"]))

    assert isinstance(excinfo.value.__cause__, exceptions.UnavailableError)
    logs = excinfo.value.result.logs
    assert [(log.token, log.status, log.error) for log in logs] == [
        ("A", PushStatus.FAILED_PUSH, "fcm unavailable"),
        ("B", PushStatus.FAILED_PUSH, "fcm unavailable"),
    ]
    assert stats.errors("android") == 2
    assert stats.success("android") == 0
    assert [entry.token for entry in audit_log.list_entries()] == ["A", "B"]


def test_create_client_provider_builds_firebase_client(monkeypatch) -> None:
    init_calls = []

    def fake_initialize_app(credential, options=None, name=None):
        init_calls.append((credential, options, name))
        return SimpleNamespace(name=name)

    monkeypatch.setattr(credentials, "Certificate", lambda path: SimpleNamespace(path=path))
    monkeypatch.setattr(firebase_admin, "initialize_app", fake_initialize_app)
    provider = create_client_provider(
        Settings(
            push_provider="fcm",
            fcm_project_id="demo",
            fcm_service_account_key="/keys/service-account.json",
            fcm_http_timeout_seconds=7.0,
        )
    )

    client = provider.get()

    assert isinstance(client, FirebaseDeliveryClient)
    assert provider.get() is client
    credential, options, name = init_calls[0]
    assert credential.path == "/keys/service-account.json"
    assert options == {"projectId": "demo", "httpTimeout": 7.0}
    assert name == "push_dispatch"
    assert len(init_calls) == 1


def test_create_client_provider_fcm_without_key_fails() -> None:
    provider = create_client_provider(Settings(push_provider="fcm", fcm_service_account_key=""))

    with pytest.raises(ClientInitError):
        provider.get()
    assert not provider.initialized

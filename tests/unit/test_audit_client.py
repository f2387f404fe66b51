"""Unit tests for the audit-log webhook client"""

import asyncio
import httpx
from performup_ledger.infrastructure.clients.audit import AuditClient, audit_event


def make_client(handler, max_retries=3):
    return AuditClient(
        webhook_url="http://audit.test/events",
        transport=httpx.MockTransport(handler),
        max_retries=max_retries,
        backoff_base=0,
    )


def test_send_event_success():
    """Test a single acknowledged delivery"""
    received = []

    def handler(request):
        received.append(request)
        return httpx.Response(202)

    client = make_client(handler)
    event = audit_event("transfer.recorded", "transaction", "abc", "admin-1", amount=100)

    assert asyncio.run(client.send_event(event)) is True
    assert len(received) == 1
    assert received[0].url == "http://audit.test/events"


def test_send_event_retries_then_succeeds():
    """Test server errors are retried with backoff"""
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503) if len(calls) < 3 else httpx.Response(200)

    assert asyncio.run(make_client(handler).send_event({"action": "x"})) is True
    assert len(calls) == 3


def test_send_event_gives_up_without_raising():
    """Test a sink that never answers returns False after the last attempt"""
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    assert asyncio.run(make_client(handler, max_retries=2).send_event({"action": "x"})) is False
    assert len(calls) == 2


def test_send_event_disabled_without_url():
    """Test an empty webhook URL skips delivery"""
    client = AuditClient(webhook_url="")
    assert client.enabled is False
    assert asyncio.run(client.send_event({"action": "x"})) is False


def test_audit_event_payload():
    """Test the payload shape sent to the sink"""
    event = audit_event("payment.validated", "payment", 42, "cashier-1", amount=1000, currency="EUR")

    assert event == {
        "action": "payment.validated",
        "resource_type": "payment",
        "resource_id": "42",
        "actor_id": "cashier-1",
        "metadata": {"amount": 1000, "currency": "EUR"},
    }

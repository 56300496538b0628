"""Unit tests for the reconciliation webhook client"""

import asyncio
import httpx
import pytest
from savings_engine.infrastructure.clients.reconciliation import ReconciliationClient

PAYLOAD = {"event": "PLAN_CREDIT_FAILED", "reconciliation_id": "rec_1", "amount": "3000.00"}


def client_for(statuses, calls):
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(statuses[min(len(calls), len(statuses)) - 1])

    return ReconciliationClient(
        webhook_url="http://ops.test/reconciliation",
        max_retries=3,
        backoff_base=0,
        transport=httpx.MockTransport(handler),
    )


def test_delivers_event():
    calls = []
    asyncio.run(client_for([202], calls).send_failure_event(PAYLOAD))

    assert len(calls) == 1
    assert calls[0].url == "http://ops.test/reconciliation"


def test_retries_server_errors():
    calls = []
    statuses = [503, 500, 200]
    asyncio.run(client_for(statuses, calls).send_failure_event(PAYLOAD))

    assert len(calls) == 3


def test_gives_up_after_max_retries():
    calls = []
    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(client_for([502], calls).send_failure_event(PAYLOAD))

    assert len(calls) == 3


def test_client_errors_not_retried():
    calls = []
    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(client_for([400], calls).send_failure_event(PAYLOAD))

    assert len(calls) == 1

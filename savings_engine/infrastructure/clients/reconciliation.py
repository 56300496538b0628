"""Ops webhook client for plan-credit failures, with exponential backoff retry"""

import httpx
import asyncio
import logging
from typing import Dict, Any, Optional
from savings_engine.config import settings
from savings_engine.infrastructure.observability.metrics import webhook_latency_histogram, webhook_failure_counter


class ReconciliationClient:
    """Notifies the operations team that a wallet debit has no matching plan credit"""

    def __init__(
        self,
        webhook_url: str | None = None,
        max_retries: int | None = None,
        backoff_base: float | None = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.webhook_url = webhook_url or settings.reconciliation_webhook_url
        self.max_retries = max_retries if max_retries is not None else settings.webhook_max_retries
        self.backoff_base = backoff_base if backoff_base is not None else settings.webhook_backoff_base
        self.timeout = settings.http_timeout_seconds
        self.transport = transport

    async def send_failure_event(self, payload: Dict[str, Any]) -> None:
        """
        Post a PLAN_CREDIT_FAILED event to the ops webhook.

        Retry strategy:
        - Exponential backoff: base * 2^(attempt - 1)
        - Retries on 5xx errors and network failures
        - 4xx responses are not retried
        - Tracks latency histogram and failure counter

        Args:
            payload: Reconciliation item (ids, amount, reason)
        """
        attempt = 0
        async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
            while attempt < self.max_retries:
                try:
                    with webhook_latency_histogram.time():
                        response = await client.post(self.webhook_url, json=payload)
                        response.raise_for_status()
                        return

                except httpx.HTTPStatusError as e:
                    webhook_failure_counter.inc()
                    if e.response.status_code < 500:
                        logging.error(
                            f"Reconciliation webhook rejected event: {e.response.status_code}",
                            extra={"reconciliation_id": payload.get("reconciliation_id")},
                        )
                        raise
                    attempt += 1
                    if attempt >= self.max_retries:
                        raise

                except httpx.RequestError:
                    webhook_failure_counter.inc()
                    attempt += 1
                    if attempt >= self.max_retries:
                        raise

                backoff = self.backoff_base * (2 ** (attempt - 1))
                await asyncio.sleep(backoff)

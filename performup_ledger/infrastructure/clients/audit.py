"""Audit-log sink client with exponential backoff retry logic"""

import httpx
import asyncio
import logging
from typing import Dict, Any, Optional
from performup_ledger.config import settings
from performup_ledger.infrastructure.observability.metrics import webhook_latency_histogram, webhook_failure_counter


class AuditClient:
    """Client for notifying the audit-log service after committed ledger mutations"""

    def __init__(
        self,
        webhook_url: str | None = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_retries: int | None = None,
        backoff_base: float | None = None,
    ):
        self.webhook_url = settings.audit_webhook_url if webhook_url is None else webhook_url
        self.max_retries = max_retries or settings.webhook_max_retries
        self.backoff_base = settings.webhook_backoff_base if backoff_base is None else backoff_base
        self.timeout = settings.http_timeout_seconds
        self.transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    async def send_event(self, payload: Dict[str, Any]) -> bool:
        """
        Deliver one audit event. Fire-and-forget: failures are logged, never raised.

        Retry strategy:
        - Exponential backoff: 1s, 2s, 4s, 8s (base * 2^(attempt-1))
        - Retries on HTTP errors and network failures
        - Tracks latency histogram and failure counter

        Returns:
            True when the sink acknowledged the event
        """
        if not self.enabled:
            return False

        attempt = 0
        async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
            while attempt < self.max_retries:
                try:
                    with webhook_latency_histogram.time():
                        response = await client.post(self.webhook_url, json=payload)
                        response.raise_for_status()
                        return True

                except (httpx.HTTPStatusError, httpx.RequestError) as e:
                    attempt += 1
                    webhook_failure_counter.inc()

                    if attempt >= self.max_retries:
                        # Audit delivery never affects the ledger itself
                        logging.error(
                            f"Audit event delivery failed after {attempt} attempts: {e}",
                            extra={"audit_action": payload.get("action")},
                        )
                        return False

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)

        return False


def audit_event(action: str, resource_type: str, resource_id: Any, actor_id: str, **metadata: Any) -> Dict[str, Any]:
    """Build the payload the audit sink expects"""
    return {
        "action": action,
        "resource_type": resource_type,
        "resource_id": str(resource_id),
        "actor_id": actor_id,
        "metadata": metadata,
    }

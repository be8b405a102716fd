"""Best-effort delivery of finalized call records to an external webhook."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from config.settings import Settings, get_settings

LOGGER = logging.getLogger(__name__)


class CallSummaryWebhook:
    """Simple HTTP sink for call summaries.

    Delivery is attempted once. Failures are logged and never propagate into
    call handling.
    """

    def __init__(
        self,
        endpoint: str | None,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> CallSummaryWebhook:
        settings = settings or get_settings()
        return cls(settings.webhook_url, timeout=settings.webhook_timeout_seconds)

    async def deliver(self, record: dict[str, Any]) -> bool:
        if not self._endpoint:
            LOGGER.info("No webhook URL configured, skipping call summary delivery")
            return False

        LOGGER.info("Sending call summary to webhook: %s", record)
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(
                    self._endpoint,
                    json=record,
                    headers={"Content-Type": "application/json"},
                )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            LOGGER.error("Call summary delivery failed: %s", exc)
            return False

        LOGGER.info("Call summary delivered")
        return True

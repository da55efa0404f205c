"""SEOPULSE — Report Delivery.

Rendering and sending the email are external; this module only hands the
finished ReportPayload to whatever does that.
"""

from abc import ABC, abstractmethod
from typing import Optional

import httpx

from seopulse.config import settings
from seopulse.core.errors import DeliveryError
from seopulse.models.analysis_models import ReportPayload
from seopulse.core.logging import get_logger

logger = get_logger("delivery")


class ReportDelivery(ABC):
    """Receives a finished report. Raises DeliveryError on failure."""

    @abstractmethod
    async def send(self, payload: ReportPayload) -> None:
        ...


class WebhookDelivery(ReportDelivery):
    """POSTs the report payload as JSON to a renderer/sender webhook."""

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url or settings.report_webhook_url
        self.timeout = settings.delivery_timeout_seconds if timeout is None else timeout
        self._transport = transport

    async def send(self, payload: ReportPayload) -> None:
        if not self.url:
            raise DeliveryError("No report webhook URL configured")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(self.url, content=payload.model_dump_json(),
                                         headers={"Content-Type": "application/json"})
        except httpx.HTTPError as e:
            raise DeliveryError(f"Webhook request failed: {e}") from e

        if resp.status_code >= 400:
            raise DeliveryError(f"Webhook returned HTTP {resp.status_code}")

        logger.info(
            f"Delivered report {payload.report_id} for {payload.domain}",
            extra={"site_id": payload.site_id, "status_code": resp.status_code},
        )


def default_delivery() -> Optional[ReportDelivery]:
    """WebhookDelivery when a URL is configured, otherwise None."""
    if settings.report_webhook_url:
        return WebhookDelivery()
    return None

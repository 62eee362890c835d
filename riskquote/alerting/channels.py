"""
Alert Channels — deliver alerts to the user's notification surface.

- In-App: hand the notification to a sink (the notification collaborator)
- Webhook: POST JSON to a configured URL over httpx

Delivery is at-least-once: each channel is retried with backoff, and a
channel failure never affects the other channels or the persisted alert.
"""

import inspect
from collections.abc import Awaitable, Callable, Sequence
from typing import Optional, Protocol, Union

import httpx
import structlog

from riskquote.alerting.schemas import AlertNotification, RiskAlert
from riskquote.config import settings
from riskquote.services.resilience import retry_with_backoff

logger = structlog.get_logger(__name__)

NotificationSink = Callable[[AlertNotification], Union[None, Awaitable[None]]]


class AlertChannel(Protocol):
    """Protocol for alert channels. `deliver` raises on failure."""

    name: str

    async def deliver(self, notification: AlertNotification) -> None:
        ...


class InAppChannel:
    """
    Hands notifications to a sink callback (sync or async).

    Without a sink, notifications are kept in `delivered` for polling.
    """

    name = "in_app"

    def __init__(self, sink: Optional[NotificationSink] = None):
        self.sink = sink
        self.delivered: list[AlertNotification] = []

    async def deliver(self, notification: AlertNotification) -> None:
        if self.sink is not None:
            result = self.sink(notification)
            if inspect.isawaitable(result):
                await result
        self.delivered.append(notification)
        logger.debug("in_app_alert_delivered", alert_id=notification.alert_id, user_id=notification.user_id)


class WebhookChannel:
    """
    POSTs the notification as JSON. Non-2xx responses raise so they are retried.
    """

    name = "webhook"

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        headers: Optional[dict] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not url.startswith(("http://", "https://")):
            raise ValueError(f"Webhook URL must be http(s): {url!r}")
        self.url = url
        self.timeout = timeout
        self.headers = {"Content-Type": "application/json", **(headers or {})}
        self._transport = transport

    async def deliver(self, notification: AlertNotification) -> None:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(
                self.url,
                content=notification.model_dump_json(),
                headers=self.headers,
            )
            response.raise_for_status()
        logger.info(
            "webhook_alert_sent",
            alert_id=notification.alert_id,
            url=self.url,
            status=response.status_code,
        )


class AlertDispatcher:
    """
    Fans an alert out to every channel with per-channel retry.
    """

    def __init__(
        self,
        channels: Sequence[AlertChannel],
        max_retries: Optional[int] = None,
        base_delay: float = 0.5,
    ):
        self.channels = list(channels)
        self.max_retries = settings.alert_delivery_retries if max_retries is None else max_retries
        self.base_delay = base_delay

    async def dispatch(self, alert: RiskAlert) -> dict[str, dict]:
        """
        Returns:
            channel name → {"success": bool, "detail": str}
        """
        notification = AlertNotification.from_alert(alert)
        results: dict[str, dict] = {}

        for channel in self.channels:
            try:
                await retry_with_backoff(
                    lambda ch=channel: ch.deliver(notification),
                    max_retries=self.max_retries,
                    base_delay=self.base_delay,
                    operation_name=f"alert_delivery_{channel.name}",
                )
                results[channel.name] = {"success": True, "detail": "delivered"}
            except Exception as e:
                # Alert is already persisted; the periodic consumer can still read it.
                logger.error(
                    "alert_delivery_failed",
                    alert_id=alert.alert_id,
                    channel=channel.name,
                    error=str(e),
                )
                results[channel.name] = {"success": False, "detail": str(e)}

        return results


def build_default_channels(sink: Optional[NotificationSink] = None) -> list[AlertChannel]:
    channels: list[AlertChannel] = [InAppChannel(sink)]
    if settings.alert_webhook_url:
        channels.append(WebhookChannel(settings.alert_webhook_url))
    return channels

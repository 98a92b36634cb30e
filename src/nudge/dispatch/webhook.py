"""HTTP webhook dispatcher.

Destinations are configured by name and resolve to a URL plus a payload
format. A destination that is itself an http(s) URL is posted to directly
with the generic JSON format.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Literal

import httpx

from nudge.scheduling.errors import DispatchFailure
from nudge.scheduling.types import Priority, describe_destination

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0

PRIORITY_COLORS = {
    Priority.LOW: "#28a745",
    Priority.MEDIUM: "#ffc107",
    Priority.HIGH: "#dc3545",
}

PRIORITY_EMOJIS = {
    Priority.LOW: "🟢",
    Priority.MEDIUM: "🟡",
    Priority.HIGH: "🔴",
}


@dataclass(frozen=True)
class WebhookDestination:
    """A named webhook endpoint."""

    url: str
    format: Literal["json", "teams"] = "json"


def build_json_body(
    title: str, message: str, destination: str, priority: Priority
) -> dict[str, Any]:
    return {
        "title": title,
        "message": message,
        "destination": destination,
        "priority": str(priority),
    }


def build_teams_card(title: str, message: str, priority: Priority) -> dict[str, Any]:
    """Render an adaptive card message for a Teams incoming webhook."""
    return {
        "type": "message",
        "attachments": [
            {
                "contentType": "application/vnd.microsoft.card.adaptive",
                "content": {
                    "type": "AdaptiveCard",
                    "version": "1.2",
                    "msteams": {"width": "Full"},
                    "body": [
                        {
                            "type": "TextBlock",
                            "text": f"{PRIORITY_EMOJIS[priority]} {title}",
                            "weight": "Bolder",
                            "size": "Medium",
                            "wrap": True,
                        },
                        {"type": "TextBlock", "text": message, "wrap": True},
                        {
                            "type": "TextBlock",
                            "text": f"Priority: {priority.value.upper()}",
                            "color": "Attention"
                            if priority == Priority.HIGH
                            else "Default",
                            "isSubtle": True,
                            "size": "Small",
                        },
                    ],
                },
            }
        ],
        "themeColor": PRIORITY_COLORS[priority],
    }


def _extract_delivery_id(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and data.get("id"):
        return str(data["id"])
    return response.headers.get("x-request-id") or uuid.uuid4().hex[:12]


class WebhookDispatcher:
    """Posts notifications to webhook URLs with httpx."""

    def __init__(
        self,
        destinations: dict[str, WebhookDestination] | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._destinations = destinations or {}
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    def resolve(self, destination: str) -> WebhookDestination:
        """Map a destination name (or raw URL) to a webhook endpoint.

        Raises:
            DispatchFailure: If the destination is not configured.
        """
        if configured := self._destinations.get(destination):
            return configured
        if destination.startswith(("https://", "http://")):
            return WebhookDestination(url=destination)
        raise DispatchFailure(f"Unknown destination: {destination}")

    async def deliver(
        self,
        title: str,
        message: str,
        destination: str,
        priority: Priority,
    ) -> str:
        target = self.resolve(destination)
        if target.format == "teams":
            body = build_teams_card(title, message, priority)
        else:
            body = build_json_body(title, message, destination, priority)

        client = self._get_client()
        try:
            response = await client.post(target.url, json=body)
        except httpx.HTTPError as e:
            raise DispatchFailure(f"Webhook request failed: {e}") from e

        if response.status_code >= 400:
            logger.warning(
                "webhook_rejected",
                extra={
                    "http.status_code": response.status_code,
                    "notification.destination": describe_destination(destination),
                },
            )
            raise DispatchFailure(
                f"Webhook returned {response.status_code}: {response.text[:200]}"
            )

        delivery_id = _extract_delivery_id(response)
        logger.debug(
            "webhook_delivered",
            extra={
                "delivery.id": delivery_id,
                "notification.destination": describe_destination(destination),
            },
        )
        return delivery_id

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

"""Tests for notification dispatchers."""

import json
import logging

import httpx
import pytest

from nudge.dispatch import LogDispatcher, WebhookDestination, WebhookDispatcher
from nudge.dispatch.webhook import build_json_body, build_teams_card
from nudge.scheduling.errors import DispatchFailure
from nudge.scheduling.types import Priority, describe_destination

TEAM_URL = "https://hooks.example.com/team"
OPS_URL = "https://outlook.example.com/webhookb2/ops"
SECRET_HOOK = "https://hooks.slack.com/services/T000/B000/XXXXXXXX?sig=abc"


def make_dispatcher(handler) -> WebhookDispatcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return WebhookDispatcher(
        {
            "team": WebhookDestination(url=TEAM_URL),
            "ops": WebhookDestination(url=OPS_URL, format="teams"),
        },
        client=client,
    )


class TestBodies:
    def test_json_body(self):
        body = build_json_body("Standup", "Join the call", "team", Priority.HIGH)
        assert body == {
            "title": "Standup",
            "message": "Join the call",
            "destination": "team",
            "priority": "high",
        }

    def test_teams_card(self):
        card = build_teams_card("Deploy", "Starting now", Priority.HIGH)

        assert card["type"] == "message"
        assert card["themeColor"] == "#dc3545"
        content = card["attachments"][0]["content"]
        assert content["type"] == "AdaptiveCard"
        title, message, priority = content["body"]
        assert title["text"] == "🔴 Deploy"
        assert message["text"] == "Starting now"
        assert priority["text"] == "Priority: HIGH"
        assert priority["color"] == "Attention"

    def test_teams_card_low_priority(self):
        card = build_teams_card("Tidy", "Later", Priority.LOW)
        priority = card["attachments"][0]["content"]["body"][2]
        assert priority["color"] == "Default"
        assert card["themeColor"] == "#28a745"


class TestWebhookDispatcher:
    async def test_posts_json_to_named_destination(self):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"id": "abc123"})

        dispatcher = make_dispatcher(handler)
        delivery_id = await dispatcher.deliver(
            "Standup", "Join the call", "team", Priority.MEDIUM
        )

        assert delivery_id == "abc123"
        [request] = requests
        assert str(request.url) == TEAM_URL
        assert json.loads(request.content)["priority"] == "medium"

    async def test_teams_destination_gets_card(self):
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, text="1")

        dispatcher = make_dispatcher(handler)
        await dispatcher.deliver("Deploy", "Starting", "ops", Priority.LOW)

        assert bodies[0]["type"] == "message"
        assert "attachments" in bodies[0]

    async def test_raw_url_destination(self):
        urls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            urls.append(str(request.url))
            return httpx.Response(204)

        dispatcher = make_dispatcher(handler)
        delivery_id = await dispatcher.deliver(
            "Hi", "There", "https://example.org/hook", Priority.LOW
        )

        assert urls == ["https://example.org/hook"]
        assert delivery_id

    async def test_request_id_header_used_when_no_body_id(self):
        dispatcher = make_dispatcher(
            lambda request: httpx.Response(202, headers={"x-request-id": "req-9"})
        )
        delivery_id = await dispatcher.deliver("Hi", "There", "team", Priority.LOW)
        assert delivery_id == "req-9"

    async def test_unknown_destination(self):
        dispatcher = make_dispatcher(lambda request: httpx.Response(200))
        with pytest.raises(DispatchFailure, match="Unknown destination"):
            await dispatcher.deliver("Hi", "There", "nowhere", Priority.LOW)

    async def test_error_status_is_failure(self):
        dispatcher = make_dispatcher(
            lambda request: httpx.Response(500, text="upstream broke")
        )
        with pytest.raises(DispatchFailure, match="500"):
            await dispatcher.deliver("Hi", "There", "team", Priority.LOW)

    async def test_transport_error_is_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        dispatcher = make_dispatcher(handler)
        with pytest.raises(DispatchFailure, match="request failed"):
            await dispatcher.deliver("Hi", "There", "team", Priority.LOW)

    async def test_aclose_leaves_injected_client_open(self):
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200))
        )
        dispatcher = WebhookDispatcher(client=client)

        await dispatcher.aclose()

        assert not client.is_closed
        await client.aclose()

    async def test_aclose_closes_owned_client(self):
        dispatcher = WebhookDispatcher()
        client = dispatcher._get_client()

        await dispatcher.aclose()

        assert client.is_closed


class TestLogDispatcher:
    async def test_logs_and_returns_id(self, caplog):
        dispatcher = LogDispatcher()

        with caplog.at_level(logging.INFO, logger="nudge.dispatch.log"):
            delivery_id = await dispatcher.deliver(
                "Standup", "Join the call", "team", Priority.HIGH
            )

        assert len(delivery_id) == 12
        [record] = caplog.records
        assert record.getMessage() == "notification_logged"
        assert getattr(record, "notification.destination") == "team"
        assert getattr(record, "delivery.id") == delivery_id

    async def test_raw_url_is_not_logged(self, caplog):
        dispatcher = LogDispatcher()

        with caplog.at_level(logging.INFO, logger="nudge.dispatch.log"):
            await dispatcher.deliver("Hi", "There", SECRET_HOOK, Priority.LOW)

        [record] = caplog.records
        assert getattr(record, "notification.destination") == (
            "https://hooks.slack.com/..."
        )


class TestDescribeDestination:
    def test_named_destination_is_kept(self):
        assert describe_destination("team") == "team"

    def test_url_is_cut_to_host(self):
        assert describe_destination(SECRET_HOOK) == "https://hooks.slack.com/..."

    async def test_rejected_webhook_logs_host_only(self, caplog):
        dispatcher = make_dispatcher(lambda request: httpx.Response(403))

        with caplog.at_level(logging.WARNING, logger="nudge.dispatch.webhook"):
            with pytest.raises(DispatchFailure):
                await dispatcher.deliver("Hi", "There", SECRET_HOOK, Priority.LOW)

        [record] = [r for r in caplog.records if r.name == "nudge.dispatch.webhook"]
        assert record.getMessage() == "webhook_rejected"
        assert "T000/B000" not in str(vars(record))

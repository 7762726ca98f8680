import json

import httpx
import pytest

from propsim.sim_manager.core.game_state import Notification, NotificationPriority, NotificationType
from propsim.sim_manager.gateways import (
    HttpEmailGateway,
    HttpPushGateway,
    HttpSmsGateway,
    InGameGateway,
)


def _notification(**kwargs):
    fields = {
        "player_id": "player-1",
        "type": NotificationType.TENANT,
        "priority": NotificationPriority.HIGH,
        "title": "Rent missed",
        "message": "Ada missed rent",
    }
    fields.update(kwargs)
    return Notification(**fields)


def _client(requests, status_code=202):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status_code, json={"ok": status_code < 400})

    return httpx.Client(base_url="http://delivery.test", transport=httpx.MockTransport(handler))


class TestHttpGateways:
    def test_push_payload(self):
        requests = []
        gateway = HttpPushGateway("http://delivery.test/", client=_client(requests))

        gateway.deliver(_notification(icon="alert-triangle", data={"tenant_id": "t1"}))

        assert requests[0].url.path == "/push"
        body = json.loads(requests[0].content)
        assert body["title"] == "Rent missed"
        assert body["priority"] == "high"
        assert body["icon"] == "alert-triangle"
        assert body["data"] == {"tenant_id": "t1"}

    def test_email_payload(self):
        requests = []
        HttpEmailGateway("http://delivery.test", client=_client(requests)).deliver(_notification())

        assert requests[0].url.path == "/emails"
        assert json.loads(requests[0].content) == {
            "to": "player-1",
            "subject": "Rent missed",
            "body": "Ada missed rent",
            "priority": "high",
        }

    def test_sms_payload(self):
        requests = []
        HttpSmsGateway("http://delivery.test", client=_client(requests)).deliver(_notification())
        assert json.loads(requests[0].content) == {"to": "player-1", "body": "Rent missed: Ada missed rent"}

    def test_error_status_raises(self):
        gateway = HttpPushGateway("http://delivery.test", client=_client([], status_code=503))
        with pytest.raises(httpx.HTTPStatusError):
            gateway.deliver(_notification())

    def test_close_leaves_injected_client_open(self):
        client = _client([])
        HttpSmsGateway("http://delivery.test", client=client).close()
        assert not client.is_closed

    def test_close_owned_client(self):
        gateway = HttpSmsGateway("http://delivery.test")
        gateway.close()
        assert gateway.client.is_closed


class TestInGameGateway:
    def test_inbox_and_callback(self):
        seen = []
        gateway = InGameGateway(on_deliver=seen.append, max_inbox=2)
        notifications = [_notification(title=f"n{i}") for i in range(3)]

        for notification in notifications:
            gateway.deliver(notification)

        assert seen == notifications
        assert gateway.drain() == notifications[1:]
        assert gateway.inbox == []

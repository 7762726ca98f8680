from __future__ import annotations

import logging
from typing import Callable

import httpx

from .core.game_state import Notification

logger = logging.getLogger(__name__)


class ChannelGateway:
    def deliver(self, notification: Notification) -> None:
        raise NotImplementedError


class InGameGateway(ChannelGateway):
    """Keeps delivered notifications in an inbox the UI layer can drain."""

    def __init__(self, on_deliver: Callable[[Notification], None] | None = None, max_inbox: int = 200):
        self.inbox: list[Notification] = []
        self.on_deliver = on_deliver
        self.max_inbox = max_inbox

    def deliver(self, notification: Notification) -> None:
        self.inbox.append(notification)
        if len(self.inbox) > self.max_inbox:
            del self.inbox[: len(self.inbox) - self.max_inbox]
        if self.on_deliver is not None:
            self.on_deliver(notification)

    def drain(self) -> list[Notification]:
        items, self.inbox = self.inbox, []
        return items


class HttpChannelGateway(ChannelGateway):
    """Posts notifications to an external delivery service."""

    path = "/notifications"

    def __init__(self, base_url: str, client: httpx.Client | None = None):
        self.base_url = base_url.rstrip("/")
        self._external_client = client
        self._client = client or httpx.Client(base_url=self.base_url, timeout=10.0)

    @property
    def client(self) -> httpx.Client:
        return self._client

    def build_payload(self, notification: Notification) -> dict:
        return {
            "id": notification.id,
            "player_id": notification.player_id,
            "title": notification.title,
            "message": notification.message,
            "priority": notification.priority.value,
            "type": notification.type.value,
        }

    def deliver(self, notification: Notification) -> None:
        response = self.client.post(self.path, json=self.build_payload(notification))
        response.raise_for_status()
        logger.debug("Delivered notification %s to %s%s", notification.id, self.base_url, self.path)

    def close(self) -> None:
        if self._external_client is None:
            self._client.close()


class HttpPushGateway(HttpChannelGateway):
    path = "/push"

    def build_payload(self, notification: Notification) -> dict:
        payload = super().build_payload(notification)
        payload.update({"icon": notification.icon, "sound": notification.sound, "data": notification.data})
        return payload


class HttpEmailGateway(HttpChannelGateway):
    path = "/emails"

    def build_payload(self, notification: Notification) -> dict:
        return {
            "to": notification.player_id,
            "subject": notification.title,
            "body": notification.message,
            "priority": notification.priority.value,
        }


class HttpSmsGateway(HttpChannelGateway):
    path = "/sms"

    def build_payload(self, notification: Notification) -> dict:
        return {"to": notification.player_id, "body": f"{notification.title}: {notification.message}"}

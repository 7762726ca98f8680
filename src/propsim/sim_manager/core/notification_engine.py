"""
Notification engine for the propsim simulation.

This module handles per-player notification settings, template rendering,
quiet-hour suppression, retention, and fan-out to channel gateways.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable, Iterable

from propsim.common.templates import TemplateManager

from .game_state import (
    Notification,
    NotificationAction,
    NotificationChannel,
    NotificationPriority,
    NotificationSettings,
    NotificationStatus,
    NotificationType,
    OperationResult,
    TypeSettings,
)
from .store import Table
from .sub_engine import SubEngine

if TYPE_CHECKING:
    from ..gateways import ChannelGateway

logger = logging.getLogger(__name__)

IN_GAME = NotificationChannel.IN_GAME
PUSH = NotificationChannel.PUSH


@dataclass(frozen=True)
class NotificationTemplate:
    id: str
    type: NotificationType
    priority: NotificationPriority
    channels: tuple[NotificationChannel, ...]
    icon: str | None = None
    sound: str | None = None
    actions: tuple[tuple[str, str, str], ...] = field(default_factory=tuple)


NOTIFICATION_TEMPLATES: dict[str, NotificationTemplate] = {
    template.id: template
    for template in (
        NotificationTemplate(
            "achievement_unlocked", NotificationType.ACHIEVEMENT, NotificationPriority.MEDIUM, (IN_GAME, PUSH),
            icon="trophy", sound="achievement",
            actions=(("View details", "view_achievement", "primary"), ("Claim reward", "claim_reward", "primary")),
        ),
        NotificationTemplate(
            "mission_completed", NotificationType.MISSION, NotificationPriority.MEDIUM, (IN_GAME,),
            icon="check-circle", actions=(("View result", "view_mission_result", "primary"),),
        ),
        NotificationTemplate(
            "mission_failed", NotificationType.WARNING, NotificationPriority.MEDIUM, (IN_GAME,),
            icon="x-circle",
            actions=(("View details", "view_mission_result", "default"), ("Try again", "retry_mission", "primary")),
        ),
        NotificationTemplate(
            "tenant_complaint", NotificationType.WARNING, NotificationPriority.HIGH, (IN_GAME, PUSH),
            icon="alert-triangle",
            actions=(("View details", "view_complaint", "primary"), ("Handle now", "handle_complaint", "danger")),
        ),
        NotificationTemplate(
            "tenant_satisfaction", NotificationType.SUCCESS, NotificationPriority.LOW, (IN_GAME,),
            icon="smile", actions=(("View review", "view_review", "default"),),
        ),
        NotificationTemplate(
            "property_maintenance", NotificationType.WARNING, NotificationPriority.MEDIUM, (IN_GAME, PUSH),
            icon="tool",
            actions=(
                ("Schedule maintenance", "schedule_maintenance", "primary"),
                ("Remind me later", "snooze_maintenance", "default"),
            ),
        ),
        NotificationTemplate(
            "property_upgrade_complete", NotificationType.SUCCESS, NotificationPriority.MEDIUM, (IN_GAME,),
            icon="home", actions=(("View details", "view_property", "primary"),),
        ),
        NotificationTemplate(
            "market_opportunity", NotificationType.INFO, NotificationPriority.MEDIUM, (IN_GAME, PUSH),
            icon="trending-up",
            actions=(("View details", "view_opportunity", "primary"), ("Invest now", "invest_now", "primary")),
        ),
        NotificationTemplate(
            "daily_login", NotificationType.INFO, NotificationPriority.LOW, (IN_GAME,),
            icon="calendar", actions=(("Claim reward", "claim_daily_reward", "primary"),),
        ),
        NotificationTemplate(
            "level_up", NotificationType.SUCCESS, NotificationPriority.HIGH, (IN_GAME, PUSH),
            icon="star", sound="level_up", actions=(("View rewards", "view_level_rewards", "primary"),),
        ),
    )
}

DEFAULT_TYPE_SETTINGS: dict[NotificationType, tuple[tuple[NotificationChannel, ...], NotificationPriority]] = {
    NotificationType.INFO: ((IN_GAME,), NotificationPriority.LOW),
    NotificationType.SUCCESS: ((IN_GAME, PUSH), NotificationPriority.MEDIUM),
    NotificationType.WARNING: ((IN_GAME, PUSH), NotificationPriority.HIGH),
    NotificationType.ERROR: ((IN_GAME, PUSH), NotificationPriority.URGENT),
    NotificationType.ACHIEVEMENT: ((IN_GAME, PUSH), NotificationPriority.MEDIUM),
    NotificationType.MISSION: ((IN_GAME,), NotificationPriority.MEDIUM),
    NotificationType.TENANT: ((IN_GAME, PUSH), NotificationPriority.HIGH),
    NotificationType.PROPERTY: ((IN_GAME, PUSH), NotificationPriority.MEDIUM),
    NotificationType.MARKET: ((IN_GAME, PUSH), NotificationPriority.MEDIUM),
    NotificationType.SYSTEM: ((IN_GAME,), NotificationPriority.LOW),
}


def in_quiet_hours(current: str, start: str, end: str) -> bool:
    """
    Check whether an "HH:MM" time falls inside a quiet window.

    Bounds are inclusive and a window whose start is after its end wraps
    past midnight.
    """
    if start <= end:
        return start <= current <= end
    return current >= start or current <= end


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotificationEngine(SubEngine):
    """
    Notification dispatch pipeline.

    Responsibilities:
    - Lazy per-player settings seeded from the game's channel defaults
    - Template rendering through `TemplateManager`
    - Type filtering, quiet hours, channel opt-in and inbox size limits
    - Independent per-channel delivery through injected gateways
    - Read/archive/delete transitions and the retention sweep

    Args:
        gateways: Delivery gateway per channel; channels without one are skipped
        templates: Localized template text
        clock: Returns the current time used for timestamps and quiet hours
    """

    name = "notification"

    def __init__(
        self,
        gateways: dict[NotificationChannel, "ChannelGateway"] | None = None,
        templates: TemplateManager | None = None,
        clock: Callable[[], datetime] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        super().__init__(rng)
        self.gateways: dict[NotificationChannel, "ChannelGateway"] = dict(gateways or {})
        self.templates = templates or TemplateManager()
        self.clock = clock or _utcnow
        self.notification_templates: dict[str, NotificationTemplate] = dict(NOTIFICATION_TEMPLATES)

    @property
    def notifications(self) -> Table[Notification]:
        return Table(self.state.notifications)

    def on_initialize(self) -> None:
        pass

    def update(self, delta_time: float) -> None:
        self.scheduler.update(delta_time)

    def set_gateway(self, channel: NotificationChannel, gateway: "ChannelGateway") -> None:
        self.gateways[channel] = gateway

    def add_template(self, template: NotificationTemplate) -> None:
        self.notification_templates[template.id] = template

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def _default_settings(self, player_id: str) -> NotificationSettings:
        return NotificationSettings(
            player_id=player_id,
            channels=dict(self.state.settings.notification_channels),
            types={
                notification_type: TypeSettings(enabled=True, channels=list(channels), priority=priority)
                for notification_type, (channels, priority) in DEFAULT_TYPE_SETTINGS.items()
            },
        )

    def get_settings(self, player_id: str) -> NotificationSettings:
        settings = self.state.notification_settings.get(player_id)
        if settings is None:
            settings = self._default_settings(player_id)
            self.state.notification_settings[player_id] = settings
        return settings

    def update_settings(self, player_id: str, changes: dict[str, Any]) -> NotificationSettings:
        """
        Merge top-level setting changes and validate the result.

        Raises:
            pydantic.ValidationError: If the merged settings are invalid
        """
        current = self.get_settings(player_id)
        merged = {**current.model_dump(), **changes, "player_id": player_id}
        settings = NotificationSettings.model_validate(merged)
        self.state.notification_settings[player_id] = settings
        self.emit("notification:settings_updated", {"player_id": player_id})
        return settings

    def is_quiet_time(self, settings: NotificationSettings, now: datetime | None = None) -> bool:
        if not settings.quiet_hours.enabled:
            return False
        current = (now or self.clock()).strftime("%H:%M")
        return in_quiet_hours(current, settings.quiet_hours.start, settings.quiet_hours.end)

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def send_notification(
        self,
        player_id: str,
        notification_type: NotificationType,
        title: str,
        message: str,
        priority: NotificationPriority | None = None,
        channels: Iterable[NotificationChannel] | None = None,
        data: dict[str, Any] | None = None,
        actions: list[NotificationAction] | None = None,
        icon: str | None = None,
        sound: str | None = None,
        expires_at: datetime | None = None,
    ) -> str | None:
        """
        Store and deliver a notification.

        Returns:
            The notification id, or None when it was filtered out
        """
        if not self.state.settings.notifications_enabled:
            return None
        settings = self.get_settings(player_id)
        type_settings = settings.types.get(notification_type)
        if type_settings is not None and not type_settings.enabled:
            logger.debug("Notification type %s disabled for player %s", notification_type.value, player_id)
            return None

        if priority is None:
            priority = type_settings.priority if type_settings else NotificationPriority.MEDIUM
        now = self.clock()
        if priority != NotificationPriority.URGENT and self.is_quiet_time(settings, now):
            logger.debug("Suppressed %s notification during quiet hours", notification_type.value)
            return None

        requested = list(channels) if channels is not None else list(type_settings.channels if type_settings else [])
        notification = Notification(
            player_id=player_id,
            type=notification_type,
            priority=priority,
            title=title,
            message=message,
            data=data,
            channels=[channel for channel in requested if settings.channels.get(channel, False)],
            created_at=now,
            expires_at=expires_at,
            actions=actions or [],
            icon=icon,
            sound=sound,
        )
        self.notifications.add(notification)
        self._limit_notifications(player_id, settings.max_notifications)

        self.emit(
            "notification:sent",
            {
                "notification_id": notification.id,
                "player_id": player_id,
                "type": notification.type.value,
                "priority": notification.priority.value,
            },
        )
        self._deliver(notification)
        return notification.id

    def send_template_notification(
        self,
        template_id: str,
        player_id: str,
        variables: dict[str, Any] | None = None,
        **overrides: Any,
    ) -> str | None:
        """
        Render a registered template and send it.

        Raises:
            KeyError: If the template id is unknown
        """
        template = self.notification_templates.get(template_id)
        if template is None:
            raise KeyError(f"Notification template '{template_id}' does not exist")
        title, message = self.templates.render(template_id, **(variables or {}))

        params: dict[str, Any] = {
            "notification_type": template.type,
            "priority": template.priority,
            "channels": list(template.channels),
            "icon": template.icon,
            "sound": template.sound,
            "actions": [NotificationAction(label=label, action=action, style=style) for label, action, style in template.actions],
        }
        params.update(overrides)
        return self.send_notification(player_id=player_id, title=title, message=message, **params)

    def _limit_notifications(self, player_id: str, max_notifications: int) -> None:
        owned = [n for n in self.state.notifications if n.player_id == player_id]
        excess = len(owned) - max_notifications
        if excess <= 0:
            return
        evicted = {n.id for n in owned[:excess]}
        self.state.notifications[:] = [n for n in self.state.notifications if n.id not in evicted]

    def _deliver(self, notification: Notification) -> None:
        for channel in notification.channels:
            gateway = self.gateways.get(channel)
            if gateway is None:
                logger.debug("No gateway configured for channel %s", channel.value)
                continue
            try:
                gateway.deliver(notification)
            except Exception:
                logger.exception("Failed to deliver notification %s via %s", notification.id, channel.value)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def mark_as_read(self, notification_id: str) -> bool:
        notification = self.notifications.get(notification_id)
        if notification is None or notification.status == NotificationStatus.READ:
            return False
        notification.status = NotificationStatus.READ
        notification.read_at = self.clock()
        self.emit("notification:read", {"notification_id": notification_id, "player_id": notification.player_id})
        return True

    def mark_multiple_as_read(self, notification_ids: Iterable[str]) -> int:
        return sum(1 for notification_id in notification_ids if self.mark_as_read(notification_id))

    def mark_all_as_read(self, player_id: str) -> int:
        unread = self.get_player_notifications(player_id, status=NotificationStatus.UNREAD)
        return self.mark_multiple_as_read(n.id for n in unread)

    def archive_notification(self, notification_id: str) -> bool:
        notification = self.notifications.get(notification_id)
        if notification is None:
            return False
        notification.status = NotificationStatus.ARCHIVED
        self.emit("notification:archived", {"notification_id": notification_id, "player_id": notification.player_id})
        return True

    def delete_notification(self, notification_id: str) -> bool:
        notification = self.notifications.remove(notification_id)
        if notification is None:
            return False
        notification.status = NotificationStatus.DELETED
        self.emit("notification:deleted", {"notification_id": notification_id, "player_id": notification.player_id})
        return True

    def execute_action(self, notification_id: str, action_id: str, data: dict[str, Any] | None = None) -> OperationResult:
        notification = self.notifications.get(notification_id)
        if notification is None:
            return OperationResult.fail("Notification not found")
        action = next((a for a in notification.actions if a.id == action_id), None)
        if action is None:
            return OperationResult.fail("Action not found")
        self.emit(
            "notification:action",
            {"notification_id": notification_id, "action_id": action_id, "action": action.action, "data": data},
        )
        return OperationResult.ok("Action executed", action=action.action)

    def cleanup_expired(self, now: datetime | None = None) -> int:
        """
        Drop expired notifications and archive old read ones.

        Returns:
            Number of notifications removed or archived
        """
        if not self.initialized:
            return 0
        now = now or self.clock()
        before = len(self.state.notifications)
        self.state.notifications[:] = [n for n in self.state.notifications if not (n.expires_at and n.expires_at < now)]
        count = before - len(self.state.notifications)

        for player_id, settings in self.state.notification_settings.items():
            if not settings.auto_archive.enabled:
                continue
            cutoff = now - timedelta(days=settings.auto_archive.days)
            for notification in self.get_player_notifications(player_id, status=NotificationStatus.READ):
                if notification.created_at < cutoff:
                    self.archive_notification(notification.id)
                    count += 1
        return count

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_notification(self, notification_id: str) -> Notification | None:
        return self.notifications.get(notification_id)

    def get_player_notifications(
        self,
        player_id: str,
        status: NotificationStatus | None = None,
        notification_type: NotificationType | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Notification]:
        """Newest first; ties keep reverse insertion order."""
        items = [
            n
            for n in reversed(self.state.notifications)
            if n.player_id == player_id
            and (status is None or n.status == status)
            and (notification_type is None or n.type == notification_type)
        ]
        items.sort(key=lambda n: n.created_at, reverse=True)
        items = items[offset:]
        return items[:limit] if limit else items

    def get_unread_count(self, player_id: str, notification_type: NotificationType | None = None) -> int:
        return len(
            self.get_player_notifications(player_id, status=NotificationStatus.UNREAD, notification_type=notification_type)
        )

    def statistics(self, player_id: str) -> dict[str, Any]:
        notifications = self.get_player_notifications(player_id)
        one_day_ago = self.clock() - timedelta(days=1)
        by_type = {t.value: 0 for t in NotificationType}
        by_priority = {p.value: 0 for p in NotificationPriority}
        recent = {"sent": 0, "read": 0, "archived": 0}
        unread = 0
        for notification in notifications:
            if notification.status == NotificationStatus.UNREAD:
                unread += 1
            by_type[notification.type.value] += 1
            by_priority[notification.priority.value] += 1
            if notification.created_at >= one_day_ago:
                recent["sent"] += 1
            if notification.read_at and notification.read_at >= one_day_ago:
                recent["read"] += 1
            if notification.status == NotificationStatus.ARCHIVED:
                recent["archived"] += 1
        return {
            "total": len(notifications),
            "unread": unread,
            "by_type": by_type,
            "by_priority": by_priority,
            "recent_activity": recent,
        }

"""
Tests for NotificationEngine.

Tests filtering (type, quiet hours, channel opt-in), inbox limits, gateway
fan-out, status transitions and the retention sweep.
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from propsim.sim_manager.core import NotificationEngine
from propsim.sim_manager.core.game_state import (
    NotificationAction,
    NotificationChannel,
    NotificationPriority,
    NotificationStatus,
    NotificationType,
)
from propsim.sim_manager.core.notification_engine import in_quiet_hours
from propsim.sim_manager.gateways import ChannelGateway, InGameGateway

PLAYER = "player-1"


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class BrokenGateway(ChannelGateway):
    def __init__(self):
        self.attempts = 0

    def deliver(self, notification):
        self.attempts += 1
        raise ConnectionError("push service unavailable")


@pytest.fixture
def clock():
    return FakeClock(datetime(2027, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def in_game():
    return InGameGateway()


@pytest.fixture
def notifications(state, bus, clock, in_game):
    engine = NotificationEngine(gateways={NotificationChannel.IN_GAME: in_game}, clock=clock)
    engine.initialize(state, bus)
    yield engine
    engine.cleanup()


def _send(engine, **kwargs):
    fields = {
        "player_id": PLAYER,
        "notification_type": NotificationType.INFO,
        "title": "Hello",
        "message": "World",
    }
    fields.update(kwargs)
    return engine.send_notification(**fields)


class TestQuietHours:
    def test_window_within_day(self):
        assert in_quiet_hours("13:00", "12:00", "14:00")
        assert in_quiet_hours("14:00", "12:00", "14:00")
        assert not in_quiet_hours("14:01", "12:00", "14:00")

    def test_window_wrapping_midnight(self):
        assert in_quiet_hours("23:30", "22:00", "08:00")
        assert in_quiet_hours("07:59", "22:00", "08:00")
        assert not in_quiet_hours("12:00", "22:00", "08:00")

    def test_non_urgent_suppressed_during_quiet_hours(self, notifications, clock, state):
        notifications.update_settings(PLAYER, {"quiet_hours": {"enabled": True, "start": "22:00", "end": "08:00"}})
        clock.now = clock.now.replace(hour=23)

        assert _send(notifications, priority=NotificationPriority.HIGH) is None
        assert _send(notifications, priority=NotificationPriority.URGENT) is not None
        assert len(state.notifications) == 1

    def test_quiet_hours_disabled_by_default(self, notifications, clock):
        clock.now = clock.now.replace(hour=23)
        assert _send(notifications) is not None


class TestSending:
    """Test the send pipeline."""

    def test_settings_created_lazily_from_game_defaults(self, notifications, state):
        settings = notifications.get_settings(PLAYER)
        assert settings.channels[NotificationChannel.EMAIL] is False
        assert settings.types[NotificationType.WARNING].priority == NotificationPriority.HIGH
        assert state.notification_settings[PLAYER] is settings

    def test_send_stores_and_delivers(self, notifications, state, in_game, recorder, clock):
        recorder.watch("notification:sent")

        notification_id = _send(notifications, data={"k": "v"})

        stored = notifications.get_notification(notification_id)
        assert stored.status == NotificationStatus.UNREAD
        assert stored.priority == NotificationPriority.LOW
        assert stored.created_at == clock.now
        assert in_game.inbox == [stored]
        assert recorder.named("notification:sent") == [
            {"notification_id": notification_id, "player_id": PLAYER, "type": "info", "priority": "low"}
        ]

    def test_channels_filtered_by_player_opt_in(self, notifications):
        notification_id = _send(
            notifications,
            channels=[NotificationChannel.IN_GAME, NotificationChannel.EMAIL, NotificationChannel.PUSH],
        )
        channels = notifications.get_notification(notification_id).channels
        assert channels == [NotificationChannel.IN_GAME, NotificationChannel.PUSH]

    def test_disabled_type_is_dropped(self, notifications, state):
        types = notifications.get_settings(PLAYER).model_dump()["types"]
        types[NotificationType.MARKET]["enabled"] = False
        notifications.update_settings(PLAYER, {"types": types})

        assert _send(notifications, notification_type=NotificationType.MARKET) is None
        assert _send(notifications, notification_type=NotificationType.TENANT) is not None
        assert len(state.notifications) == 1

    def test_globally_disabled(self, notifications, state):
        state.settings.notifications_enabled = False
        assert _send(notifications) is None
        assert state.notifications == []

    def test_oldest_evicted_beyond_limit(self, notifications, clock):
        notifications.update_settings(PLAYER, {"max_notifications": 3})
        ids = []
        for index in range(5):
            ids.append(_send(notifications, title=f"n{index}"))
            clock.advance(minutes=1)

        remaining = [n.id for n in notifications.get_player_notifications(PLAYER)]
        assert remaining == list(reversed(ids[2:]))

    def test_limit_is_per_player(self, notifications, state):
        notifications.update_settings(PLAYER, {"max_notifications": 1})
        _send(notifications, player_id="someone-else")
        _send(notifications)
        _send(notifications)
        assert len(state.notifications) == 2

    def test_failed_gateway_does_not_block_others(self, notifications, in_game, state):
        broken = BrokenGateway()
        notifications.set_gateway(NotificationChannel.PUSH, broken)

        notification_id = _send(notifications, channels=[NotificationChannel.PUSH, NotificationChannel.IN_GAME])

        assert notification_id is not None
        assert broken.attempts == 1
        assert [n.id for n in in_game.inbox] == [notification_id]
        assert notifications.get_notification(notification_id) is not None

    def test_channel_without_gateway_is_skipped(self, notifications, in_game):
        notification_id = _send(notifications, channels=[NotificationChannel.PUSH])
        assert notification_id is not None
        assert in_game.inbox == []

    def test_invalid_settings_rejected(self, notifications):
        with pytest.raises(ValidationError):
            notifications.update_settings(PLAYER, {"quiet_hours": {"enabled": True, "start": "25:00"}})
        assert notifications.get_settings(PLAYER).quiet_hours.enabled is False


class TestTemplates:
    def test_template_renders_and_applies_defaults(self, notifications):
        notification_id = notifications.send_template_notification(
            "tenant_complaint", PLAYER, {"tenantName": "Ada", "propertyName": "Maple Court"}
        )

        notification = notifications.get_notification(notification_id)
        assert notification.title == "Tenant complaint"
        assert notification.message == "Tenant Ada filed a complaint about Maple Court"
        assert notification.type == NotificationType.WARNING
        assert notification.priority == NotificationPriority.HIGH
        assert [a.action for a in notification.actions] == ["view_complaint", "handle_complaint"]

    def test_overrides_replace_template_fields(self, notifications):
        notification_id = notifications.send_template_notification(
            "market_opportunity",
            PLAYER,
            {"opportunityName": "Cheap cement"},
            notification_type=NotificationType.MARKET,
            data={"event_id": "e1"},
        )
        notification = notifications.get_notification(notification_id)
        assert notification.type == NotificationType.MARKET
        assert notification.data == {"event_id": "e1"}

    def test_unknown_template_raises(self, notifications):
        with pytest.raises(KeyError):
            notifications.send_template_notification("no_such_template", PLAYER)


class TestTransitions:
    """Test read, archive, delete and actions."""

    def test_mark_as_read_once(self, notifications, recorder, clock):
        recorder.watch("notification:read")
        notification_id = _send(notifications)

        assert notifications.mark_as_read(notification_id) is True
        assert notifications.mark_as_read(notification_id) is False
        assert notifications.get_notification(notification_id).read_at == clock.now
        assert len(recorder.named("notification:read")) == 1

    def test_mark_all_as_read(self, notifications):
        for _ in range(3):
            _send(notifications)
        _send(notifications, player_id="other")

        assert notifications.mark_all_as_read(PLAYER) == 3
        assert notifications.get_unread_count(PLAYER) == 0
        assert notifications.get_unread_count("other") == 1

    def test_archive_and_delete(self, notifications, state, recorder):
        recorder.watch("notification:archived", "notification:deleted")
        first, second = _send(notifications), _send(notifications)

        assert notifications.archive_notification(first)
        assert notifications.get_notification(first).status == NotificationStatus.ARCHIVED
        assert notifications.delete_notification(second)
        assert notifications.get_notification(second) is None
        assert notifications.delete_notification(second) is False
        assert [name for name, _ in recorder.events] == ["notification:archived", "notification:deleted"]

    def test_execute_action(self, notifications, recorder):
        recorder.watch("notification:action")
        action = NotificationAction(label="Go", action="open_market")
        notification_id = _send(notifications, actions=[action])

        result = notifications.execute_action(notification_id, action.id, {"x": 1})

        assert result.success
        assert result.data["action"] == "open_market"
        assert recorder.named("notification:action")[0]["data"] == {"x": 1}
        assert notifications.execute_action(notification_id, "missing").message == "Action not found"
        assert notifications.execute_action("missing", action.id).message == "Notification not found"


class TestRetention:
    def test_expired_notifications_removed(self, notifications, clock):
        keep = _send(notifications)
        drop = _send(notifications, expires_at=clock.now + timedelta(hours=1))

        clock.advance(hours=2)
        removed = notifications.cleanup_expired()

        assert removed == 1
        assert notifications.get_notification(drop) is None
        assert notifications.get_notification(keep) is not None

    def test_old_read_notifications_archived(self, notifications, clock):
        notification_id = _send(notifications)
        notifications.mark_as_read(notification_id)

        clock.advance(days=31)
        assert notifications.cleanup_expired() == 1
        assert notifications.get_notification(notification_id).status == NotificationStatus.ARCHIVED

    def test_cleanup_before_initialize_is_noop(self, clock):
        assert NotificationEngine(clock=clock).cleanup_expired() == 0


class TestQueries:
    def test_filters_and_paging(self, notifications, clock):
        ids = []
        for index in range(4):
            ids.append(_send(notifications, notification_type=NotificationType.MISSION if index % 2 else NotificationType.INFO))
            clock.advance(minutes=1)

        missions = notifications.get_player_notifications(PLAYER, notification_type=NotificationType.MISSION)
        assert [n.id for n in missions] == [ids[3], ids[1]]
        page = notifications.get_player_notifications(PLAYER, limit=2, offset=1)
        assert [n.id for n in page] == [ids[2], ids[1]]

    def test_same_timestamp_keeps_newest_first(self, notifications):
        first, second = _send(notifications), _send(notifications)
        assert [n.id for n in notifications.get_player_notifications(PLAYER)] == [second, first]

    def test_statistics(self, notifications):
        first = _send(notifications, notification_type=NotificationType.TENANT)
        _send(notifications)
        notifications.mark_as_read(first)

        stats = notifications.statistics(PLAYER)

        assert stats["total"] == 2
        assert stats["unread"] == 1
        assert stats["by_type"]["tenant"] == 1
        assert stats["by_priority"]["high"] == 1
        assert stats["recent_activity"] == {"sent": 2, "read": 1, "archived": 0}

"""
Tests for AchievementEngine.

Tests progress aggregation, status ordering, claiming and catalogue queries.
"""

import pytest

from propsim.sim_manager.core import AchievementEngine, default_achievements
from propsim.sim_manager.core.game_state import (
    Achievement,
    AchievementCategory,
    AchievementCondition,
    AchievementReward,
    AchievementStatus,
    ConditionType,
)

PLAYER = "player-1"


def _landlord_achievement():
    return Achievement(
        id="landlord",
        name="Landlord",
        category=AchievementCategory.PROPERTY,
        conditions=[
            AchievementCondition(type=ConditionType.PROPERTIES_OWNED, target=2),
            AchievementCondition(type=ConditionType.TENANTS_MANAGED, target=2),
        ],
        rewards=AchievementReward(money=100, experience=10, items=["keyring"]),
    )


@pytest.fixture
def achievements(state, bus):
    engine = AchievementEngine(definitions=[_landlord_achievement(), *default_achievements()])
    engine.initialize(state, bus)
    yield engine
    engine.cleanup()


class TestProgress:
    """Test condition counters and status transitions."""

    def test_records_created_lazily(self, achievements, state):
        assert PLAYER not in state.achievement_progress
        progress = achievements.get_progress(PLAYER, "landlord")
        assert progress.status == AchievementStatus.LOCKED
        assert len(state.achievement_progress[PLAYER]) == len(achievements.catalogue)

    def test_multi_condition_progress_is_averaged(self, achievements):
        achievements.update_progress(PLAYER, ConditionType.PROPERTIES_OWNED, 2)
        achievements.update_progress(PLAYER, ConditionType.TENANTS_MANAGED, 1)

        progress = achievements.get_progress(PLAYER, "landlord")
        assert progress.progress == pytest.approx(0.75)
        assert progress.progress_percent == 75.0
        assert progress.status == AchievementStatus.IN_PROGRESS

    def test_completion_emits_once(self, achievements, state, recorder):
        recorder.watch("achievement:completed")
        state.clock = 3.5
        achievements.update_progress(PLAYER, ConditionType.PROPERTIES_OWNED, 2)

        completed = achievements.update_progress(PLAYER, ConditionType.TENANTS_MANAGED, 2)
        again = achievements.update_progress(PLAYER, ConditionType.TENANTS_MANAGED, 5)

        assert [a.id for a in completed] == ["landlord", "first_tenant"]
        assert again == []
        progress = achievements.get_progress(PLAYER, "landlord")
        assert progress.status == AchievementStatus.COMPLETED
        assert progress.completed_at == 3.5
        assert [p["achievement_id"] for p in recorder.named("achievement:completed")] == [
            "first_property",
            "landlord",
            "first_tenant",
        ]

    def test_counters_only_ratchet_upward(self, achievements):
        achievements.update_progress(PLAYER, ConditionType.MISSIONS_COMPLETED, 20)
        achievements.update_progress(PLAYER, ConditionType.MISSIONS_COMPLETED, 5)

        progress = achievements.get_progress(PLAYER, "explorer")
        assert progress.conditions[0].current == 20
        assert progress.progress == pytest.approx(0.4)

    def test_unrelated_condition_leaves_record_locked(self, achievements):
        achievements.update_progress(PLAYER, ConditionType.DAYS_PLAYED, 3)
        assert achievements.get_progress(PLAYER, "landlord").status == AchievementStatus.LOCKED

    def test_unknown_achievement_raises(self, achievements):
        with pytest.raises(KeyError):
            achievements.get_progress(PLAYER, "nope")
        with pytest.raises(KeyError):
            achievements.claim_reward(PLAYER, "nope")

    def test_reset_single_achievement(self, achievements):
        achievements.update_progress(PLAYER, ConditionType.PROPERTIES_OWNED, 1)
        achievements.reset_progress(PLAYER, "first_property")
        assert achievements.get_progress(PLAYER, "first_property").status == AchievementStatus.LOCKED


class TestClaiming:
    """Test reward claiming."""

    def test_claim_requires_completion(self, achievements):
        result = achievements.claim_reward(PLAYER, "landlord")
        assert not result.success
        assert result.message == "Achievement not completed"

    def test_claim_is_applied_once(self, achievements):
        achievements.update_progress(PLAYER, ConditionType.PROPERTIES_OWNED, 1)

        first = achievements.claim_reward(PLAYER, "first_property")
        second = achievements.claim_reward(PLAYER, "first_property")

        assert first.success
        assert first.rewards.money == 500
        assert first.rewards.title == "Property Rookie"
        assert not second.success
        assert second.message == "Reward already claimed"
        assert second.rewards is None
        assert achievements.get_progress(PLAYER, "first_property").status == AchievementStatus.CLAIMED

    def test_claimed_record_ignores_further_updates(self, achievements):
        achievements.update_progress(PLAYER, ConditionType.PROPERTIES_OWNED, 1)
        achievements.claim_reward(PLAYER, "first_property")
        achievements.update_progress(PLAYER, ConditionType.PROPERTIES_OWNED, 9)
        assert achievements.get_progress(PLAYER, "first_property").status == AchievementStatus.CLAIMED


class TestSpecialTriggers:
    def test_secret_room_completes_hidden_achievement(self, achievements):
        completed = achievements.check_special_triggers(PLAYER, "secret_room_discovered", {})
        assert [a.id for a in completed] == ["secret_room"]

    def test_market_master_threshold(self, state, bus):
        trader = Achievement(
            id="trader",
            name="Trader",
            category=AchievementCategory.CHALLENGE,
            conditions=[AchievementCondition(type=ConditionType.MARKET_TRANSACTIONS, target=100)],
        )
        engine = AchievementEngine(definitions=[trader])
        engine.initialize(state, bus)

        assert engine.check_special_triggers(PLAYER, "market_master", {"transactions": 99}) == []
        assert engine.get_progress(PLAYER, "trader").status == AchievementStatus.LOCKED
        completed = engine.check_special_triggers(PLAYER, "market_master", {"transactions": 100})
        assert [a.id for a in completed] == ["trader"]

    def test_unknown_trigger_is_ignored(self, achievements):
        assert achievements.check_special_triggers(PLAYER, "dance_party", {}) == []


class TestQueries:
    """Test listing, statistics and import/export."""

    def test_hidden_locked_achievements_are_filtered(self, achievements):
        ids = {item.achievement.id for item in achievements.get_player_achievements(PLAYER)}
        assert "secret_room" not in ids
        all_ids = {item.achievement.id for item in achievements.get_player_achievements(PLAYER, include_hidden=True)}
        assert "secret_room" in all_ids

    def test_hidden_achievement_visible_once_completed(self, achievements):
        achievements.check_special_triggers(PLAYER, "secret_room_discovered", {})
        ids = [item.achievement.id for item in achievements.get_player_achievements(PLAYER)]
        assert ids[0] == "secret_room"

    def test_listing_order(self, achievements):
        achievements.update_progress(PLAYER, ConditionType.PROPERTIES_OWNED, 1)
        achievements.update_progress(PLAYER, ConditionType.MISSIONS_COMPLETED, 10)

        statuses = [item.progress.status for item in achievements.get_player_achievements(PLAYER)]
        order = {AchievementStatus.COMPLETED: 0, AchievementStatus.IN_PROGRESS: 1, AchievementStatus.LOCKED: 2}
        assert statuses == sorted(statuses, key=order.__getitem__)

    def test_filter_by_category_and_status(self, achievements):
        wealth = achievements.get_player_achievements(PLAYER, category=AchievementCategory.WEALTH)
        assert [item.achievement.id for item in wealth] == ["millionaire"]
        assert achievements.get_player_achievements(PLAYER, status=AchievementStatus.COMPLETED) == []

    def test_recommended_prefers_closest(self, achievements):
        achievements.update_progress(PLAYER, ConditionType.MISSIONS_COMPLETED, 40)
        achievements.update_progress(PLAYER, ConditionType.ITEMS_COLLECTED, 10)
        assert [a.id for a in achievements.recommended(PLAYER)] == ["explorer", "collector"]

    def test_statistics(self, achievements):
        achievements.update_progress(PLAYER, ConditionType.PROPERTIES_OWNED, 1)
        achievements.claim_reward(PLAYER, "first_property")
        achievements.check_special_triggers(PLAYER, "secret_room_discovered", {})

        stats = achievements.statistics(PLAYER)

        assert stats.completed_achievements == 2
        assert stats.rare_achievements == 1
        assert stats.hidden_achievements == 1
        assert stats.total_rewards["money"] == 500
        assert stats.completion_rate == pytest.approx(2 / len(achievements.catalogue))

    def test_export_import_restores_progress(self, achievements, state):
        achievements.update_progress(PLAYER, ConditionType.PROPERTIES_OWNED, 1)
        exported = achievements.export_player_data(PLAYER)

        achievements.import_player_data("player-2", exported)

        assert achievements.get_progress("player-2", "first_property").status == AchievementStatus.COMPLETED
        assert achievements.get_progress("player-2", "landlord").player_id == "player-2"

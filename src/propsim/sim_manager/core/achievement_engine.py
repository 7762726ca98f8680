"""
Achievement engine for the propsim simulation.

This module holds the immutable achievement catalogue and evaluates
per-player progress records against condition counters fed in by the
orchestrator.
"""

from __future__ import annotations

import logging
import random
from typing import Any

from pydantic import BaseModel, Field

from .game_state import (
    Achievement,
    AchievementCategory,
    AchievementCondition,
    AchievementProgress,
    AchievementReward,
    AchievementStatus,
    AchievementTier,
    ConditionProgress,
    ConditionType,
    clamp,
)
from .store import Table
from .sub_engine import SubEngine

logger = logging.getLogger(__name__)

_STATUS_ORDER = {
    AchievementStatus.COMPLETED: 0,
    AchievementStatus.CLAIMED: 0,
    AchievementStatus.IN_PROGRESS: 1,
    AchievementStatus.LOCKED: 2,
}
_DONE = (AchievementStatus.COMPLETED, AchievementStatus.CLAIMED)


class ClaimResult(BaseModel):
    success: bool
    message: str
    rewards: AchievementReward | None = None


class PlayerAchievement(BaseModel):
    """An achievement definition paired with one player's progress."""

    achievement: Achievement
    progress: AchievementProgress


class AchievementStatistics(BaseModel):
    total_achievements: int = 0
    completed_achievements: int = 0
    completion_rate: float = 0.0
    total_rewards: dict[str, float] = Field(default_factory=lambda: {"money": 0.0, "experience": 0.0, "items": 0})
    rare_achievements: int = 0
    hidden_achievements: int = 0
    recent_achievements: list[str] = Field(default_factory=list)


def _single(
    achievement_id: str,
    name: str,
    description: str,
    category: AchievementCategory,
    tier: AchievementTier,
    condition: ConditionType,
    target: float,
    rewards: AchievementReward,
    icon: str,
    hidden: bool = False,
) -> Achievement:
    return Achievement(
        id=achievement_id,
        name=name,
        description=description,
        category=category,
        tier=tier,
        conditions=[AchievementCondition(type=condition, target=target, description=description)],
        rewards=rewards,
        is_hidden=hidden,
        icon=icon,
    )


def default_achievements() -> list[Achievement]:
    return [
        _single(
            "first_property", "Property Rookie", "Buy your first property",
            AchievementCategory.PROPERTY, AchievementTier.BRONZE, ConditionType.PROPERTIES_OWNED, 1,
            AchievementReward(money=500, experience=100, items=["beginner_guide"], title="Property Rookie"),
            icon="house",
        ),
        _single(
            "first_tenant", "Leasing Pro", "Sign your first tenant",
            AchievementCategory.TENANT, AchievementTier.BRONZE, ConditionType.TENANTS_MANAGED, 1,
            AchievementReward(money=300, experience=150, items=["tenant_handbook"], title="Leasing Rookie"),
            icon="people",
        ),
        _single(
            "millionaire", "Millionaire", "Earn 1,000,000 in total",
            AchievementCategory.WEALTH, AchievementTier.GOLD, ConditionType.MONEY_EARNED, 1_000_000,
            AchievementReward(
                money=50000,
                experience=1000,
                items=["golden_calculator", "luxury_office"],
                title="Millionaire",
                badge="millionaire_badge",
            ),
            icon="money",
        ),
        _single(
            "explorer", "City Explorer", "Complete 50 exploration missions",
            AchievementCategory.EXPLORATION, AchievementTier.SILVER, ConditionType.MISSIONS_COMPLETED, 50,
            AchievementReward(
                money=5000, experience=500, items=["explorer_compass", "adventure_map"], title="City Explorer"
            ),
            icon="compass",
        ),
        _single(
            "collector", "Collector", "Collect 100 items",
            AchievementCategory.COLLECTION, AchievementTier.SILVER, ConditionType.ITEMS_COLLECTED, 100,
            AchievementReward(
                money=3000, experience=300, items=["collector_showcase", "rare_item_detector"], title="Collector"
            ),
            icon="collection",
        ),
        _single(
            "perfect_week", "Perfect Week", "Play seven days in a row",
            AchievementCategory.CHALLENGE, AchievementTier.GOLD, ConditionType.CONSECUTIVE_DAYS, 7,
            AchievementReward(
                money=10000,
                experience=800,
                items=["perfectionist_trophy", "efficiency_boost"],
                title="Perfectionist",
                badge="perfectionist_badge",
            ),
            icon="trophy",
        ),
        _single(
            "secret_room", "Secret Discovery", "Discover the hidden secret room",
            AchievementCategory.EXPLORATION, AchievementTier.LEGENDARY, ConditionType.RARE_ITEMS_FOUND, 1,
            AchievementReward(
                money=25000,
                experience=2000,
                items=["secret_key", "ancient_map", "mystery_box"],
                title="Secret Seeker",
                badge="secret_badge",
                unlocks=["secret_shop"],
            ),
            icon="secret",
            hidden=True,
        ),
        _single(
            "community_builder", "Community Builder", "Resolve problems for 10 tenants",
            AchievementCategory.SOCIAL, AchievementTier.SILVER, ConditionType.TENANT_SATISFACTION, 10,
            AchievementReward(
                money=2000, experience=400, items=["community_award", "social_network"], title="Community Builder"
            ),
            icon="community",
        ),
        _single(
            "level_master", "Grand Master", "Reach level 50",
            AchievementCategory.PROGRESSION, AchievementTier.LEGENDARY, ConditionType.LEVEL_REACHED, 50,
            AchievementReward(
                money=100000,
                experience=5000,
                items=["master_certificate", "legendary_tools", "prestige_unlock"],
                title="Legendary Master",
                badge="master_badge",
                unlocks=["prestige_system", "master_challenges"],
            ),
            icon="crown",
        ),
    ]


class AchievementEngine(SubEngine):
    """
    Rule-based achievement progress evaluator.

    Progress records live in `GameState.achievement_progress` keyed by player
    id and are created lazily the first time a player is touched. The
    catalogue itself is immutable once registered.

    Example:
        >>> engine.update_progress(player_id, ConditionType.PROPERTIES_OWNED, 1)
        [Achievement(id='first_property', ...)]
    """

    name = "achievement"

    def __init__(self, definitions: list[Achievement] | None = None, rng: random.Random | None = None) -> None:
        super().__init__(rng)
        self._definitions: list[Achievement] = []
        self.catalogue: Table[Achievement] = Table(self._definitions)
        for definition in definitions if definitions is not None else default_achievements():
            self.catalogue.add(definition)

    def on_initialize(self) -> None:
        pass

    def update(self, delta_time: float) -> None:
        self.scheduler.update(delta_time)

    # ------------------------------------------------------------------
    # Progress records
    # ------------------------------------------------------------------

    def _new_progress(self, achievement: Achievement, player_id: str) -> AchievementProgress:
        return AchievementProgress(
            achievement_id=achievement.id,
            player_id=player_id,
            conditions=[ConditionProgress(type=c.type, target=c.target) for c in achievement.conditions],
            started_at=self.state.clock,
        )

    def _records(self, player_id: str) -> list[AchievementProgress]:
        records = self.state.achievement_progress.setdefault(player_id, [])
        known = {record.achievement_id for record in records}
        for achievement in self.catalogue:
            if achievement.id not in known:
                records.append(self._new_progress(achievement, player_id))
        return records

    def get_progress(self, player_id: str, achievement_id: str) -> AchievementProgress:
        """
        Raises:
            KeyError: If the achievement id is not in the catalogue
        """
        self.catalogue.require(achievement_id)
        return Table(self._records(player_id), key="achievement_id").require(achievement_id)

    def update_progress(self, player_id: str, condition_type: ConditionType, value: float) -> list[Achievement]:
        """
        Feed a new counter value for one condition type.

        Counters only ratchet upward. Completed and claimed records are left
        untouched.

        Args:
            player_id: Player whose records are updated
            condition_type: Condition counter being reported
            value: Current absolute value of the counter

        Returns:
            Definitions that became completed during this call
        """
        completed: list[Achievement] = []
        for progress in self._records(player_id):
            if progress.status in _DONE:
                continue
            matching = [c for c in progress.conditions if c.type == condition_type]
            if not matching:
                continue
            for condition in matching:
                condition.current = max(condition.current, value)

            progress.progress = clamp(
                sum(c.ratio for c in progress.conditions) / len(progress.conditions), 0.0, 1.0
            )
            if progress.status == AchievementStatus.LOCKED and progress.progress > 0:
                progress.status = AchievementStatus.IN_PROGRESS
            if all(c.met for c in progress.conditions):
                progress.status = AchievementStatus.COMPLETED
                progress.completed_at = self.state.clock
                achievement = self.catalogue.require(progress.achievement_id)
                completed.append(achievement)
                logger.info("Player %s completed achievement %s", player_id, achievement.id)

        for achievement in completed:
            self.emit(
                "achievement:completed",
                {"player_id": player_id, "achievement_id": achievement.id, "achievement": achievement},
            )
        return completed

    def claim_reward(self, player_id: str, achievement_id: str) -> ClaimResult:
        """
        Mark a completed achievement as claimed and hand back its rewards.

        Raises:
            KeyError: If the achievement id is not in the catalogue
        """
        achievement = self.catalogue.require(achievement_id)
        progress = self.get_progress(player_id, achievement_id)
        if progress.status == AchievementStatus.CLAIMED:
            return ClaimResult(success=False, message="Reward already claimed")
        if progress.status != AchievementStatus.COMPLETED:
            return ClaimResult(success=False, message="Achievement not completed")

        progress.status = AchievementStatus.CLAIMED
        progress.claimed_at = self.state.clock
        return ClaimResult(success=True, message="Reward claimed", rewards=achievement.rewards)

    def check_special_triggers(self, player_id: str, event_type: str, data: dict[str, Any]) -> list[Achievement]:
        if event_type == "secret_room_discovered":
            return self.update_progress(player_id, ConditionType.RARE_ITEMS_FOUND, 1)
        if event_type == "perfect_mission_streak" and data.get("streak", 0) >= 5:
            return self.update_progress(player_id, ConditionType.PERFECT_MISSIONS, data["streak"])
        if event_type == "market_master" and data.get("transactions", 0) >= 100:
            return self.update_progress(player_id, ConditionType.MARKET_TRANSACTIONS, data["transactions"])
        if event_type == "property_empire" and data.get("total_value", 0) >= 10_000_000:
            return self.update_progress(player_id, ConditionType.PROPERTY_VALUE, data["total_value"])
        return []

    def reset_progress(self, player_id: str, achievement_id: str | None = None) -> None:
        if achievement_id is None:
            self.state.achievement_progress.pop(player_id, None)
            self._records(player_id)
            return
        achievement = self.catalogue.require(achievement_id)
        records = self._records(player_id)
        for index, record in enumerate(records):
            if record.achievement_id == achievement_id:
                records[index] = self._new_progress(achievement, player_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_achievement(self, achievement_id: str) -> Achievement | None:
        return self.catalogue.get(achievement_id)

    def get_player_achievements(
        self,
        player_id: str,
        category: AchievementCategory | None = None,
        status: AchievementStatus | None = None,
        include_hidden: bool = False,
    ) -> list[PlayerAchievement]:
        """
        List achievements with the player's progress.

        Hidden achievements stay out of the list while locked unless
        `include_hidden` is set. Finished ones sort first, then in-progress,
        then locked, with higher progress ahead within each group.
        """
        by_id = {record.achievement_id: record for record in self._records(player_id)}
        items = []
        for achievement in self.catalogue:
            progress = by_id[achievement.id]
            if category is not None and achievement.category != category:
                continue
            if status is not None and progress.status != status:
                continue
            if not include_hidden and achievement.is_hidden and progress.status == AchievementStatus.LOCKED:
                continue
            items.append(PlayerAchievement(achievement=achievement, progress=progress))
        items.sort(key=lambda item: (_STATUS_ORDER[item.progress.status], -item.progress.progress))
        return items

    def recommended(self, player_id: str, limit: int = 5) -> list[Achievement]:
        in_progress = self.get_player_achievements(player_id, status=AchievementStatus.IN_PROGRESS)
        in_progress.sort(
            key=lambda item: (
                -item.progress.progress,
                -(item.achievement.rewards.money + item.achievement.rewards.experience),
            )
        )
        return [item.achievement for item in in_progress[:limit]]

    def statistics(self, player_id: str) -> AchievementStatistics:
        stats = AchievementStatistics(total_achievements=len(self.catalogue))
        finished: list[AchievementProgress] = []
        for progress in self._records(player_id):
            if progress.status not in _DONE:
                continue
            achievement = self.catalogue.get(progress.achievement_id)
            if achievement is None:
                continue
            finished.append(progress)
            if achievement.tier == AchievementTier.LEGENDARY:
                stats.rare_achievements += 1
            if achievement.is_hidden:
                stats.hidden_achievements += 1
            if progress.status == AchievementStatus.CLAIMED:
                stats.total_rewards["money"] += achievement.rewards.money
                stats.total_rewards["experience"] += achievement.rewards.experience
                stats.total_rewards["items"] += len(achievement.rewards.items)

        stats.completed_achievements = len(finished)
        if stats.total_achievements:
            stats.completion_rate = stats.completed_achievements / stats.total_achievements
        finished.sort(key=lambda p: p.completed_at or 0.0, reverse=True)
        stats.recent_achievements = [p.achievement_id for p in finished[:10]]
        return stats

    # ------------------------------------------------------------------
    # Import / export
    # ------------------------------------------------------------------

    def export_player_data(self, player_id: str) -> dict[str, Any]:
        return {
            "achievements": [
                item.model_dump(mode="json")
                for item in self.get_player_achievements(player_id, include_hidden=True)
            ],
            "statistics": self.statistics(player_id).model_dump(mode="json"),
        }

    def import_player_data(self, player_id: str, data: dict[str, Any]) -> None:
        records = []
        for item in data.get("achievements", []):
            progress = AchievementProgress.model_validate(item["progress"])
            if progress.achievement_id not in self.catalogue:
                logger.warning("Skipping progress for unknown achievement %s", progress.achievement_id)
                continue
            progress.player_id = player_id
            records.append(progress)
        self.state.achievement_progress[player_id] = records
        self._records(player_id)

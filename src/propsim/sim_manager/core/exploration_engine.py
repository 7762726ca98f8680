"""
Exploration engine for the propsim simulation.

This module handles mission generation, the mission lifecycle state machine
(available -> in_progress -> completed | failed | expired), success-rate
evaluation and reward rolls.
"""

from __future__ import annotations

import logging
import math
import random
import uuid
from collections import Counter
from dataclasses import dataclass

from .game_state import (
    DifficultyLevel,
    ExplorationEvent,
    ExplorationStatistics,
    Mission,
    MissionRequirements,
    MissionResult,
    MissionRewards,
    MissionRisk,
    MissionStatus,
    MissionType,
    OperationResult,
    clamp,
)
from .store import Table
from .sub_engine import SubEngine
from .tick_manager import MINUTES_PER_DAY

logger = logging.getLogger(__name__)

BASE_REWARD = {
    DifficultyLevel.EASY: 100,
    DifficultyLevel.MEDIUM: 250,
    DifficultyLevel.HARD: 500,
    DifficultyLevel.EXTREME: 1000,
    DifficultyLevel.LEGENDARY: 2000,
}
BASE_DURATION_MINUTES = {
    DifficultyLevel.EASY: 30,
    DifficultyLevel.MEDIUM: 60,
    DifficultyLevel.HARD: 120,
    DifficultyLevel.EXTREME: 240,
    DifficultyLevel.LEGENDARY: 480,
}
MIN_LEVEL = {
    DifficultyLevel.EASY: 1,
    DifficultyLevel.MEDIUM: 5,
    DifficultyLevel.HARD: 10,
    DifficultyLevel.EXTREME: 20,
    DifficultyLevel.LEGENDARY: 35,
}
RISK_MULTIPLIER = {
    DifficultyLevel.EASY: 0.8,
    DifficultyLevel.MEDIUM: 1.0,
    DifficultyLevel.HARD: 1.3,
    DifficultyLevel.EXTREME: 1.6,
    DifficultyLevel.LEGENDARY: 2.0,
}
DIFFICULTY_PENALTY = {
    DifficultyLevel.EASY: 0.0,
    DifficultyLevel.MEDIUM: 0.1,
    DifficultyLevel.HARD: 0.2,
    DifficultyLevel.EXTREME: 0.3,
    DifficultyLevel.LEGENDARY: 0.4,
}
MAX_RISK_PROBABILITY = 0.8
ESCALATED_IMPACT = {"low": "medium", "medium": "high"}


@dataclass(frozen=True)
class MissionTemplate:
    name: str
    description: str
    money_multiplier: float
    experience_multiplier: float
    items: tuple[str, ...]
    risks: tuple[tuple[str, str, float, str], ...]
    equipment: tuple[str, ...]
    skills: tuple[str, ...]
    properties: tuple[str, ...] = ()


MISSION_TEMPLATES: dict[MissionType, MissionTemplate] = {
    MissionType.URBAN_EXPLORATION: MissionTemplate(
        name="Urban Exploration",
        description="Explore hidden corners of the city looking for opportunities",
        money_multiplier=0.8,
        experience_multiplier=1.2,
        items=("city_map", "local_contacts"),
        risks=(
            ("physical", "Getting lost or hurt", 0.1, "low"),
            ("legal", "Wandering onto private property", 0.05, "medium"),
            ("time", "Taking far too long", 0.2, "low"),
        ),
        equipment=("map", "flashlight"),
        skills=("navigation", "observation"),
    ),
    MissionType.MARKET_RESEARCH: MissionTemplate(
        name="Market Research",
        description="Study local market dynamics and collect business intelligence",
        money_multiplier=0.6,
        experience_multiplier=1.0,
        items=("market_report", "competitor_analysis"),
        risks=(
            ("information", "Gathering wrong information", 0.15, "medium"),
            ("competition", "Being spotted by competitors", 0.1, "low"),
            ("time", "Research dragging on", 0.25, "low"),
        ),
        equipment=("notebook", "calculator"),
        skills=("analysis", "communication"),
    ),
    MissionType.PROPERTY_SCOUTING: MissionTemplate(
        name="Property Scouting",
        description="Find potential investment properties and assess their value",
        money_multiplier=0.4,
        experience_multiplier=0.8,
        items=("property_leads",),
        properties=("potential_property",),
        risks=(
            ("financial", "Overestimating property value", 0.2, "high"),
            ("legal", "Title problems", 0.1, "high"),
            ("physical", "Structural defects", 0.15, "medium"),
        ),
        equipment=("measuring_tape", "camera"),
        skills=("evaluation", "negotiation"),
    ),
    MissionType.TENANT_RECRUITMENT: MissionTemplate(
        name="Tenant Recruitment",
        description="Find quality tenants and grow a tenant network",
        money_multiplier=0.5,
        experience_multiplier=0.9,
        items=("tenant_contacts", "referral_network"),
        risks=(
            ("social", "Meeting a bad tenant", 0.2, "medium"),
            ("financial", "Tenant financial trouble", 0.15, "medium"),
            ("legal", "Contract dispute", 0.1, "high"),
        ),
        equipment=("business_cards", "contract_templates"),
        skills=("communication", "psychology"),
    ),
    MissionType.RESOURCE_GATHERING: MissionTemplate(
        name="Resource Gathering",
        description="Collect building materials, renovation supplies and other resources",
        money_multiplier=1.2,
        experience_multiplier=0.6,
        items=("building_materials", "tools", "supplies"),
        risks=(
            ("quality", "Poor resource quality", 0.25, "low"),
            ("physical", "Injury while hauling", 0.1, "medium"),
            ("financial", "Hidden costs", 0.15, "medium"),
        ),
        equipment=("tools", "transport"),
        skills=("logistics", "quality_assessment"),
    ),
    MissionType.BUSINESS_NETWORKING: MissionTemplate(
        name="Business Networking",
        description="Attend business events and build valuable connections",
        money_multiplier=0.3,
        experience_multiplier=1.4,
        items=("business_cards", "partnership_opportunities"),
        risks=(
            ("social", "Social blunder", 0.2, "low"),
            ("reputation", "Reputation damage", 0.05, "high"),
            ("time", "Unproductive mingling", 0.3, "low"),
        ),
        equipment=("formal_attire", "business_cards"),
        skills=("social_skills", "presentation"),
    ),
    MissionType.INVESTMENT_OPPORTUNITY: MissionTemplate(
        name="Investment Opportunity",
        description="Look for high-return investments and partnerships",
        money_multiplier=1.5,
        experience_multiplier=1.1,
        items=("investment_leads", "financial_reports"),
        risks=(
            ("financial", "Investment trap", 0.15, "high"),
            ("market", "Market shift", 0.2, "medium"),
            ("legal", "Legal exposure", 0.1, "high"),
        ),
        equipment=("financial_calculator", "legal_documents"),
        skills=("financial_analysis", "risk_assessment"),
    ),
    MissionType.EMERGENCY_RESPONSE: MissionTemplate(
        name="Emergency Response",
        description="Handle an emergency, possibly with unexpected gains",
        money_multiplier=1.8,
        experience_multiplier=1.6,
        items=("emergency_supplies", "reputation_boost"),
        risks=(
            ("physical", "Personal safety risk", 0.3, "high"),
            ("financial", "Unexpected losses", 0.2, "medium"),
            ("time", "Emergency delays", 0.4, "medium"),
        ),
        equipment=("first_aid_kit", "emergency_supplies"),
        skills=("crisis_management", "quick_thinking"),
    ),
}

ALLOWED_TRANSITIONS: dict[MissionStatus, frozenset[MissionStatus]] = {
    MissionStatus.AVAILABLE: frozenset({MissionStatus.IN_PROGRESS, MissionStatus.EXPIRED}),
    MissionStatus.IN_PROGRESS: frozenset({MissionStatus.COMPLETED, MissionStatus.FAILED}),
}


class ExplorationEngine(SubEngine):
    """
    Exploration missions.

    Responsibilities:
    - Keep a pool of available missions topped up
    - Validate and start missions, complete them when their time is up
    - Expire untouched missions after `expiry_days`
    - Track exploration history and statistics

    Args:
        rng: Injected random source
        max_active_missions: Concurrent in-progress cap
        pool_size: Number of available missions kept on offer
        base_success_rate: Starting success rate before difficulty penalty
        experience_multiplier: Applied to successful experience rewards
        expiry_days: Simulated days an available mission stays on offer
        auto_complete: Complete due missions automatically during `update`
    """

    name = "exploration"

    def __init__(
        self,
        rng: random.Random | None = None,
        max_active_missions: int = 3,
        pool_size: int = 5,
        base_success_rate: float = 0.7,
        experience_multiplier: float = 1.0,
        expiry_days: float = 7.0,
        auto_complete: bool = True,
        max_finished_missions: int = 100,
    ) -> None:
        super().__init__(rng)
        self.max_active_missions = max_active_missions
        self.pool_size = pool_size
        self.base_success_rate = base_success_rate
        self.experience_multiplier = experience_multiplier
        self.expiry_days = expiry_days
        self.auto_complete = auto_complete
        self.max_finished_missions = max_finished_missions

    @property
    def missions(self) -> Table[Mission]:
        return Table(self.state.missions)

    def on_initialize(self) -> None:
        self.refresh_missions()

    def update(self, delta_time: float) -> None:
        self.scheduler.update(delta_time)
        clock = self.state.clock
        if self.auto_complete:
            for mission in self.get_active_missions():
                if mission.estimated_end_at is not None and clock >= mission.estimated_end_at:
                    self.complete_mission(mission.id)
        self.refresh_missions()

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def _next_id(self) -> str:
        return uuid.UUID(int=self.rng.getrandbits(128), version=4).hex

    def generate_mission(
        self,
        mission_type: MissionType | None = None,
        difficulty: DifficultyLevel | None = None,
    ) -> Mission:
        """
        Build a new available mission and add it to the pool.

        Args:
            mission_type: Fixed type, or None to draw one
            difficulty: Fixed difficulty, or None to draw one

        Returns:
            The new mission
        """
        mission_type = mission_type or self.rng.choice(list(MissionType))
        difficulty = difficulty or self.rng.choice(list(DifficultyLevel))
        template = MISSION_TEMPLATES[mission_type]
        base_reward = BASE_REWARD[difficulty]
        min_level = MIN_LEVEL[difficulty]
        clock = self.state.clock

        risks = [
            MissionRisk(
                type=risk_type,
                description=description,
                probability=min(MAX_RISK_PROBABILITY, probability * RISK_MULTIPLIER[difficulty]),
                impact=self._adjust_impact(impact, difficulty),
            )
            for risk_type, description, probability, impact in template.risks
        ]
        mission = Mission(
            id=self._next_id(),
            name=f"{template.name} - {difficulty.value.title()}",
            description=template.description,
            type=mission_type,
            difficulty=difficulty,
            duration=BASE_DURATION_MINUTES[difficulty],
            success_rate=clamp(self.base_success_rate - DIFFICULTY_PENALTY[difficulty], 0.1, 0.95),
            rewards=MissionRewards(
                money=base_reward * template.money_multiplier,
                experience=base_reward * template.experience_multiplier,
                items=list(template.items),
                properties=list(template.properties),
            ),
            risks=risks,
            requirements=MissionRequirements(
                min_level=min_level,
                min_money=min_level * 50,
                required_equipment=list(template.equipment),
                required_skills=list(template.skills),
            ),
            created_at=clock,
            expires_at=clock + self.expiry_days,
        )
        self.missions.add(mission)
        return mission

    @staticmethod
    def _adjust_impact(impact: str, difficulty: DifficultyLevel) -> str:
        if difficulty in (DifficultyLevel.EXTREME, DifficultyLevel.LEGENDARY):
            return ESCALATED_IMPACT.get(impact, impact)
        return impact

    def refresh_missions(self) -> list[Mission]:
        """Expire stale offers and top the available pool back up."""
        clock = self.state.clock
        for mission in self.get_available_missions():
            if mission.expires_at is not None and clock >= mission.expires_at:
                self._transition(mission, MissionStatus.EXPIRED)
        while len(self.get_available_missions()) < self.pool_size:
            self.generate_mission()
        self._prune_finished()
        return self.get_available_missions()

    def _prune_finished(self) -> None:
        finished = [m for m in self.state.missions if m.is_terminal]
        excess = len(finished) - self.max_finished_missions
        if excess <= 0:
            return
        drop = {m.id for m in finished[:excess]}
        self.state.missions[:] = [m for m in self.state.missions if m.id not in drop]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _transition(self, mission: Mission, new_status: MissionStatus) -> bool:
        """
        Move a mission to `new_status` if the lifecycle allows it.

        Terminal missions never change status again.
        """
        allowed = ALLOWED_TRANSITIONS.get(mission.status, frozenset())
        if new_status not in allowed:
            logger.warning(
                "Refusing mission %s transition %s -> %s", mission.id, mission.status.value, new_status.value
            )
            return False
        mission.status = new_status
        return True

    def _record(self, event_type: str, mission: Mission, description: str) -> None:
        self.state.exploration_history.append(
            ExplorationEvent(
                event_type=event_type,
                mission_id=mission.id,
                player_id=self.state.player.id,
                at=self.state.clock,
                description=description,
            )
        )

    def start_mission(self, mission_id: str) -> OperationResult:
        mission = self.missions.get(mission_id)
        if mission is None or mission.status != MissionStatus.AVAILABLE:
            return OperationResult.fail("Mission not found or not available")
        if len(self.get_active_missions()) >= self.max_active_missions:
            return OperationResult.fail("Active mission limit reached")

        player = self.state.player
        requirements = mission.requirements
        if player.level < requirements.min_level:
            return OperationResult.fail(f"Requires level {requirements.min_level}, current level {player.level}")
        if player.resources.cash < requirements.min_money:
            return OperationResult.fail(
                f"Requires {requirements.min_money:.0f} cash, current {player.resources.cash:.0f}"
            )
        missing = [item for item in requirements.required_equipment if item not in player.inventory]
        if missing:
            return OperationResult.fail(f"Missing required equipment: {', '.join(missing)}")

        self._transition(mission, MissionStatus.IN_PROGRESS)
        mission.started_at = self.state.clock
        mission.estimated_end_at = self.state.clock + mission.duration / MINUTES_PER_DAY
        player.statistics.exploration_missions += 1
        self._record("mission_started", mission, f"Started mission: {mission.name}")
        self.emit("exploration:started", {"mission_id": mission.id, "mission": mission})
        return OperationResult.ok("Mission started", mission_id=mission.id)

    def estimate_success_rate(self, mission: Mission) -> float:
        """
        Success probability for the current player.

        The stored rate is adjusted by the level margin over the mission's
        minimum, accumulated experience and the mission's risk list.
        """
        player = self.state.player
        level_bonus = min(0.2, (player.level - mission.requirements.min_level) * 0.02)
        experience_bonus = min(0.15, player.resources.experience / 10000 * 0.1)
        risk_penalty = sum(risk.probability * 0.1 for risk in mission.risks)
        return clamp(mission.success_rate + level_bonus + experience_bonus - risk_penalty, 0.1, 0.95)

    def complete_mission(self, mission_id: str) -> OperationResult:
        mission = self.missions.get(mission_id)
        if mission is None or mission.status != MissionStatus.IN_PROGRESS:
            return OperationResult.fail("Mission not found or not in progress")
        if mission.estimated_end_at is not None and self.state.clock < mission.estimated_end_at:
            return OperationResult.fail("Mission is not finished yet")

        success_rate = self.estimate_success_rate(mission)
        success = self.rng.random() < success_rate
        result = self._roll_result(mission, success, success_rate)

        self._transition(mission, MissionStatus.COMPLETED if success else MissionStatus.FAILED)
        mission.completed_at = self.state.clock
        mission.result = result
        self._update_statistics(result)
        self._record(
            "mission_completed" if success else "mission_failed",
            mission,
            f"{'Completed' if success else 'Failed'} mission: {mission.name}",
        )
        self.emit("exploration:completed", {"mission_id": mission.id, "mission": mission, "result": result})
        return OperationResult.ok(
            "Mission completed" if success else "Mission failed",
            mission_id=mission.id,
            result=result.model_dump(mode="json"),
        )

    def _roll_result(self, mission: Mission, success: bool, success_rate: float) -> MissionResult:
        rewards = mission.rewards
        events: list[str] = []
        if success:
            money = math.floor(rewards.money * self.rng.uniform(0.8, 1.2))
            granted = MissionRewards(
                money=money,
                experience=math.floor(rewards.experience * self.experience_multiplier),
                items=list(rewards.items),
                properties=list(rewards.properties),
            )
            if self.rng.random() < 0.2:
                granted.money += math.floor(granted.money * 0.5)
                events.append("Found an extra income opportunity")
            if self.rng.random() < 0.15:
                granted.items.append("rare_item")
                events.append("Discovered a rare item")
        else:
            granted = MissionRewards(
                money=math.floor(rewards.money * 0.1),
                experience=math.floor(rewards.experience * 0.2),
            )
            for risk in mission.risks:
                if self.rng.random() < risk.probability:
                    events.append(f"Encountered risk: {risk.description}")
            if not events:
                events.append("The mission fell through due to unforeseen circumstances")

        return MissionResult(
            success=success,
            success_rate=success_rate,
            rewards=granted,
            events=events,
            duration=mission.duration,
            completed_at=self.state.clock,
        )

    def cancel_mission(self, mission_id: str) -> OperationResult:
        mission = self.missions.get(mission_id)
        if mission is None or mission.status != MissionStatus.IN_PROGRESS:
            return OperationResult.fail("Mission not found or not in progress")
        self._transition(mission, MissionStatus.FAILED)
        mission.completed_at = self.state.clock
        self._record("mission_cancelled", mission, f"Cancelled mission: {mission.name}")
        self.emit("exploration:cancelled", {"mission_id": mission.id})
        return OperationResult.ok("Mission cancelled", mission_id=mission.id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_available_missions(self) -> list[Mission]:
        return self.missions.filter(lambda m: m.status == MissionStatus.AVAILABLE)

    def get_active_missions(self) -> list[Mission]:
        return self.missions.filter(lambda m: m.status == MissionStatus.IN_PROGRESS)

    def get_finished_missions(self, limit: int | None = None) -> list[Mission]:
        finished = sorted(
            (m for m in self.state.missions if m.is_terminal and m.status != MissionStatus.EXPIRED),
            key=lambda m: m.completed_at or 0.0,
            reverse=True,
        )
        return finished[:limit] if limit else finished

    def recommended_missions(self, limit: int = 3) -> list[Mission]:
        player = self.state.player
        feasible = [
            m
            for m in self.get_available_missions()
            if player.level >= m.requirements.min_level and player.resources.cash >= m.requirements.min_money
        ]
        feasible.sort(key=lambda m: m.success_rate * m.rewards.money, reverse=True)
        return feasible[:limit]

    def history(self, limit: int | None = None) -> list[ExplorationEvent]:
        events = list(reversed(self.state.exploration_history))
        return events[:limit] if limit else events

    def statistics(self) -> ExplorationStatistics:
        return self.state.exploration_statistics

    def _update_statistics(self, result: MissionResult) -> None:
        stats = self.state.exploration_statistics
        stats.total_missions += 1
        if result.success:
            stats.completed_missions += 1
            stats.total_money += result.rewards.money
            stats.total_experience += result.rewards.experience
            stats.total_items += len(result.rewards.items)
        else:
            stats.failed_missions += 1
        stats.success_rate = stats.completed_missions / stats.total_missions

        completed = [m for m in self.state.missions if m.status == MissionStatus.COMPLETED]
        if completed:
            stats.average_duration = sum(m.duration for m in completed) / len(completed)
            stats.favorite_type = Counter(m.type for m in completed).most_common(1)[0][0]

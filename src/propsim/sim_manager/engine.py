from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from pydantic import ValidationError

from propsim.common.templates import TemplateManager

from .core.achievement_engine import AchievementEngine, ClaimResult, PlayerAchievement
from .core.event_bus import EventBus, EventHandler
from .core.exploration_engine import ExplorationEngine
from .core.game_state import (
    AchievementCategory,
    AchievementStatus,
    Complaint,
    ConditionType,
    GamePhase,
    GameSettings,
    GameState,
    Mission,
    MissionResult,
    MissionStatus,
    Notification,
    NotificationChannel,
    NotificationPriority,
    NotificationSettings,
    NotificationStatus,
    NotificationType,
    OperationResult,
    PlayerProfile,
    PlayerResources,
    PriceRecord,
    Product,
    Property,
    Tenant,
    clamp,
)
from .core.market_engine import MarketEngine, seed_market
from .core.notification_engine import NotificationEngine
from .core.save_store import DEFAULT_SAVE_SLOT, InMemorySaveStore, SaveStore
from .core.store import Table
from .core.sub_engine import SubEngine
from .core.tenant_engine import TenantEngine
from .core.tick_manager import TickManager
from .gateways import ChannelGateway, InGameGateway

logger = logging.getLogger(__name__)

EXPERIENCE_PER_LEVEL = 1000
SKILL_POINTS_PER_LEVEL = 3
MAINTENANCE_THRESHOLD = 40.0
HAPPY_TENANT_THRESHOLD = 90.0
COMPLAINT_RESOLUTION_BONUS = 5.0
RARE_ITEM = "rare_item"
OPPORTUNITY_EVENT_TYPES = frozenset({"demand_spike", "market_innovation", "new_technology", "surplus_supply"})
# Floating-point slack when deciding whether the clock crossed a day boundary.
_DAY_EPSILON = 1e-9


def new_game_state(
    player_name: str = "Player",
    starting_cash: float = 50000.0,
    settings: GameSettings | None = None,
) -> GameState:
    """Fresh game with a seeded market."""
    state = GameState(
        player=PlayerProfile(name=player_name, resources=PlayerResources(cash=starting_cash)),
        settings=settings or GameSettings(),
    )
    seed_market(state)
    return state


@dataclass
class ServiceRegistry:
    """
    Every collaborator the orchestrator needs, built once and passed by reference.

    Sub-engines share the registry's random source so a seed reproduces a run.
    """

    bus: EventBus
    rng: random.Random
    save_store: SaveStore
    tick_manager: TickManager
    tenant: TenantEngine
    market: MarketEngine
    exploration: ExplorationEngine
    achievements: AchievementEngine
    notifications: NotificationEngine
    in_game: InGameGateway = field(default_factory=InGameGateway)

    @classmethod
    def create(
        cls,
        seed: int | None = None,
        save_store: SaveStore | None = None,
        tick_manager: TickManager | None = None,
        gateways: dict[NotificationChannel, ChannelGateway] | None = None,
        templates: TemplateManager | None = None,
    ) -> "ServiceRegistry":
        rng = random.Random(seed)
        in_game = InGameGateway()
        channel_gateways: dict[NotificationChannel, ChannelGateway] = {NotificationChannel.IN_GAME: in_game}
        channel_gateways.update(gateways or {})
        return cls(
            bus=EventBus(),
            rng=rng,
            save_store=save_store or InMemorySaveStore(),
            tick_manager=tick_manager or TickManager(),
            tenant=TenantEngine(rng=rng),
            market=MarketEngine(rng=rng),
            exploration=ExplorationEngine(rng=rng),
            achievements=AchievementEngine(rng=rng),
            notifications=NotificationEngine(gateways=channel_gateways, templates=templates, rng=rng),
            in_game=in_game,
        )

    @property
    def sub_engines(self) -> list[SubEngine]:
        """Engines in update order."""
        return [self.tenant, self.market, self.exploration, self.achievements, self.notifications]


class GameEngine:
    """
    Orchestrator owning the live GameState.

    All state mutation happens inside `tick` or a public method of this class,
    both serialized by the tick manager's advance lock.
    """

    def __init__(self, registry: ServiceRegistry, save_slot: str = DEFAULT_SAVE_SLOT) -> None:
        self.registry = registry
        self.save_slot = save_slot
        self._state: GameState | None = None
        self._initialized = False
        self._running = False
        self._paused = False
        self._listeners: list[tuple[str, EventHandler]] = []
        self._time_since_save = 0.0
        self._lock = registry.tick_manager.get_advance_lock()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def bus(self) -> EventBus:
        return self.registry.bus

    @property
    def tick_manager(self) -> TickManager:
        return self.registry.tick_manager

    @property
    def state(self) -> GameState:
        if self._state is None:
            raise RuntimeError("No game loaded; call initialize first")
        return self._state

    @property
    def has_state(self) -> bool:
        return self._state is not None

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def player_id(self) -> str:
        return self.state.player.id

    @property
    def language(self) -> str:
        """Locale of the notification templates."""
        return self.registry.notifications.templates.locale

    def sim_now(self) -> datetime:
        return self.tick_manager.sim_datetime(self.state.clock)

    def sim_time(self) -> str:
        return self.tick_manager.format_sim_time(self.state.clock)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self, game_state: GameState) -> None:
        with self._lock:
            if self._initialized:
                self._teardown()
            self._state = game_state
            self.tick_manager.ticks_per_day = game_state.settings.ticks_per_day
            self.tick_manager.set_base_datetime(game_state.start_date)
            self._apply_language(game_state.settings.language)
            self.registry.notifications.clock = self.sim_now
            for engine in self.registry.sub_engines:
                engine.initialize(game_state, self.bus)
            self._register_listeners()
            self._time_since_save = 0.0
            self._initialized = True
            logger.info("Game %s initialized on day %d", game_state.game_id, game_state.game_day)

    def _apply_language(self, language: str) -> None:
        templates = self.registry.notifications.templates
        if templates.locale == language:
            return
        try:
            templates.set_locale(language)
        except ValueError:
            logger.warning("Unsupported language %r; keeping %s notification templates", language, templates.locale)

    def start(self) -> None:
        with self._lock:
            if not self._initialized:
                self.initialize(self.state)
            self._running = True
            self._paused = False
            self.bus.emit("game:started", {"game_id": self.state.game_id})
            self.registry.notifications.send_template_notification(
                "daily_login",
                self.player_id,
                {"days": self.state.player.statistics.consecutive_days + 1},
            )

    def pause(self) -> None:
        with self._lock:
            if self._running and not self._paused:
                self._paused = True
                self.bus.emit("game:paused", {"game_id": self.state.game_id})

    def resume(self) -> None:
        with self._lock:
            if self._running and self._paused:
                self._paused = False
                self.bus.emit("game:resumed", {"game_id": self.state.game_id})

    def stop(self) -> None:
        self.tick_manager.stop_auto_tick()
        with self._lock:
            if not self._initialized:
                return
            self._running = False
            self._paused = False
            self.bus.emit("game:stopped", {"game_id": self.state.game_id})
            self._teardown()

    def _teardown(self) -> None:
        for name, handler in self._listeners:
            self.bus.off(name, handler)
        self._listeners.clear()
        for engine in self.registry.sub_engines:
            engine.cleanup()
        self._initialized = False

    def start_auto_tick(self) -> None:
        self.tick_manager.start_auto_tick(
            self._running,
            self.tick,
            should_continue=lambda: self._running,
        )

    def stop_auto_tick(self) -> None:
        self.tick_manager.stop_auto_tick()

    def close(self) -> None:
        self.tick_manager.stop_auto_tick()
        for gateway in self.registry.notifications.gateways.values():
            close = getattr(gateway, "close", None)
            if callable(close):
                close()

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def tick(self, delta_time: float) -> bool:
        """
        Advance the simulation by `delta_time` simulated days.

        Returns:
            True when the tick ran, False when the engine is stopped or paused

        Raises:
            ValueError: If delta_time is not positive
        """
        if delta_time <= 0:
            raise ValueError("delta_time must be positive")
        with self._lock:
            if not (self._running and self._initialized) or self._paused:
                return False
            state = self.state
            previous_clock = state.clock
            state.clock += delta_time

            for engine in self.registry.sub_engines:
                try:
                    engine.update(delta_time)
                except Exception:
                    logger.exception("%s engine update failed; continuing tick", engine.name)

            days_crossed = math.floor(state.clock + _DAY_EPSILON) - math.floor(previous_clock + _DAY_EPSILON)
            for _ in range(days_crossed):
                self.advance_day()

            state.total_play_time += delta_time
            if state.settings.auto_save:
                self._time_since_save += delta_time
                if self._time_since_save >= state.settings.auto_save_interval:
                    self._time_since_save = 0.0
                    self.save_game()
            return True

    def advance(self, ticks: int) -> int:
        """Run `ticks` ticks of the tick manager's delta; returns how many ran."""
        if ticks <= 0:
            raise ValueError("Ticks must be positive")
        delta = self.tick_manager.tick_delta
        return sum(1 for _ in range(ticks) if self.tick(delta))

    def advance_day(self) -> None:
        with self._lock:
            state = self.state
            state.game_day += 1
            stats = state.player.statistics
            stats.days_played += 1
            stats.consecutive_days += 1

            decay = state.settings.condition_decay_per_day
            for prop in state.properties:
                old_condition = prop.condition
                prop.condition = clamp(old_condition - decay, 0.0, 100.0)
                if prop.condition < MAINTENANCE_THRESHOLD <= old_condition:
                    self.registry.notifications.send_template_notification(
                        "property_maintenance",
                        self.player_id,
                        {"propertyName": prop.name},
                        data={"property_id": prop.id, "condition": prop.condition},
                    )

            logger.info("Advanced to day %d", state.game_day)
            self.bus.emit("day:advanced", {"day": state.game_day})

    def switch_phase(self, phase: GamePhase) -> None:
        with self._lock:
            old_phase = self.state.current_phase
            if old_phase == phase:
                return
            self.state.current_phase = phase
            self.bus.emit("game:phase_changed", {"old_phase": old_phase.value, "new_phase": phase.value})

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save_game(self) -> bool:
        with self._lock:
            state = self.state
            try:
                state.last_saved_at = datetime.now(timezone.utc)
                self.registry.save_store.set(self.save_slot, state.model_dump_json())
            except Exception as exc:
                logger.exception("Failed to save game %s", state.game_id)
                self.bus.emit("game:save_failed", {"error": str(exc)})
                return False
            logger.info("Game %s saved to slot %s", state.game_id, self.save_slot)
            self.bus.emit("game:saved", {"timestamp": state.last_saved_at.isoformat()})
            return True

    def load_game(self) -> GameState | None:
        try:
            blob = self.registry.save_store.get(self.save_slot)
        except Exception:
            logger.exception("Failed to read save slot %s", self.save_slot)
            return None
        if blob is None:
            return None
        try:
            return GameState.model_validate_json(blob)
        except ValidationError:
            logger.exception("Save slot %s holds an invalid game state", self.save_slot)
            return None

    def restore(self, state: GameState) -> None:
        """Replace the live game with `state`, keeping the run/pause flags."""
        self.tick_manager.stop_auto_tick()
        self.initialize(state)
        self.bus.emit("game:loaded", {"game_id": state.game_id, "day": state.game_day})

    # ------------------------------------------------------------------
    # Player
    # ------------------------------------------------------------------

    def update_player_resources(self, changes: dict[str, float]) -> PlayerResources:
        """
        Apply additive resource changes.

        Raises:
            KeyError: If a change names an unknown resource
        """
        with self._lock:
            resources = self.state.player.resources
            unknown = [key for key in changes if key not in PlayerResources.model_fields]
            if unknown:
                raise KeyError(f"Unknown resources: {', '.join(unknown)}")
            old_resources = resources.model_copy()
            for key, value in changes.items():
                setattr(resources, key, getattr(resources, key) + value)
            resources.energy = clamp(resources.energy, 0.0, 100.0)
            self.bus.emit(
                "player:resources_updated",
                {"old_resources": old_resources, "new_resources": resources.model_copy(), "changes": dict(changes)},
            )
            if changes.get("experience", 0) > 0:
                self.check_level_up()
            return resources

    def check_level_up(self) -> int:
        """Spend experience on as many levels as it covers; returns levels gained."""
        player = self.state.player
        gained = 0
        while player.resources.experience >= player.level * EXPERIENCE_PER_LEVEL:
            player.resources.experience -= player.level * EXPERIENCE_PER_LEVEL
            old_level = player.level
            player.level += 1
            player.skill_points += SKILL_POINTS_PER_LEVEL
            gained += 1
            logger.info("Player %s reached level %d", player.id, player.level)
            self.bus.emit(
                "player:level_up",
                {"old_level": old_level, "new_level": player.level, "skill_points_gained": SKILL_POINTS_PER_LEVEL},
            )
        return gained

    def _record_income(self, amount: float) -> None:
        stats = self.state.player.statistics
        stats.total_revenue += amount
        stats.total_profit = stats.total_revenue - stats.total_expenses
        self.update_player_resources({"cash": amount})

    def _record_expense(self, amount: float) -> None:
        stats = self.state.player.statistics
        stats.total_expenses += amount
        stats.total_profit = stats.total_revenue - stats.total_expenses
        self.update_player_resources({"cash": -amount})

    # ------------------------------------------------------------------
    # Properties and tenants
    # ------------------------------------------------------------------

    def add_property(self, prop: Property) -> Property:
        """
        Raises:
            ValueError: If a property with the same id already exists
        """
        with self._lock:
            Table(self.state.properties).add(prop)
            self.state.player.statistics.total_properties_owned += 1
            self.bus.emit("property:added", {"property_id": prop.id, "property": prop})
            return prop

    def add_tenant(self, tenant: Tenant, property_id: str) -> OperationResult:
        with self._lock:
            prop = Table(self.state.properties).get(property_id)
            if prop is None:
                return OperationResult.fail("Property not found")
            if not prop.has_vacancy:
                return OperationResult.fail(f"Property {prop.name} is fully occupied")
            tenants = Table(self.state.tenants)
            if tenant.id in tenants:
                return OperationResult.fail("Tenant already has a lease")

            tenant.property_id = prop.id
            tenant.move_in_day = self.state.game_day
            tenant.financials.monthly_rent = prop.monthly_rent
            tenants.add(tenant)
            prop.tenant_ids.append(tenant.id)
            self.state.player.statistics.total_tenants_managed += 1
            self.bus.emit("tenant:added", {"tenant_id": tenant.id, "property_id": prop.id, "tenant": tenant})
            return OperationResult.ok("Tenant added", tenant_id=tenant.id, property_id=prop.id)

    def remove_tenant(self, tenant_id: str) -> OperationResult:
        with self._lock:
            tenant = Table(self.state.tenants).remove(tenant_id)
            if tenant is None:
                return OperationResult.fail("Tenant not found")
            prop = Table(self.state.properties).get(tenant.property_id) if tenant.property_id else None
            if prop is not None and tenant_id in prop.tenant_ids:
                prop.tenant_ids.remove(tenant_id)
            for other in self.state.tenants:
                other.relationships = [r for r in other.relationships if r.tenant_id != tenant_id]
            self.bus.emit("tenant:removed", {"tenant_id": tenant_id, "property_id": tenant.property_id})
            return OperationResult.ok("Tenant removed", tenant_id=tenant_id)

    def file_complaint(self, tenant_id: str, subject: str) -> OperationResult:
        with self._lock:
            tenant = Table(self.state.tenants).get(tenant_id)
            if tenant is None:
                return OperationResult.fail("Tenant not found")
            complaint = Complaint(subject=subject, day=self.state.game_day)
            tenant.complaints.append(complaint)
            prop = Table(self.state.properties).get(tenant.property_id) if tenant.property_id else None
            self.bus.emit(
                "tenant:complaint_filed",
                {"tenant_id": tenant.id, "complaint_id": complaint.id, "subject": subject},
            )
            self.registry.notifications.send_template_notification(
                "tenant_complaint",
                self.player_id,
                {"tenantName": tenant.name, "propertyName": prop.name if prop else ""},
                data={"tenant_id": tenant.id, "complaint_id": complaint.id},
            )
            return OperationResult.ok("Complaint filed", complaint_id=complaint.id)

    def resolve_complaint(self, tenant_id: str, complaint_id: str) -> OperationResult:
        with self._lock:
            tenant = Table(self.state.tenants).get(tenant_id)
            if tenant is None:
                return OperationResult.fail("Tenant not found")
            complaint = next((c for c in tenant.complaints if c.id == complaint_id), None)
            if complaint is None:
                return OperationResult.fail("Complaint not found")
            if complaint.resolved:
                return OperationResult.fail("Complaint already resolved")

            complaint.resolved = True
            tenant.satisfaction = clamp(tenant.satisfaction + COMPLAINT_RESOLUTION_BONUS, 0.0, 100.0)
            stats = self.state.player.statistics
            stats.complaints_resolved += 1
            self.bus.emit("tenant:complaint_resolved", {"tenant_id": tenant.id, "complaint_id": complaint.id})
            self.registry.achievements.update_progress(
                self.player_id, ConditionType.TENANT_SATISFACTION, stats.complaints_resolved
            )
            return OperationResult.ok("Complaint resolved", complaint_id=complaint.id)

    def get_properties(self) -> list[Property]:
        with self._lock:
            return list(self.state.properties)

    def get_property(self, property_id: str) -> Property | None:
        with self._lock:
            return Table(self.state.properties).get(property_id)

    def get_tenants(self) -> list[Tenant]:
        with self._lock:
            return list(self.state.tenants)

    def get_tenant(self, tenant_id: str) -> Tenant | None:
        with self._lock:
            return Table(self.state.tenants).get(tenant_id)

    def maintenance_cost(self, prop: Property) -> float:
        return round((100.0 - prop.condition) / 100.0 * prop.monthly_rent, 2)

    def maintain_property(self, property_id: str) -> OperationResult:
        with self._lock:
            prop = Table(self.state.properties).get(property_id)
            if prop is None:
                return OperationResult.fail("Property not found")
            cost = self.maintenance_cost(prop)
            if self.state.player.resources.cash < cost:
                return OperationResult.fail(f"Insufficient funds: maintenance costs {cost:.2f}")
            if cost > 0:
                self._record_expense(cost)
            old_condition = prop.condition
            prop.condition = 100.0
            self.bus.emit(
                "property:maintained",
                {"property_id": prop.id, "old_condition": old_condition, "cost": cost},
            )
            return OperationResult.ok("Property maintained", property_id=prop.id, cost=cost)

    # ------------------------------------------------------------------
    # Market
    # ------------------------------------------------------------------

    def purchase_item(self, product_id: str, quantity: int = 1) -> OperationResult:
        with self._lock:
            market = self.registry.market
            product = market.get_product(product_id)
            if product is None:
                return OperationResult.fail("Product not found")
            if quantity <= 0:
                return OperationResult.fail("Quantity must be positive")
            if product.stock < quantity:
                return OperationResult.fail("Insufficient stock")
            cost = round(product.price * quantity, 2)
            if self.state.player.resources.cash < cost:
                return OperationResult.fail(f"Insufficient funds: need {cost:.2f}")

            result = market.purchase_product(product_id, quantity)
            if not result.success:
                return result
            self._record_expense(result.data["total_cost"])
            player = self.state.player
            item_key = result.data.get("item_key")
            if item_key:
                player.inventory.extend([item_key] * quantity)
            player.statistics.market_transactions += 1

            achievements = self.registry.achievements
            achievements.update_progress(player.id, ConditionType.MARKET_TRANSACTIONS, player.statistics.market_transactions)
            achievements.update_progress(player.id, ConditionType.ITEMS_COLLECTED, len(player.inventory))
            achievements.check_special_triggers(
                player.id, "market_master", {"transactions": player.statistics.market_transactions}
            )
            return result

    def get_products(self, **filters: Any) -> list[Product]:
        with self._lock:
            return self.registry.market.get_products(**filters)

    def get_price_history(self, product_id: str) -> list[PriceRecord]:
        """
        Raises:
            KeyError: If the product id is unknown
        """
        with self._lock:
            market = self.registry.market
            if market.get_product(product_id) is None:
                raise KeyError(product_id)
            return market.get_price_history(product_id)

    def market_statistics(self) -> dict[str, Any]:
        with self._lock:
            return self.registry.market.market_statistics()

    # ------------------------------------------------------------------
    # Exploration
    # ------------------------------------------------------------------

    def get_missions(self, status: MissionStatus | None = None) -> list[Mission]:
        with self._lock:
            return [m for m in self.state.missions if status is None or m.status == status]

    def get_mission(self, mission_id: str) -> Mission | None:
        with self._lock:
            return Table(self.state.missions).get(mission_id)

    def start_mission(self, mission_id: str) -> OperationResult:
        with self._lock:
            return self.registry.exploration.start_mission(mission_id)

    def complete_mission(self, mission_id: str) -> OperationResult:
        with self._lock:
            return self.registry.exploration.complete_mission(mission_id)

    def cancel_mission(self, mission_id: str) -> OperationResult:
        with self._lock:
            return self.registry.exploration.cancel_mission(mission_id)

    # ------------------------------------------------------------------
    # Achievements
    # ------------------------------------------------------------------

    def claim_reward(self, achievement_id: str) -> ClaimResult:
        """
        Claim and apply an achievement reward once.

        Raises:
            KeyError: If the achievement id is unknown
        """
        with self._lock:
            result = self.registry.achievements.claim_reward(self.player_id, achievement_id)
            if not result.success or result.rewards is None:
                return result
            rewards = result.rewards
            player = self.state.player
            if rewards.money:
                self._record_income(rewards.money)
            player.inventory.extend(rewards.items)
            if rewards.title and rewards.title not in player.titles:
                player.titles.append(rewards.title)
            if rewards.badge and rewards.badge not in player.badges:
                player.badges.append(rewards.badge)
            player.unlocks.extend(u for u in rewards.unlocks if u not in player.unlocks)
            if rewards.experience:
                self.update_player_resources({"experience": rewards.experience})
            self.bus.emit("achievement:claimed", {"player_id": player.id, "achievement_id": achievement_id})
            return result

    def get_player_achievements(
        self,
        category: AchievementCategory | None = None,
        status: AchievementStatus | None = None,
        include_hidden: bool = False,
    ) -> list[PlayerAchievement]:
        with self._lock:
            return self.registry.achievements.get_player_achievements(self.player_id, category, status, include_hidden)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------
    # Every notification read and change holds the advance lock.

    def _require_notification(self, notification_id: str) -> Notification:
        notification = self.registry.notifications.get_notification(notification_id)
        if notification is None:
            raise KeyError(notification_id)
        return notification

    def get_notifications(
        self,
        status: NotificationStatus | None = None,
        notification_type: NotificationType | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Notification]:
        with self._lock:
            return self.registry.notifications.get_player_notifications(
                self.player_id, status, notification_type, limit, offset
            )

    def get_unread_count(self) -> int:
        with self._lock:
            return self.registry.notifications.get_unread_count(self.player_id)

    def get_notification_settings(self) -> NotificationSettings:
        with self._lock:
            return self.registry.notifications.get_settings(self.player_id)

    def update_notification_settings(self, changes: dict[str, Any]) -> NotificationSettings:
        """
        Raises:
            ValueError: If the merged settings fail validation
        """
        with self._lock:
            return self.registry.notifications.update_settings(self.player_id, changes)

    def mark_notification_read(self, notification_id: str) -> bool:
        """
        Returns:
            True when the notification changed from unread to read

        Raises:
            KeyError: If the notification id is unknown
        """
        with self._lock:
            self._require_notification(notification_id)
            return self.registry.notifications.mark_as_read(notification_id)

    def mark_all_notifications_read(self) -> int:
        with self._lock:
            return self.registry.notifications.mark_all_as_read(self.player_id)

    def archive_notification(self, notification_id: str) -> bool:
        with self._lock:
            self._require_notification(notification_id)
            return self.registry.notifications.archive_notification(notification_id)

    def delete_notification(self, notification_id: str) -> bool:
        with self._lock:
            self._require_notification(notification_id)
            return self.registry.notifications.delete_notification(notification_id)

    def execute_notification_action(
        self, notification_id: str, action_id: str, data: dict[str, Any] | None = None
    ) -> OperationResult:
        with self._lock:
            self._require_notification(notification_id)
            return self.registry.notifications.execute_action(notification_id, action_id, data)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def _listen(self, name: str, handler: Callable[[dict], None]) -> None:
        self.bus.on(name, handler)
        self._listeners.append((name, handler))

    def _register_listeners(self) -> None:
        self._listen("tenant:rent_paid", self._on_rent_paid)
        self._listen("tenant:rent_missed", self._on_rent_missed)
        self._listen("tenant:added", self._on_tenant_added)
        self._listen("tenant:satisfaction_changed", self._on_satisfaction_changed)
        self._listen("property:added", self._on_property_added)
        self._listen("exploration:completed", self._on_exploration_completed)
        self._listen("market:event_occurred", self._on_market_event)
        self._listen("achievement:completed", self._on_achievement_completed)
        self._listen("player:level_up", self._on_level_up)
        self._listen("day:advanced", self._on_day_advanced)

    def _on_rent_paid(self, payload: dict) -> None:
        amount = payload["amount"]
        tenant = Table(self.state.tenants).get(payload["tenant_id"])
        if tenant is not None:
            tenant.financials.total_paid += amount
        self._record_income(amount)
        self.registry.achievements.update_progress(
            self.player_id, ConditionType.MONEY_EARNED, self.state.player.statistics.total_revenue
        )

    def _on_rent_missed(self, payload: dict) -> None:
        tenant = Table(self.state.tenants).get(payload["tenant_id"])
        name = tenant.name if tenant else payload["tenant_id"]
        self.registry.notifications.send_notification(
            self.player_id,
            NotificationType.TENANT,
            "Rent missed",
            f"Tenant {name} missed a rent payment of {payload['amount']:.2f}",
            priority=NotificationPriority.HIGH,
            data={"tenant_id": payload["tenant_id"], "amount": payload["amount"]},
            icon="alert-triangle",
        )

    def _on_tenant_added(self, payload: dict) -> None:
        self.registry.achievements.update_progress(
            self.player_id, ConditionType.TENANTS_MANAGED, self.state.player.statistics.total_tenants_managed
        )

    def _on_satisfaction_changed(self, payload: dict) -> None:
        if payload["old_value"] < HAPPY_TENANT_THRESHOLD <= payload["new_value"]:
            tenant = Table(self.state.tenants).get(payload["tenant_id"])
            if tenant is not None:
                self.registry.notifications.send_template_notification(
                    "tenant_satisfaction", self.player_id, {"tenantName": tenant.name}, data={"tenant_id": tenant.id}
                )

    def _on_property_added(self, payload: dict) -> None:
        achievements = self.registry.achievements
        total_value = sum(p.current_value for p in self.state.properties)
        achievements.update_progress(self.player_id, ConditionType.PROPERTIES_OWNED, len(self.state.properties))
        achievements.update_progress(self.player_id, ConditionType.PROPERTY_VALUE, total_value)
        achievements.check_special_triggers(self.player_id, "property_empire", {"total_value": total_value})

    def _on_exploration_completed(self, payload: dict) -> None:
        result: MissionResult = payload["result"]
        mission = payload["mission"]
        player = self.state.player
        stats = player.statistics
        rewards = result.rewards

        if rewards.money:
            self._record_income(rewards.money)
        player.inventory.extend(rewards.items)
        rare_found = rewards.items.count(RARE_ITEM)
        if result.success:
            stats.missions_completed += 1
            if rewards.money >= mission.rewards.money:
                stats.perfect_missions += 1
        stats.rare_items_found += rare_found
        if rewards.experience:
            self.update_player_resources({"experience": rewards.experience})

        achievements = self.registry.achievements
        achievements.update_progress(player.id, ConditionType.MISSIONS_COMPLETED, stats.missions_completed)
        achievements.update_progress(player.id, ConditionType.ITEMS_COLLECTED, len(player.inventory))
        achievements.update_progress(player.id, ConditionType.PERFECT_MISSIONS, stats.perfect_missions)
        achievements.update_progress(player.id, ConditionType.RARE_ITEMS_FOUND, stats.rare_items_found)
        if rare_found:
            achievements.check_special_triggers(player.id, "secret_room_discovered", {})

        self.registry.notifications.send_template_notification(
            "mission_completed" if result.success else "mission_failed",
            player.id,
            {"missionName": mission.name},
            data={"mission_id": mission.id},
        )

    def _on_market_event(self, payload: dict) -> None:
        if payload["event_type"] not in OPPORTUNITY_EVENT_TYPES:
            return
        self.registry.notifications.send_template_notification(
            "market_opportunity",
            self.player_id,
            {"opportunityName": payload["description"]},
            notification_type=NotificationType.MARKET,
            data={"event_id": payload["event_id"], "affected_categories": payload["affected_categories"]},
        )

    def _on_achievement_completed(self, payload: dict) -> None:
        player = self.state.player
        if payload["player_id"] == player.id and payload["achievement_id"] not in player.achievements:
            player.achievements.append(payload["achievement_id"])
        self.registry.notifications.send_template_notification(
            "achievement_unlocked",
            payload["player_id"],
            {"achievementName": payload["achievement"].name},
            data={"achievement_id": payload["achievement_id"]},
        )

    def _on_level_up(self, payload: dict) -> None:
        self.registry.achievements.update_progress(self.player_id, ConditionType.LEVEL_REACHED, payload["new_level"])
        self.registry.notifications.send_template_notification(
            "level_up", self.player_id, {"level": payload["new_level"]}, data=dict(payload)
        )

    def _on_day_advanced(self, payload: dict) -> None:
        stats = self.state.player.statistics
        achievements = self.registry.achievements
        achievements.update_progress(self.player_id, ConditionType.DAYS_PLAYED, stats.days_played)
        achievements.update_progress(self.player_id, ConditionType.CONSECUTIVE_DAYS, stats.consecutive_days)
        self.registry.notifications.cleanup_expired()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def summary(self) -> dict[str, Any]:
        state = self.state
        return {
            "game_id": state.game_id,
            "game_day": state.game_day,
            "clock": state.clock,
            "sim_time": self.sim_time(),
            "phase": state.current_phase.value,
            "is_initialized": self._initialized,
            "is_running": self._running,
            "is_paused": self._paused,
            "auto_tick": self.tick_manager.is_auto_ticking(),
            "player": state.player.model_dump(mode="json"),
        }

"""
Game state models.

Pydantic models for the single root aggregate (`GameState`) and every entity
nested inside it. The whole tree serializes to one JSON document per save
slot via `model_dump_json` / `model_validate_json`.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

SIM_EPOCH = datetime(2027, 1, 1, tzinfo=timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class GamePhase(str, Enum):
    BUILDING = "building"
    OPERATING = "operating"
    EXPLORING = "exploring"
    COMPETING = "competing"
    EXPANDING = "expanding"


class MissionStatus(str, Enum):
    AVAILABLE = "available"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"


TERMINAL_MISSION_STATUSES = frozenset(
    {MissionStatus.COMPLETED, MissionStatus.FAILED, MissionStatus.EXPIRED}
)


class MissionType(str, Enum):
    URBAN_EXPLORATION = "urban_exploration"
    MARKET_RESEARCH = "market_research"
    PROPERTY_SCOUTING = "property_scouting"
    TENANT_RECRUITMENT = "tenant_recruitment"
    RESOURCE_GATHERING = "resource_gathering"
    BUSINESS_NETWORKING = "business_networking"
    INVESTMENT_OPPORTUNITY = "investment_opportunity"
    EMERGENCY_RESPONSE = "emergency_response"


class DifficultyLevel(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"
    EXTREME = "extreme"
    LEGENDARY = "legendary"


class AchievementStatus(str, Enum):
    LOCKED = "locked"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CLAIMED = "claimed"


class ConditionType(str, Enum):
    MONEY_EARNED = "money_earned"
    PROPERTIES_OWNED = "properties_owned"
    TENANTS_MANAGED = "tenants_managed"
    MISSIONS_COMPLETED = "missions_completed"
    LEVEL_REACHED = "level_reached"
    DAYS_PLAYED = "days_played"
    ITEMS_COLLECTED = "items_collected"
    UPGRADES_PURCHASED = "upgrades_purchased"
    MARKET_TRANSACTIONS = "market_transactions"
    EXPLORATION_DISTANCE = "exploration_distance"
    TENANT_SATISFACTION = "tenant_satisfaction"
    PROPERTY_VALUE = "property_value"
    CONSECUTIVE_DAYS = "consecutive_days"
    PERFECT_MISSIONS = "perfect_missions"
    RARE_ITEMS_FOUND = "rare_items_found"


class AchievementCategory(str, Enum):
    PROPERTY = "property"
    TENANT = "tenant"
    WEALTH = "wealth"
    EXPLORATION = "exploration"
    COLLECTION = "collection"
    CHALLENGE = "challenge"
    SOCIAL = "social"
    PROGRESSION = "progression"


class AchievementTier(str, Enum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"
    LEGENDARY = "legendary"


class NotificationType(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    ACHIEVEMENT = "achievement"
    MISSION = "mission"
    TENANT = "tenant"
    PROPERTY = "property"
    MARKET = "market"
    SYSTEM = "system"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class NotificationStatus(str, Enum):
    UNREAD = "unread"
    READ = "read"
    ARCHIVED = "archived"
    DELETED = "deleted"


class NotificationChannel(str, Enum):
    IN_GAME = "in_game"
    PUSH = "push"
    EMAIL = "email"
    SMS = "sms"


class OperationResult(BaseModel):
    """Outcome of a player-facing operation that can fail validation."""

    success: bool
    message: str
    data: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def ok(cls, message: str, **data: Any) -> "OperationResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, message: str, **data: Any) -> "OperationResult":
        return cls(success=False, message=message, data=data)


# --- Player -----------------------------------------------------------------


class PlayerResources(BaseModel):
    cash: float = 0.0
    reputation: float = 0.0
    experience: float = 0.0
    energy: float = 100.0
    influence: float = 0.0


class PlayerStatistics(BaseModel):
    total_properties_owned: int = 0
    total_tenants_managed: int = 0
    total_revenue: float = 0.0
    total_expenses: float = 0.0
    total_profit: float = 0.0
    exploration_missions: int = 0
    missions_completed: int = 0
    perfect_missions: int = 0
    rare_items_found: int = 0
    market_transactions: int = 0
    complaints_resolved: int = 0
    days_played: int = 0
    consecutive_days: int = 0


class PlayerProfile(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str = "Player"
    level: int = Field(default=1, ge=1)
    skill_points: int = 0
    resources: PlayerResources = Field(default_factory=PlayerResources)
    statistics: PlayerStatistics = Field(default_factory=PlayerStatistics)
    inventory: list[str] = Field(default_factory=list)
    achievements: list[str] = Field(default_factory=list)
    titles: list[str] = Field(default_factory=list)
    badges: list[str] = Field(default_factory=list)
    unlocks: list[str] = Field(default_factory=list)


# --- Properties and tenants --------------------------------------------------


class Property(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    area: float = Field(default=50.0, gt=0)
    condition: float = Field(default=100.0, ge=0, le=100)
    monthly_rent: float = Field(default=1000.0, ge=0)
    current_value: float = Field(default=100000.0, ge=0)
    max_tenants: int = Field(default=1, ge=1)
    tenant_ids: list[str] = Field(default_factory=list)

    @property
    def has_vacancy(self) -> bool:
        return len(self.tenant_ids) < self.max_tenants


class LifestylePattern(BaseModel):
    noise_level: int = Field(default=5, ge=1, le=10)
    cleanliness_level: int = Field(default=5, ge=1, le=10)
    social_activity: int = Field(default=5, ge=1, le=10)


class TenantPreferences(BaseModel):
    quiet_area: bool = False
    needs_parking: bool = False
    pet_friendly: bool = False
    smoking_allowed: bool = False


class PaymentRecord(BaseModel):
    day: int
    amount: float
    status: str


class TenantFinancials(BaseModel):
    monthly_income: float = Field(default=3000.0, gt=0)
    monthly_rent: float = Field(default=1000.0, ge=0)
    credit_score: int = Field(default=650, ge=300, le=850)
    total_paid: float = 0.0
    outstanding_balance: float = 0.0
    payment_history: list[PaymentRecord] = Field(default_factory=list)


class TenantRelationship(BaseModel):
    tenant_id: str
    strength: float = Field(default=0.0, ge=-100, le=100)
    interactions: int = 0
    relationship_type: str = "neutral"
    last_interaction_day: int | None = None


class Complaint(BaseModel):
    id: str = Field(default_factory=new_id)
    subject: str
    day: int = 0
    resolved: bool = False


class Tenant(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    personality_traits: list[str] = Field(default_factory=list)
    lifestyle: LifestylePattern = Field(default_factory=LifestylePattern)
    preferences: TenantPreferences = Field(default_factory=TenantPreferences)
    satisfaction: float = Field(default=70.0, ge=0, le=100)
    financials: TenantFinancials = Field(default_factory=TenantFinancials)
    relationships: list[TenantRelationship] = Field(default_factory=list)
    complaints: list[Complaint] = Field(default_factory=list)
    property_id: str | None = None
    move_in_day: int = 0

    @property
    def unresolved_complaints(self) -> int:
        return sum(1 for complaint in self.complaints if not complaint.resolved)


# --- Market ------------------------------------------------------------------


class Vendor(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    category: str
    relationship: float = Field(default=50.0, ge=0, le=100)


class Product(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    vendor_id: str | None = None
    category: str
    base_price: float = Field(gt=0)
    price: float = Field(gt=0)
    stock: int = Field(default=50, ge=0)
    max_stock: int = Field(default=100, gt=0)
    volatility: float = Field(default=0.5, ge=0, le=1)
    popularity: int = 0
    item_key: str | None = None


class PriceRecord(BaseModel):
    product_id: str
    day: int
    price: float
    factors: list[str] = Field(default_factory=list)


class MarketImpact(BaseModel):
    demand_change: float = 0.0
    price_change: float = 0.0
    supply_change: float = 0.0


class MarketEvent(BaseModel):
    id: str = Field(default_factory=new_id)
    event_type: str
    description: str
    day: int = 0
    affected_products: list[str] = Field(default_factory=list)
    affected_categories: list[str] = Field(default_factory=list)
    affected_vendors: list[str] = Field(default_factory=list)
    impact: MarketImpact = Field(default_factory=MarketImpact)


class MarketTrend(BaseModel):
    id: str = Field(default_factory=new_id)
    trend_type: str
    description: str
    strength: float
    duration: int = 3
    remaining_days: int = 3
    start_day: int = 0
    affected_categories: list[str] = Field(default_factory=list)


class MarketIndexes(BaseModel):
    price_index: float = Field(default=50.0, ge=0, le=100)
    demand_index: float = Field(default=50.0, ge=0, le=100)
    supply_index: float = Field(default=50.0, ge=0, le=100)
    overall_trend: str = "stable"


# --- Exploration -------------------------------------------------------------


class MissionRisk(BaseModel):
    type: str
    description: str
    probability: float = Field(ge=0, le=1)
    impact: str = "low"


class MissionRewards(BaseModel):
    money: float = 0.0
    experience: float = 0.0
    items: list[str] = Field(default_factory=list)
    properties: list[str] = Field(default_factory=list)


class MissionRequirements(BaseModel):
    min_level: int = 1
    min_money: float = 0.0
    required_equipment: list[str] = Field(default_factory=list)
    required_skills: list[str] = Field(default_factory=list)


class MissionResult(BaseModel):
    success: bool
    success_rate: float
    rewards: MissionRewards = Field(default_factory=MissionRewards)
    events: list[str] = Field(default_factory=list)
    duration: float = 0.0
    completed_at: float = 0.0


class Mission(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    type: MissionType = MissionType.URBAN_EXPLORATION
    difficulty: DifficultyLevel = DifficultyLevel.EASY
    duration: float = Field(default=30.0, ge=0)
    success_rate: float = Field(default=0.7, gt=0, lt=1)
    rewards: MissionRewards = Field(default_factory=MissionRewards)
    risks: list[MissionRisk] = Field(default_factory=list)
    requirements: MissionRequirements = Field(default_factory=MissionRequirements)
    status: MissionStatus = MissionStatus.AVAILABLE
    created_at: float = 0.0
    expires_at: float | None = None
    started_at: float | None = None
    estimated_end_at: float | None = None
    completed_at: float | None = None
    result: MissionResult | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_MISSION_STATUSES


class ExplorationEvent(BaseModel):
    id: str = Field(default_factory=new_id)
    event_type: str
    mission_id: str
    player_id: str
    at: float
    description: str


class ExplorationStatistics(BaseModel):
    total_missions: int = 0
    completed_missions: int = 0
    failed_missions: int = 0
    success_rate: float = 0.0
    total_money: float = 0.0
    total_experience: float = 0.0
    total_items: int = 0
    average_duration: float = 0.0
    favorite_type: MissionType | None = None


# --- Achievements ------------------------------------------------------------


class AchievementCondition(BaseModel):
    type: ConditionType
    target: float = Field(gt=0)
    description: str = ""


class AchievementReward(BaseModel):
    money: float = 0.0
    experience: float = 0.0
    items: list[str] = Field(default_factory=list)
    title: str | None = None
    badge: str | None = None
    unlocks: list[str] = Field(default_factory=list)


class Achievement(BaseModel):
    id: str
    name: str
    description: str = ""
    category: AchievementCategory
    tier: AchievementTier = AchievementTier.BRONZE
    conditions: list[AchievementCondition]
    rewards: AchievementReward = Field(default_factory=AchievementReward)
    is_hidden: bool = False
    icon: str | None = None

    @field_validator("conditions")
    @classmethod
    def _ensure_conditions(cls, value: list[AchievementCondition]) -> list[AchievementCondition]:
        if not value:
            raise ValueError("Achievement must have at least one condition")
        return value


class ConditionProgress(BaseModel):
    type: ConditionType
    target: float
    current: float = 0.0

    @property
    def ratio(self) -> float:
        return clamp(self.current / self.target, 0.0, 1.0)

    @property
    def met(self) -> bool:
        return self.current >= self.target


class AchievementProgress(BaseModel):
    achievement_id: str
    player_id: str
    status: AchievementStatus = AchievementStatus.LOCKED
    progress: float = Field(default=0.0, ge=0, le=1)
    conditions: list[ConditionProgress] = Field(default_factory=list)
    started_at: float = 0.0
    completed_at: float | None = None
    claimed_at: float | None = None

    @property
    def progress_percent(self) -> float:
        return round(self.progress * 100, 2)


# --- Notifications -----------------------------------------------------------


class NotificationAction(BaseModel):
    id: str = Field(default_factory=new_id)
    label: str
    action: str
    style: str = "default"
    data: dict[str, Any] | None = None


class Notification(BaseModel):
    id: str = Field(default_factory=new_id)
    player_id: str
    type: NotificationType
    priority: NotificationPriority = NotificationPriority.MEDIUM
    title: str
    message: str
    data: dict[str, Any] | None = None
    status: NotificationStatus = NotificationStatus.UNREAD
    channels: list[NotificationChannel] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: SIM_EPOCH)
    read_at: datetime | None = None
    expires_at: datetime | None = None
    actions: list[NotificationAction] = Field(default_factory=list)
    icon: str | None = None
    sound: str | None = None


def _default_channels() -> dict[NotificationChannel, bool]:
    return {
        NotificationChannel.IN_GAME: True,
        NotificationChannel.PUSH: True,
        NotificationChannel.EMAIL: False,
        NotificationChannel.SMS: False,
    }


class TypeSettings(BaseModel):
    enabled: bool = True
    channels: list[NotificationChannel] = Field(default_factory=lambda: [NotificationChannel.IN_GAME])
    priority: NotificationPriority = NotificationPriority.MEDIUM


class QuietHours(BaseModel):
    enabled: bool = False
    start: str = "22:00"
    end: str = "08:00"

    @field_validator("start", "end")
    @classmethod
    def _validate_hhmm(cls, value: str) -> str:
        hours, _, minutes = value.partition(":")
        if not (hours.isdigit() and minutes.isdigit() and 0 <= int(hours) < 24 and 0 <= int(minutes) < 60):
            raise ValueError("Quiet hours must use HH:MM")
        return f"{int(hours):02d}:{int(minutes):02d}"


class AutoArchive(BaseModel):
    enabled: bool = True
    days: int = Field(default=30, ge=1)


class NotificationSettings(BaseModel):
    player_id: str
    channels: dict[NotificationChannel, bool] = Field(default_factory=_default_channels)
    types: dict[NotificationType, TypeSettings] = Field(default_factory=dict)
    quiet_hours: QuietHours = Field(default_factory=QuietHours)
    max_notifications: int = Field(default=100, ge=1)
    auto_archive: AutoArchive = Field(default_factory=AutoArchive)


# --- Root aggregate ----------------------------------------------------------


class GameSettings(BaseModel):
    difficulty: str = "normal"
    auto_save: bool = True
    auto_save_interval: float = Field(default=1.0, gt=0)
    notifications_enabled: bool = True
    language: str = "en"
    notification_channels: dict[NotificationChannel, bool] = Field(default_factory=_default_channels)
    condition_decay_per_day: float = Field(default=0.5, ge=0)
    ticks_per_day: int = Field(default=24, ge=1)

    @field_validator("difficulty")
    @classmethod
    def _validate_difficulty(cls, value: str) -> str:
        if value not in {"easy", "normal", "hard", "expert"}:
            raise ValueError("difficulty must be one of easy, normal, hard, expert")
        return value


class GameState(BaseModel):
    game_id: str = Field(default_factory=new_id)
    version: str = "1.0.0"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    last_saved_at: datetime | None = None

    current_phase: GamePhase = GamePhase.BUILDING
    game_day: int = 1
    clock: float = 0.0
    total_play_time: float = 0.0
    start_date: datetime = SIM_EPOCH

    player: PlayerProfile = Field(default_factory=PlayerProfile)

    properties: list[Property] = Field(default_factory=list)
    tenants: list[Tenant] = Field(default_factory=list)

    vendors: list[Vendor] = Field(default_factory=list)
    products: list[Product] = Field(default_factory=list)
    price_history: list[PriceRecord] = Field(default_factory=list)
    market_events: list[MarketEvent] = Field(default_factory=list)
    market_trends: list[MarketTrend] = Field(default_factory=list)
    market_indexes: MarketIndexes = Field(default_factory=MarketIndexes)

    missions: list[Mission] = Field(default_factory=list)
    exploration_history: list[ExplorationEvent] = Field(default_factory=list)
    exploration_statistics: ExplorationStatistics = Field(default_factory=ExplorationStatistics)

    achievement_progress: dict[str, list[AchievementProgress]] = Field(default_factory=dict)

    notifications: list[Notification] = Field(default_factory=list)
    notification_settings: dict[str, NotificationSettings] = Field(default_factory=dict)

    settings: GameSettings = Field(default_factory=GameSettings)

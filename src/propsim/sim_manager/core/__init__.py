"""
Core simulation modules.

This package contains the building blocks of the propsim engine: the
event bus and scheduler that drive every tick, the game state model, and
the domain engines plugged into the orchestrator.

Modules:
    event_bus: Synchronous publish/subscribe with a recursion guard
    scheduler: Delayed one-shot tasks on simulated time
    game_state: Pydantic models for the whole persisted game
    store: Id-keyed table view over state lists
    tick_manager: Simulated clock conversion and the auto-tick thread
    save_store: Key/value persistence for serialized game state
    tenant_engine: Satisfaction, rent and neighbour interactions
    market_engine: Prices, market events and trends
    exploration_engine: Mission generation and lifecycle
    achievement_engine: Achievement progress and reward claims
    notification_engine: Notification settings, templates and delivery
"""

__version__ = "0.1.0"

from .event_bus import EventBus
from .scheduler import Scheduler, ScheduledTask
from .store import Table
from .tick_manager import TickManager
from .save_store import SaveStore, InMemorySaveStore, SqliteSaveStore, DEFAULT_SAVE_SLOT
from .sub_engine import SubEngine
from .tenant_engine import TenantEngine
from .market_engine import MarketEngine, seed_market
from .exploration_engine import ExplorationEngine
from .achievement_engine import AchievementEngine, default_achievements
from .notification_engine import NotificationEngine

__all__ = [
    "EventBus",
    "Scheduler",
    "ScheduledTask",
    "Table",
    "TickManager",
    "SaveStore",
    "InMemorySaveStore",
    "SqliteSaveStore",
    "DEFAULT_SAVE_SLOT",
    "SubEngine",
    "TenantEngine",
    "MarketEngine",
    "seed_market",
    "ExplorationEngine",
    "AchievementEngine",
    "default_achievements",
    "NotificationEngine",
]

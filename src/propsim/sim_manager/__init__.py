from .app import create_app
from .engine import GameEngine, ServiceRegistry, new_game_state

__all__ = ["create_app", "GameEngine", "ServiceRegistry", "new_game_state"]

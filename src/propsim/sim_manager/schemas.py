from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from .core.game_state import (
    GamePhase,
    LifestylePattern,
    TenantPreferences,
)


class EngineState(BaseModel):
    game_id: str
    game_day: int
    clock: float
    sim_time: str
    phase: GamePhase
    is_initialized: bool = False
    is_running: bool = False
    is_paused: bool = False
    auto_tick: bool = False
    player: dict[str, Any] = Field(default_factory=dict)


class EngineControlResponse(EngineState):
    message: str


class NewGameRequest(BaseModel):
    player_name: str = Field(default="Player", min_length=1, max_length=64)
    starting_cash: float = Field(default=50000.0, ge=0)
    difficulty: str = "normal"


class AdvanceRequest(BaseModel):
    ticks: int = Field(..., gt=0, le=1000)


class AdvanceResult(BaseModel):
    ticks_advanced: int
    game_day: int
    sim_time: str


class TickIntervalRequest(BaseModel):
    interval: float = Field(..., ge=0.0, le=60.0)


class PhaseRequest(BaseModel):
    phase: GamePhase


class SaveResponse(BaseModel):
    success: bool
    message: str


class PropertyCreate(BaseModel):
    name: str
    area: float = Field(default=50.0, gt=0)
    condition: float = Field(default=100.0, ge=0, le=100)
    monthly_rent: float = Field(default=1000.0, ge=0)
    current_value: float = Field(default=100000.0, ge=0)
    max_tenants: int = Field(default=1, ge=1)


class TenantCreate(BaseModel):
    name: str
    property_id: str
    monthly_income: float = Field(..., gt=0)
    credit_score: int = Field(default=650, ge=300, le=850)
    personality_traits: list[str] = Field(default_factory=list)
    lifestyle: LifestylePattern = Field(default_factory=LifestylePattern)
    preferences: TenantPreferences = Field(default_factory=TenantPreferences)


class ComplaintCreate(BaseModel):
    subject: str = Field(..., min_length=1, max_length=256)


class PurchaseRequest(BaseModel):
    product_id: str
    quantity: int = Field(default=1, gt=0)


class ActionRequest(BaseModel):
    data: dict[str, Any] | None = None

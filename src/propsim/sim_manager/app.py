from __future__ import annotations

import logging
import os
from typing import Any

import uvicorn
from dotenv import load_dotenv
from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request, status

from propsim.common.templates import get_current_template_manager

from .core.achievement_engine import ClaimResult, PlayerAchievement
from .core.game_state import (
    AchievementCategory,
    AchievementStatus,
    GameSettings,
    Mission,
    MissionStatus,
    Notification,
    NotificationChannel,
    NotificationSettings,
    NotificationStatus,
    NotificationType,
    OperationResult,
    PriceRecord,
    Product,
    Property,
    Tenant,
    TenantFinancials,
)
from .core.save_store import DEFAULT_SAVE_SLOT, SqliteSaveStore
from .core.tick_manager import TickManager
from .engine import GameEngine, ServiceRegistry, new_game_state
from .gateways import ChannelGateway, HttpEmailGateway, HttpPushGateway, HttpSmsGateway
from .schemas import (
    ActionRequest,
    AdvanceRequest,
    AdvanceResult,
    ComplaintCreate,
    EngineControlResponse,
    EngineState,
    NewGameRequest,
    PhaseRequest,
    PropertyCreate,
    PurchaseRequest,
    SaveResponse,
    TenantCreate,
    TickIntervalRequest,
)

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

tags_metadata = [
    {"name": "Game Control", "description": "Lifecycle, ticking, phases, save and load"},
    {"name": "Properties", "description": "Property portfolio and maintenance"},
    {"name": "Tenants", "description": "Leases and complaints"},
    {"name": "Market", "description": "Products, price history and purchases"},
    {"name": "Exploration", "description": "Mission offers and lifecycle"},
    {"name": "Achievements", "description": "Achievement progress and reward claims"},
    {"name": "Notifications", "description": "Player notifications and delivery settings"},
]


def _env_int(name: str) -> int | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", name, raw)
        return None


def _build_gateways() -> dict[NotificationChannel, ChannelGateway]:
    gateways: dict[NotificationChannel, ChannelGateway] = {}
    push_url = os.getenv("PROPSIM_PUSH_URL")
    email_url = os.getenv("PROPSIM_EMAIL_URL")
    sms_url = os.getenv("PROPSIM_SMS_URL")
    if push_url:
        gateways[NotificationChannel.PUSH] = HttpPushGateway(base_url=push_url)
    if email_url:
        gateways[NotificationChannel.EMAIL] = HttpEmailGateway(base_url=email_url)
    if sms_url:
        gateways[NotificationChannel.SMS] = HttpSmsGateway(base_url=sms_url)
    return gateways


def _build_default_engine() -> GameEngine:
    load_dotenv()
    try:
        tick_interval_seconds = float(os.getenv("PROPSIM_TICK_INTERVAL", "1.0"))
    except ValueError:
        tick_interval_seconds = 1.0
    ticks_per_day = _env_int("PROPSIM_TICKS_PER_DAY") or 24
    templates = get_current_template_manager()

    registry = ServiceRegistry.create(
        seed=_env_int("PROPSIM_SEED"),
        save_store=SqliteSaveStore(),
        tick_manager=TickManager(ticks_per_day=ticks_per_day, tick_interval_seconds=tick_interval_seconds),
        gateways=_build_gateways(),
        templates=templates,
    )
    engine = GameEngine(registry, save_slot=os.getenv("PROPSIM_SAVE_SLOT", DEFAULT_SAVE_SLOT))
    state = engine.load_game()
    if state is None:
        state = new_game_state(settings=GameSettings(ticks_per_day=ticks_per_day, language=templates.locale))
    engine.initialize(state)
    return engine


def _engine_state(engine: GameEngine) -> EngineState:
    if not engine.has_state:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No game loaded")
    return EngineState(**engine.summary())


def _control_response(engine: GameEngine, message: str) -> EngineControlResponse:
    return EngineControlResponse(**engine.summary(), message=message)


def _require(item: Any, what: str) -> Any:
    if item is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{what} not found")
    return item


def _check(result: OperationResult) -> OperationResult:
    if not result.success:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.message)
    return result


def create_app(engine: GameEngine | None = None) -> FastAPI:
    app = FastAPI(
        title="propsim Simulation Manager",
        version="0.1.0",
        openapi_tags=tags_metadata,
        description="Property management simulation engine control surface",
    )
    app.state.engine = engine or _build_default_engine()

    @app.on_event("shutdown")
    def _shutdown() -> None:
        engine_obj = getattr(app.state, "engine", None)
        if engine_obj is not None:
            engine_obj.close()

    def get_engine(request: Request) -> GameEngine:
        return request.app.state.engine

    # --- Game control ---------------------------------------------------

    @app.get(f"{API_PREFIX}/game", response_model=EngineState, tags=["Game Control"])
    def get_state(engine: GameEngine = Depends(get_engine)) -> EngineState:
        return _engine_state(engine)

    @app.post(
        f"{API_PREFIX}/game/new",
        response_model=EngineControlResponse,
        status_code=status.HTTP_201_CREATED,
        tags=["Game Control"],
    )
    def new_game(
        payload: NewGameRequest | None = Body(default=None),
        engine: GameEngine = Depends(get_engine),
    ) -> EngineControlResponse:
        payload = payload or NewGameRequest()
        try:
            settings = GameSettings(
                difficulty=payload.difficulty,
                ticks_per_day=engine.tick_manager.ticks_per_day,
                language=engine.language,
            )
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        engine.stop()
        engine.restore(new_game_state(payload.player_name, payload.starting_cash, settings))
        return _control_response(engine, "New game created")

    @app.post(f"{API_PREFIX}/game/start", response_model=EngineControlResponse, tags=["Game Control"])
    def start_game(engine: GameEngine = Depends(get_engine)) -> EngineControlResponse:
        try:
            engine.start()
        except RuntimeError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        return _control_response(engine, "Game started")

    @app.post(f"{API_PREFIX}/game/pause", response_model=EngineControlResponse, tags=["Game Control"])
    def pause_game(engine: GameEngine = Depends(get_engine)) -> EngineControlResponse:
        engine.pause()
        return _control_response(engine, "Game paused")

    @app.post(f"{API_PREFIX}/game/resume", response_model=EngineControlResponse, tags=["Game Control"])
    def resume_game(engine: GameEngine = Depends(get_engine)) -> EngineControlResponse:
        engine.resume()
        return _control_response(engine, "Game resumed")

    @app.post(f"{API_PREFIX}/game/stop", response_model=EngineControlResponse, tags=["Game Control"])
    def stop_game(engine: GameEngine = Depends(get_engine)) -> EngineControlResponse:
        engine.stop()
        return _control_response(engine, "Game stopped")

    @app.post(f"{API_PREFIX}/game/advance", response_model=AdvanceResult, tags=["Game Control"])
    def advance_game(payload: AdvanceRequest, engine: GameEngine = Depends(get_engine)) -> AdvanceResult:
        if not engine.is_running:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Game is not running; call start first")
        advanced = engine.advance(payload.ticks)
        return AdvanceResult(ticks_advanced=advanced, game_day=engine.state.game_day, sim_time=engine.sim_time())

    @app.post(f"{API_PREFIX}/game/ticks/start", response_model=EngineControlResponse, tags=["Game Control"])
    def start_ticks(engine: GameEngine = Depends(get_engine)) -> EngineControlResponse:
        try:
            engine.start_auto_tick()
        except RuntimeError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        return _control_response(engine, "Automatic ticking enabled")

    @app.post(f"{API_PREFIX}/game/ticks/stop", response_model=EngineControlResponse, tags=["Game Control"])
    def stop_ticks(engine: GameEngine = Depends(get_engine)) -> EngineControlResponse:
        engine.stop_auto_tick()
        return _control_response(engine, "Automatic ticking disabled")

    @app.put(f"{API_PREFIX}/game/ticks/interval", tags=["Game Control"])
    def set_tick_interval(payload: TickIntervalRequest, engine: GameEngine = Depends(get_engine)) -> dict[str, float]:
        """Set the auto-tick interval in seconds. Use 0 for maximum speed (no delay)."""
        try:
            engine.tick_manager.set_tick_interval(payload.interval)
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        return {"tick_interval_seconds": engine.tick_manager.get_tick_interval()}

    @app.get(f"{API_PREFIX}/game/ticks/interval", tags=["Game Control"])
    def get_tick_interval(engine: GameEngine = Depends(get_engine)) -> dict[str, float]:
        return {"tick_interval_seconds": engine.tick_manager.get_tick_interval()}

    @app.put(f"{API_PREFIX}/game/phase", response_model=EngineControlResponse, tags=["Game Control"])
    def switch_phase(payload: PhaseRequest, engine: GameEngine = Depends(get_engine)) -> EngineControlResponse:
        engine.switch_phase(payload.phase)
        return _control_response(engine, f"Phase set to {payload.phase.value}")

    @app.post(f"{API_PREFIX}/game/save", response_model=SaveResponse, tags=["Game Control"])
    def save_game(engine: GameEngine = Depends(get_engine)) -> SaveResponse:
        if engine.save_game():
            return SaveResponse(success=True, message="Game saved")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to save game")

    @app.post(f"{API_PREFIX}/game/load", response_model=EngineControlResponse, tags=["Game Control"])
    def load_game(engine: GameEngine = Depends(get_engine)) -> EngineControlResponse:
        state = _require(engine.load_game(), "Saved game")
        engine.restore(state)
        return _control_response(engine, "Game loaded")

    # --- Properties and tenants -----------------------------------------

    @app.get(f"{API_PREFIX}/properties", response_model=list[Property], tags=["Properties"])
    def list_properties(engine: GameEngine = Depends(get_engine)) -> list[Property]:
        return engine.get_properties()

    @app.post(
        f"{API_PREFIX}/properties",
        response_model=Property,
        status_code=status.HTTP_201_CREATED,
        tags=["Properties"],
    )
    def create_property(payload: PropertyCreate, engine: GameEngine = Depends(get_engine)) -> Property:
        return engine.add_property(Property(**payload.model_dump()))

    @app.get(f"{API_PREFIX}/properties/{{property_id}}", response_model=Property, tags=["Properties"])
    def get_property(property_id: str, engine: GameEngine = Depends(get_engine)) -> Property:
        return _require(engine.get_property(property_id), "Property")

    @app.post(f"{API_PREFIX}/properties/{{property_id}}/maintain", response_model=OperationResult, tags=["Properties"])
    def maintain_property(property_id: str, engine: GameEngine = Depends(get_engine)) -> OperationResult:
        _require(engine.get_property(property_id), "Property")
        return _check(engine.maintain_property(property_id))

    @app.get(f"{API_PREFIX}/tenants", response_model=list[Tenant], tags=["Tenants"])
    def list_tenants(engine: GameEngine = Depends(get_engine)) -> list[Tenant]:
        return engine.get_tenants()

    @app.post(
        f"{API_PREFIX}/tenants",
        response_model=OperationResult,
        status_code=status.HTTP_201_CREATED,
        tags=["Tenants"],
    )
    def create_tenant(payload: TenantCreate, engine: GameEngine = Depends(get_engine)) -> OperationResult:
        _require(engine.get_property(payload.property_id), "Property")
        tenant = Tenant(
            name=payload.name,
            personality_traits=payload.personality_traits,
            lifestyle=payload.lifestyle,
            preferences=payload.preferences,
            financials=TenantFinancials(monthly_income=payload.monthly_income, credit_score=payload.credit_score),
        )
        return _check(engine.add_tenant(tenant, payload.property_id))

    @app.delete(f"{API_PREFIX}/tenants/{{tenant_id}}", response_model=OperationResult, tags=["Tenants"])
    def delete_tenant(tenant_id: str, engine: GameEngine = Depends(get_engine)) -> OperationResult:
        _require(engine.get_tenant(tenant_id), "Tenant")
        return _check(engine.remove_tenant(tenant_id))

    @app.post(
        f"{API_PREFIX}/tenants/{{tenant_id}}/complaints",
        response_model=OperationResult,
        status_code=status.HTTP_201_CREATED,
        tags=["Tenants"],
    )
    def file_complaint(
        tenant_id: str, payload: ComplaintCreate, engine: GameEngine = Depends(get_engine)
    ) -> OperationResult:
        _require(engine.get_tenant(tenant_id), "Tenant")
        return _check(engine.file_complaint(tenant_id, payload.subject))

    @app.post(
        f"{API_PREFIX}/tenants/{{tenant_id}}/complaints/{{complaint_id}}/resolve",
        response_model=OperationResult,
        tags=["Tenants"],
    )
    def resolve_complaint(tenant_id: str, complaint_id: str, engine: GameEngine = Depends(get_engine)) -> OperationResult:
        tenant = _require(engine.get_tenant(tenant_id), "Tenant")
        _require(next((c for c in tenant.complaints if c.id == complaint_id), None), "Complaint")
        return _check(engine.resolve_complaint(tenant_id, complaint_id))

    # --- Market -----------------------------------------------------------

    @app.get(f"{API_PREFIX}/market/products", response_model=list[Product], tags=["Market"])
    def list_products(
        category: str | None = Query(default=None),
        vendor_id: str | None = Query(default=None),
        min_price: float | None = Query(default=None, ge=0),
        max_price: float | None = Query(default=None, ge=0),
        in_stock: bool | None = Query(default=None),
        engine: GameEngine = Depends(get_engine),
    ) -> list[Product]:
        return engine.get_products(
            category=category, vendor_id=vendor_id, min_price=min_price, max_price=max_price, in_stock=in_stock
        )

    @app.get(f"{API_PREFIX}/market/products/{{product_id}}/history", response_model=list[PriceRecord], tags=["Market"])
    def price_history(product_id: str, engine: GameEngine = Depends(get_engine)) -> list[PriceRecord]:
        try:
            return engine.get_price_history(product_id)
        except KeyError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found") from exc

    @app.get(f"{API_PREFIX}/market/statistics", tags=["Market"])
    def market_statistics(engine: GameEngine = Depends(get_engine)) -> dict[str, Any]:
        return engine.market_statistics()

    @app.post(f"{API_PREFIX}/market/purchase", response_model=OperationResult, tags=["Market"])
    def purchase(payload: PurchaseRequest, engine: GameEngine = Depends(get_engine)) -> OperationResult:
        result = engine.purchase_item(payload.product_id, payload.quantity)
        if not result.success and result.message == "Product not found":
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=result.message)
        return _check(result)

    # --- Exploration ------------------------------------------------------

    @app.get(f"{API_PREFIX}/missions", response_model=list[Mission], tags=["Exploration"])
    def list_missions(
        mission_status: MissionStatus | None = Query(default=None, alias="status"),
        engine: GameEngine = Depends(get_engine),
    ) -> list[Mission]:
        return engine.get_missions(mission_status)

    def _mission_action(engine: GameEngine, mission_id: str, action: str) -> OperationResult:
        _require(engine.get_mission(mission_id), "Mission")
        return _check(getattr(engine, action)(mission_id))

    @app.post(f"{API_PREFIX}/missions/{{mission_id}}/start", response_model=OperationResult, tags=["Exploration"])
    def start_mission(mission_id: str, engine: GameEngine = Depends(get_engine)) -> OperationResult:
        return _mission_action(engine, mission_id, "start_mission")

    @app.post(f"{API_PREFIX}/missions/{{mission_id}}/complete", response_model=OperationResult, tags=["Exploration"])
    def complete_mission(mission_id: str, engine: GameEngine = Depends(get_engine)) -> OperationResult:
        return _mission_action(engine, mission_id, "complete_mission")

    @app.post(f"{API_PREFIX}/missions/{{mission_id}}/cancel", response_model=OperationResult, tags=["Exploration"])
    def cancel_mission(mission_id: str, engine: GameEngine = Depends(get_engine)) -> OperationResult:
        return _mission_action(engine, mission_id, "cancel_mission")

    # --- Achievements -----------------------------------------------------

    @app.get(f"{API_PREFIX}/achievements", response_model=list[PlayerAchievement], tags=["Achievements"])
    def list_achievements(
        category: AchievementCategory | None = Query(default=None),
        achievement_status: AchievementStatus | None = Query(default=None, alias="status"),
        include_hidden: bool = Query(default=False),
        engine: GameEngine = Depends(get_engine),
    ) -> list[PlayerAchievement]:
        return engine.get_player_achievements(category, achievement_status, include_hidden)

    @app.post(f"{API_PREFIX}/achievements/{{achievement_id}}/claim", response_model=ClaimResult, tags=["Achievements"])
    def claim_achievement(achievement_id: str, engine: GameEngine = Depends(get_engine)) -> ClaimResult:
        try:
            result = engine.claim_reward(achievement_id)
        except KeyError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Achievement not found") from exc
        if not result.success:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.message)
        return result

    # --- Notifications ----------------------------------------------------

    @app.get(f"{API_PREFIX}/notifications", response_model=list[Notification], tags=["Notifications"])
    def list_notifications(
        notification_status: NotificationStatus | None = Query(default=None, alias="status"),
        notification_type: NotificationType | None = Query(default=None, alias="type"),
        limit: int | None = Query(default=None, gt=0, le=500),
        offset: int = Query(default=0, ge=0),
        engine: GameEngine = Depends(get_engine),
    ) -> list[Notification]:
        return engine.get_notifications(notification_status, notification_type, limit, offset)

    @app.get(f"{API_PREFIX}/notifications/unread-count", tags=["Notifications"])
    def unread_count(engine: GameEngine = Depends(get_engine)) -> dict[str, int]:
        return {"unread": engine.get_unread_count()}

    @app.post(f"{API_PREFIX}/notifications/read-all", tags=["Notifications"])
    def read_all(engine: GameEngine = Depends(get_engine)) -> dict[str, int]:
        return {"marked": engine.mark_all_notifications_read()}

    @app.get(f"{API_PREFIX}/notifications/settings", response_model=NotificationSettings, tags=["Notifications"])
    def get_notification_settings(engine: GameEngine = Depends(get_engine)) -> NotificationSettings:
        return engine.get_notification_settings()

    @app.put(f"{API_PREFIX}/notifications/settings", response_model=NotificationSettings, tags=["Notifications"])
    def update_notification_settings(
        changes: dict[str, Any] = Body(...),
        engine: GameEngine = Depends(get_engine),
    ) -> NotificationSettings:
        try:
            return engine.update_notification_settings(changes)
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    def _notification_not_found() -> HTTPException:
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")

    @app.post(f"{API_PREFIX}/notifications/{{notification_id}}/read", tags=["Notifications"])
    def read_notification(notification_id: str, engine: GameEngine = Depends(get_engine)) -> dict[str, bool]:
        try:
            return {"changed": engine.mark_notification_read(notification_id)}
        except KeyError as exc:
            raise _notification_not_found() from exc

    @app.post(f"{API_PREFIX}/notifications/{{notification_id}}/archive", tags=["Notifications"])
    def archive_notification(notification_id: str, engine: GameEngine = Depends(get_engine)) -> dict[str, bool]:
        try:
            return {"changed": engine.archive_notification(notification_id)}
        except KeyError as exc:
            raise _notification_not_found() from exc

    @app.delete(
        f"{API_PREFIX}/notifications/{{notification_id}}",
        status_code=status.HTTP_204_NO_CONTENT,
        tags=["Notifications"],
    )
    def delete_notification(notification_id: str, engine: GameEngine = Depends(get_engine)) -> None:
        try:
            engine.delete_notification(notification_id)
        except KeyError as exc:
            raise _notification_not_found() from exc

    @app.post(
        f"{API_PREFIX}/notifications/{{notification_id}}/actions/{{action_id}}",
        response_model=OperationResult,
        tags=["Notifications"],
    )
    def execute_action(
        notification_id: str,
        action_id: str,
        payload: ActionRequest | None = Body(default=None),
        engine: GameEngine = Depends(get_engine),
    ) -> OperationResult:
        data = payload.data if payload else None
        try:
            result = engine.execute_notification_action(notification_id, action_id, data)
        except KeyError as exc:
            raise _notification_not_found() from exc
        return _check(result)

    return app


def main() -> None:
    load_dotenv()
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    host = os.getenv("PROPSIM_SIM_HOST", "127.0.0.1")
    port = _env_int("PROPSIM_SIM_PORT") or 8015
    logger.info("Starting propsim simulation manager on %s:%s", host, port)
    uvicorn.run(create_app(), host=host, port=port, log_level="info")


if __name__ == "__main__":
    main()

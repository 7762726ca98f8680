"""
Tests for MarketEngine.

Tests pricing bounds, purchases, market events and the trends they leave.
"""

import pytest

from propsim.sim_manager.core import MarketEngine, seed_market
from propsim.sim_manager.core.game_state import Product
from propsim.sim_manager.core.market_engine import (
    DEFAULT_PRODUCTS,
    DEFAULT_VENDORS,
    TREND_DURATION_DAYS,
    bound_price,
    season_for_day,
    supply_demand_factor,
)


@pytest.fixture
def market(state, bus, rng):
    engine = MarketEngine(rng=rng, event_chance=0.0)
    engine.initialize(state, bus)
    yield engine
    engine.cleanup()


class TestSeeding:
    def test_seed_is_idempotent(self, state):
        seed_market(state)
        assert len(state.products) == len(DEFAULT_PRODUCTS)
        assert len(state.vendors) == len(DEFAULT_VENDORS)

    def test_seeded_prices_start_at_base(self, state):
        assert all(p.price == p.base_price for p in state.products)


class TestPricing:
    """Test the daily price pass."""

    def test_prices_stay_within_bounds(self, market, state):
        for _ in range(500):
            market.update(1.0)
        for product in state.products:
            assert product.base_price * 0.5 <= product.price <= product.base_price * 2.0

    def test_price_pass_runs_once_per_simulated_day(self, market, state):
        starting = {p.id: p.price for p in state.products}

        for _ in range(23):
            market.update(1 / 24)
        assert {p.id: p.price for p in state.products} == starting
        assert state.price_history == []

        market.update(1 / 24)
        assert state.price_history
        assert {record.day for record in state.price_history} == {state.game_day}
        assert market.scheduler.is_scheduled("update_prices")

    def test_bound_price_clamps_and_rounds(self):
        product = Product(name="Brick", category="construction", base_price=10.0, price=10.0)
        assert bound_price(product, 1.0) == 5.0
        assert bound_price(product, 100.0) == 20.0
        assert bound_price(product, 12.3456) == 12.35

    def test_supply_demand_tiers(self):
        def factor(stock):
            return supply_demand_factor(Product(name="x", category="c", base_price=1, price=1, stock=stock, max_stock=100))

        assert factor(10) == 1.05
        assert factor(30) == 1.02
        assert factor(50) == 1.0
        assert factor(85) == 0.98
        assert factor(95) == 0.95

    def test_seasons_follow_thirty_day_months(self):
        assert season_for_day(1) == "winter"
        assert season_for_day(60) == "spring"
        assert season_for_day(150) == "summer"
        assert season_for_day(240) == "autumn"
        assert season_for_day(330) == "winter"

    def test_changed_prices_are_recorded(self, market, state):
        changed = {}
        for _ in range(20):
            for product_ids in market.update_prices().values():
                changed.update(dict.fromkeys(product_ids))
        assert changed
        recorded = {record.product_id for record in state.price_history}
        assert set(changed) <= recorded


class TestPurchase:
    """Test purchase validation and bookkeeping."""

    def test_purchase_reduces_stock(self, market, state, recorder):
        recorder.watch("market:item_purchased")
        product = market.get_product("prod_paint")

        result = market.purchase_product("prod_paint", 3)

        assert result.success
        assert result.data["total_cost"] == pytest.approx(product.price * 3)
        assert result.data["item_key"] == "paint"
        assert product.stock == 57
        assert product.popularity == 1
        assert state.market_events[-1].event_type == "purchase"
        assert recorder.named("market:item_purchased")[0]["quantity"] == 3

    def test_purchase_rejections(self, market):
        assert market.purchase_product("prod_paint", 0).message == "Quantity must be positive"
        assert market.purchase_product("nope", 1).message == "Product not found"
        assert market.purchase_product("prod_sofa", 11).message == "Insufficient stock"
        assert market.get_product("prod_sofa").stock == 10

    def test_restock(self, market):
        product = market.restock_product("prod_sofa", 5)
        assert product.stock == 15
        assert market.restock_product("prod_sofa", 0) is None

    def test_get_products_filters(self, market):
        appliances = market.get_products(category="appliance")
        assert {p.id for p in appliances} == {"prod_washer", "prod_camera"}
        cheap = market.get_products(max_price=50.0)
        assert {p.id for p in cheap} == {"prod_cement", "prod_paint"}

    def test_add_product_requires_known_vendor(self, market):
        with pytest.raises(ValueError, match="Unknown vendor"):
            market.add_product(Product(name="Ghost", category="service", base_price=5, price=5, vendor_id="nobody"))


class TestEvents:
    """Test market events and trend bookkeeping."""

    def test_event_applies_price_and_supply_impact(self, market, state, recorder):
        recorder.watch("market:event_occurred")

        event = market.trigger_market_event(
            "demand_spike",
            "Builders everywhere",
            demand_change=2,
            price_change=10,
            supply_change=-0.5,
            affected_categories=["construction"],
        )

        cement = market.get_product("prod_cement")
        assert set(event.affected_products) == {"prod_cement", "prod_toolkit"}
        assert cement.price == pytest.approx(49.5)
        assert cement.stock == 79
        payload = recorder.named("market:event_occurred")[0]
        assert payload["event_type"] == "demand_spike"
        assert payload["affected_categories"] == ["construction"]

    def test_event_creates_trend_and_repeats_reinforce_it(self, market, state):
        market.trigger_market_event("demand_spike", "first", demand_change=2, affected_categories=["furniture"])
        market.trigger_market_event("demand_spike", "second", demand_change=2, affected_categories=["furniture"])

        assert len(state.market_trends) == 1
        trend = state.market_trends[0]
        assert trend.strength == pytest.approx(0.4)
        assert trend.duration == TREND_DURATION_DAYS + 1
        assert market.trend_impact("furniture") == pytest.approx(1.04)
        assert market.trend_impact("service") == 1.0

    def test_trends_expire_after_their_duration(self, market, state, bus):
        market.trigger_market_event("demand_drop", "quiet", demand_change=-1.5, affected_categories=["service"])
        for day in range(2, 2 + TREND_DURATION_DAYS):
            assert state.market_trends
            bus.emit("day:advanced", {"day": day})
        assert state.market_trends == []

    def test_event_with_no_products_leaves_no_trend(self, market, state):
        market.trigger_market_event("demand_spike", "nothing", demand_change=2, affected_categories=["spaceships"])
        assert state.market_trends == []
        assert state.market_events[-1].affected_products == []

    def test_random_event_is_recorded(self, market, state):
        event = market.generate_random_event()
        assert event is not None
        assert state.market_events[-1] is event


class TestIndexes:
    def test_indexes_neutral_at_base_prices(self, market, state, bus):
        bus.emit("day:advanced", {"day": 2})
        assert state.market_indexes.price_index == pytest.approx(50.0)
        assert state.market_indexes.overall_trend == "stable"

    def test_weekly_trend_broadcast(self, market, recorder):
        recorder.watch("market:trends_updated")
        for _ in range(6):
            market.update(1.0)
        assert recorder.named("market:trends_updated") == []
        market.update(1.0)
        assert len(recorder.named("market:trends_updated")) == 1
        assert market.scheduler.is_scheduled("update_market_trends")

    def test_statistics_shape(self, market):
        market.purchase_product("prod_cement", 1)
        stats = market.market_statistics()
        assert stats["total_products"] == len(DEFAULT_PRODUCTS)
        assert stats["trending_products"][0]["product_id"] == "prod_cement"
        assert 0 <= stats["market_health"] <= 100

"""
Market engine for the propsim simulation.

This module handles product pricing, random market events, decaying market
trends, vendor relationships and the aggregate market indexes.
"""

from __future__ import annotations

import logging
import math
import random
from typing import Any

from .game_state import (
    GameState,
    MarketEvent,
    MarketImpact,
    MarketTrend,
    OperationResult,
    PriceRecord,
    Product,
    Vendor,
    clamp,
)
from .store import Table
from .sub_engine import SubEngine

logger = logging.getLogger(__name__)

PRICE_UPDATE_TASK = "update_prices"
PRICE_UPDATE_INTERVAL_DAYS = 1.0
TREND_UPDATE_TASK = "update_market_trends"
TREND_UPDATE_INTERVAL_DAYS = 7.0
DEFAULT_EVENT_CHANCE = 0.1
PRICE_FLOOR = 0.5
PRICE_CEILING = 2.0
PRICE_CHANGE_THRESHOLD = 0.005
TREND_DURATION_DAYS = 3
TREND_DECAY = 0.9
MAX_PRICE_HISTORY = 5000
MAX_MARKET_EVENTS = 200

SEASONAL_FACTORS: dict[str, dict[str, float]] = {
    "construction": {"spring": 1.05, "summer": 1.1, "autumn": 0.95, "winter": 0.9},
    "decoration": {"spring": 1.1, "summer": 1.0, "autumn": 1.05, "winter": 0.95},
    "furniture": {"spring": 1.05, "summer": 1.0, "autumn": 1.0, "winter": 0.95},
    "appliance": {"spring": 1.0, "summer": 1.05, "autumn": 1.0, "winter": 0.95},
    "service": {"spring": 1.0, "summer": 1.05, "autumn": 1.0, "winter": 0.95},
}

# (demand, price, supply). SIGNED_EVENT_TYPES flip each component's sign by coin toss.
EVENT_IMPACTS: dict[str, tuple[float, float, float]] = {
    "supply_shortage": (0.5, 1.5, -2),
    "surplus_supply": (-0.5, -1, 2),
    "demand_spike": (2, 1, -0.5),
    "demand_drop": (-1.5, -1, 0.5),
    "new_technology": (1, -0.5, 1),
    "regulatory_change": (-0.5, 0.5, -0.5),
    "economic_shift": (1, 0.5, 0.5),
    "seasonal_change": (1, 0.5, 0),
    "vendor_issue": (-1, 0.5, -1),
    "market_innovation": (1.5, 0, 1),
}
SIGNED_EVENT_TYPES = frozenset({"economic_shift", "seasonal_change"})

EVENT_DESCRIPTIONS = {
    "supply_shortage": "Supply shortage affecting {target} products",
    "surplus_supply": "Surplus supply of {target} products",
    "demand_spike": "Sudden increase in demand for {target} products",
    "demand_drop": "Decrease in demand for {target} products",
    "new_technology": "New technology affecting {target} market",
    "regulatory_change": "Regulatory changes affecting {target} market",
    "economic_shift": "Economic shift affecting all markets",
    "seasonal_change": "Seasonal changes affecting {target} products",
    "vendor_issue": "Issues with vendor {target} affecting their products",
    "market_innovation": "Market innovation in {target} sector",
}

DEFAULT_VENDORS = [
    {"id": "vendor_buildright", "name": "BuildRight Supplies", "category": "construction", "relationship": 50.0},
    {"id": "vendor_homestyle", "name": "HomeStyle Decor", "category": "decoration", "relationship": 55.0},
    {"id": "vendor_comfort", "name": "Comfort Furniture Co.", "category": "furniture", "relationship": 50.0},
    {"id": "vendor_voltline", "name": "Voltline Appliances", "category": "appliance", "relationship": 45.0},
    {"id": "vendor_fixit", "name": "FixIt Services", "category": "service", "relationship": 60.0},
]

DEFAULT_PRODUCTS = [
    {"id": "prod_cement", "name": "Cement (50kg)", "vendor_id": "vendor_buildright", "category": "construction",
     "base_price": 45.0, "stock": 80, "max_stock": 100, "volatility": 0.4, "item_key": "building_materials"},
    {"id": "prod_toolkit", "name": "Renovation Toolkit", "vendor_id": "vendor_buildright", "category": "construction",
     "base_price": 220.0, "stock": 20, "max_stock": 40, "volatility": 0.3, "item_key": "tools"},
    {"id": "prod_paint", "name": "Interior Paint", "vendor_id": "vendor_homestyle", "category": "decoration",
     "base_price": 35.0, "stock": 60, "max_stock": 120, "volatility": 0.5, "item_key": "paint"},
    {"id": "prod_sofa", "name": "Three-seat Sofa", "vendor_id": "vendor_comfort", "category": "furniture",
     "base_price": 800.0, "stock": 10, "max_stock": 25, "volatility": 0.6, "item_key": "sofa"},
    {"id": "prod_washer", "name": "Washing Machine", "vendor_id": "vendor_voltline", "category": "appliance",
     "base_price": 650.0, "stock": 15, "max_stock": 30, "volatility": 0.5, "item_key": "washing_machine"},
    {"id": "prod_camera", "name": "Inspection Camera", "vendor_id": "vendor_voltline", "category": "appliance",
     "base_price": 300.0, "stock": 12, "max_stock": 20, "volatility": 0.4, "item_key": "camera"},
    {"id": "prod_cleaning", "name": "Deep Cleaning Service", "vendor_id": "vendor_fixit", "category": "service",
     "base_price": 150.0, "stock": 50, "max_stock": 50, "volatility": 0.7, "item_key": None},
]


def seed_market(state: GameState) -> None:
    """Populate an empty state with the default vendors and products."""
    vendors = Table(state.vendors)
    products = Table(state.products)
    for data in DEFAULT_VENDORS:
        if data["id"] not in vendors:
            vendors.add(Vendor(**data))
    for data in DEFAULT_PRODUCTS:
        if data["id"] not in products:
            products.add(Product(price=data["base_price"], **data))


def season_for_day(game_day: int) -> str:
    month = (game_day // 30) % 12
    if 2 <= month <= 4:
        return "spring"
    if 5 <= month <= 7:
        return "summer"
    if 8 <= month <= 10:
        return "autumn"
    return "winter"


def seasonal_factor(category: str, season: str) -> float:
    return SEASONAL_FACTORS.get(category, {}).get(season, 1.0)


def supply_demand_factor(product: Product) -> float:
    """Price pressure from the product's stock level."""
    ratio = product.stock / product.max_stock
    if ratio < 0.2:
        return 1.05
    if ratio < 0.4:
        return 1.02
    if ratio > 0.9:
        return 0.95
    if ratio > 0.8:
        return 0.98
    return 1.0


def volatility_factor(product: Product) -> float:
    return 1 + (product.volatility - 0.5) * 0.04


def bound_price(product: Product, price: float) -> float:
    return round(clamp(price, product.base_price * PRICE_FLOOR, product.base_price * PRICE_CEILING), 2)


class MarketEngine(SubEngine):
    """
    Market simulation.

    Responsibilities:
    - Daily price pass with seasonal, stock, volatility and trend factors,
      counted down by the tick through the private scheduler
    - Random market events and the trends they leave behind
    - Daily trend decay, vendor relationship drift and index recomputation
    - Weekly `market:trends_updated` broadcast through the private scheduler

    Args:
        rng: Injected random source
        event_chance: Probability of a random event per simulated day
    """

    name = "market"

    def __init__(self, rng: random.Random | None = None, event_chance: float = DEFAULT_EVENT_CHANCE) -> None:
        super().__init__(rng)
        self.event_chance = event_chance

    @property
    def products(self) -> Table[Product]:
        return Table(self.state.products)

    @property
    def vendors(self) -> Table[Vendor]:
        return Table(self.state.vendors)

    def on_initialize(self) -> None:
        self.subscribe("day:advanced", self._handle_day_advanced)
        self.scheduler.schedule(PRICE_UPDATE_TASK, self._daily_price_pass, PRICE_UPDATE_INTERVAL_DAYS)
        self.scheduler.schedule(TREND_UPDATE_TASK, self._broadcast_trends, TREND_UPDATE_INTERVAL_DAYS)

    def update(self, delta_time: float) -> None:
        self.scheduler.update(delta_time)
        if self.state.products and self.rng.random() < self.event_chance * delta_time:
            self.generate_random_event()

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    def trend_impact(self, category: str) -> float:
        strength = sum(t.strength for t in self.state.market_trends if category in t.affected_categories)
        return 1 + strength / 10

    def update_prices(self) -> dict[str, list[str]]:
        """
        Run one price pass over every product.

        Returns:
            Changed product ids keyed by vendor id
        """
        season = season_for_day(self.state.game_day)
        changed_by_vendor: dict[str, list[str]] = {}

        for product in self.state.products:
            fluctuation = self.rng.uniform(0.98, 1.02)
            season_factor = seasonal_factor(product.category, season)
            stock_factor = supply_demand_factor(product)
            trend_factor = self.trend_impact(product.category)
            multiplier = fluctuation * season_factor * stock_factor * volatility_factor(product) * trend_factor
            new_price = bound_price(product, product.price * multiplier)

            if abs(new_price - product.price) / product.price <= PRICE_CHANGE_THRESHOLD:
                continue
            product.price = new_price
            self._record_price(product, self._price_factors(fluctuation, season_factor, stock_factor, trend_factor))
            if product.vendor_id:
                changed_by_vendor.setdefault(product.vendor_id, []).append(product.id)

        for vendor_id, product_ids in changed_by_vendor.items():
            self.emit("market:supplier_prices_updated", {"vendor_id": vendor_id, "product_ids": product_ids})
        return changed_by_vendor

    @staticmethod
    def _price_factors(fluctuation: float, season_factor: float, stock_factor: float, trend_factor: float) -> list[str]:
        factors = []
        if fluctuation > 1.01 or fluctuation < 0.99:
            factors.append("market_fluctuation")
        if season_factor > 1.01:
            factors.append("seasonal_increase")
        elif season_factor < 0.99:
            factors.append("seasonal_decrease")
        if stock_factor > 1.01:
            factors.append("demand_increase")
        elif stock_factor < 0.99:
            factors.append("supply_increase")
        if trend_factor != 1.0:
            factors.append("market_trend")
        return factors or ["normal_fluctuation"]

    def _record_price(self, product: Product, factors: list[str]) -> None:
        history = self.state.price_history
        history.append(PriceRecord(product_id=product.id, day=self.state.game_day, price=product.price, factors=factors))
        if len(history) > MAX_PRICE_HISTORY:
            del history[: len(history) - MAX_PRICE_HISTORY]

    # ------------------------------------------------------------------
    # Events and trends
    # ------------------------------------------------------------------

    def generate_random_event(self) -> MarketEvent | None:
        event_type = self.rng.choice(list(EVENT_IMPACTS))
        demand, price, supply = EVENT_IMPACTS[event_type]
        if event_type in SIGNED_EVENT_TYPES:
            demand = demand if self.rng.random() > 0.5 else -demand
            price = price if self.rng.random() > 0.5 else -price
            supply = supply if self.rng.random() > 0.5 else -supply

        categories = sorted({p.category for p in self.state.products})
        affected_categories: list[str] = []
        affected_vendors: list[str] = []
        if event_type == "vendor_issue":
            if not self.state.vendors:
                return None
            vendor = self.rng.choice(self.state.vendors)
            affected_vendors = [vendor.id]
            target = vendor.name
        elif event_type == "economic_shift":
            affected_categories = categories
            target = "all"
        else:
            target = self.rng.choice(categories)
            affected_categories = [target]

        return self.trigger_market_event(
            event_type,
            EVENT_DESCRIPTIONS[event_type].format(target=target),
            demand_change=demand,
            price_change=price,
            supply_change=supply,
            affected_categories=affected_categories,
            affected_vendors=affected_vendors,
        )

    def trigger_market_event(
        self,
        event_type: str,
        description: str,
        demand_change: float = 0.0,
        price_change: float = 0.0,
        supply_change: float = 0.0,
        affected_categories: list[str] | None = None,
        affected_vendors: list[str] | None = None,
    ) -> MarketEvent:
        """
        Record a market event and apply its impact.

        An empty category or vendor list matches every product.

        Returns:
            The recorded MarketEvent
        """
        affected_categories = affected_categories or []
        affected_vendors = affected_vendors or []
        affected_products = [
            p.id
            for p in self.state.products
            if (not affected_categories or p.category in affected_categories)
            and (not affected_vendors or p.vendor_id in affected_vendors)
        ]
        event = MarketEvent(
            event_type=event_type,
            description=description,
            day=self.state.game_day,
            affected_products=affected_products,
            affected_categories=affected_categories,
            affected_vendors=affected_vendors,
            impact=MarketImpact(demand_change=demand_change, price_change=price_change, supply_change=supply_change),
        )
        self._append_event(event)
        self._apply_event_impact(event)
        logger.info("Market event %s: %s", event_type, description)
        self.emit(
            "market:event_occurred",
            {
                "event_id": event.id,
                "event_type": event.event_type,
                "description": event.description,
                "affected_categories": event.affected_categories,
                "affected_products": event.affected_products,
                "impact": event.impact.model_dump(),
            },
        )
        return event

    def _append_event(self, event: MarketEvent) -> None:
        events = self.state.market_events
        events.append(event)
        if len(events) > MAX_MARKET_EVENTS:
            del events[: len(events) - MAX_MARKET_EVENTS]

    def _apply_event_impact(self, event: MarketEvent) -> None:
        products = self.products
        touched_categories: list[str] = []
        for product_id in event.affected_products:
            product = products.get(product_id)
            if product is None:
                continue
            product.price = bound_price(product, product.price + product.price * event.impact.price_change / 100)
            product.stock = max(0, product.stock + math.floor(product.stock * event.impact.supply_change / 100))
            if product.category not in touched_categories:
                touched_categories.append(product.category)

        if not touched_categories:
            return
        strength = event.impact.demand_change / 100 * 10
        existing = next(
            (
                t
                for t in self.state.market_trends
                if t.trend_type == event.event_type and set(t.affected_categories) & set(touched_categories)
            ),
            None,
        )
        if existing is not None:
            existing.strength += strength
            existing.duration += 1
            existing.remaining_days += 1
            return
        self.state.market_trends.append(
            MarketTrend(
                trend_type=event.event_type,
                description=f"Trend: {event.description}",
                strength=strength,
                duration=TREND_DURATION_DAYS,
                remaining_days=TREND_DURATION_DAYS,
                start_day=self.state.game_day,
                affected_categories=touched_categories,
            )
        )

    def decay_trends(self) -> None:
        remaining = []
        for trend in self.state.market_trends:
            trend.strength *= TREND_DECAY
            trend.remaining_days -= 1
            if trend.remaining_days > 0:
                remaining.append(trend)
        self.state.market_trends[:] = remaining

    def drift_vendor_relationships(self) -> None:
        for vendor in self.state.vendors:
            vendor.relationship = clamp(vendor.relationship + self.rng.uniform(-0.1, 0.1), 0.0, 100.0)

    def recompute_indexes(self) -> None:
        state = self.state
        indexes = state.market_indexes
        products = state.products
        vendors = state.vendors

        if products:
            avg_premium = sum(p.price / p.base_price - 1 for p in products) / len(products)
            avg_stock = sum(p.stock / p.max_stock for p in products) / len(products)
        else:
            avg_premium, avg_stock = 0.0, 0.5
        avg_relationship = (sum(v.relationship for v in vendors) / len(vendors)) if vendors else 50.0

        recent_purchases = sum(
            1 for e in state.market_events if e.event_type == "purchase" and state.game_day - e.day <= 3
        )
        demand_trend = sum(t.strength * 10 for t in state.market_trends if "demand" in t.trend_type)
        supply_trend = sum(t.strength * 10 for t in state.market_trends if "supply" in t.trend_type)

        indexes.price_index = clamp(50 + avg_premium * 50, 0.0, 100.0)
        indexes.demand_index = clamp(50 + recent_purchases * 2 + demand_trend, 0.0, 100.0)
        indexes.supply_index = clamp(
            50 + (avg_stock - 0.5) * 50 + (avg_relationship / 100 - 0.5) * 20 + supply_trend, 0.0, 100.0
        )
        if indexes.price_index > 55:
            indexes.overall_trend = "rising"
        elif indexes.price_index < 45:
            indexes.overall_trend = "falling"
        else:
            indexes.overall_trend = "stable"

    def _daily_price_pass(self) -> None:
        self.scheduler.schedule(PRICE_UPDATE_TASK, self._daily_price_pass, PRICE_UPDATE_INTERVAL_DAYS)
        self.update_prices()

    def _broadcast_trends(self) -> None:
        self.emit(
            "market:trends_updated",
            {
                "day": self.state.game_day,
                "indexes": self.state.market_indexes.model_dump(),
                "trends": [t.model_dump() for t in self.state.market_trends],
            },
        )
        self.scheduler.schedule(TREND_UPDATE_TASK, self._broadcast_trends, TREND_UPDATE_INTERVAL_DAYS)

    def _handle_day_advanced(self, payload: dict) -> None:
        self.decay_trends()
        self.drift_vendor_relationships()
        self.recompute_indexes()

    # ------------------------------------------------------------------
    # Catalogue operations
    # ------------------------------------------------------------------

    def add_vendor(self, vendor: Vendor) -> Vendor:
        return self.vendors.add(vendor)

    def add_product(self, product: Product) -> Product:
        if product.vendor_id is not None and product.vendor_id not in self.vendors:
            raise ValueError(f"Unknown vendor '{product.vendor_id}'")
        self.products.add(product)
        self._record_price(product, ["initial_price"])
        return product

    def remove_product(self, product_id: str) -> bool:
        return self.products.remove(product_id) is not None

    def get_product(self, product_id: str) -> Product | None:
        return self.products.get(product_id)

    def get_products(
        self,
        category: str | None = None,
        vendor_id: str | None = None,
        min_price: float | None = None,
        max_price: float | None = None,
        in_stock: bool | None = None,
    ) -> list[Product]:
        def matches(product: Product) -> bool:
            if category and product.category != category:
                return False
            if vendor_id and product.vendor_id != vendor_id:
                return False
            if min_price is not None and product.price < min_price:
                return False
            if max_price is not None and product.price > max_price:
                return False
            if in_stock and product.stock <= 0:
                return False
            return True

        return self.products.filter(matches)

    def get_price_history(self, product_id: str) -> list[PriceRecord]:
        return [record for record in self.state.price_history if record.product_id == product_id]

    def purchase_product(self, product_id: str, quantity: int) -> OperationResult:
        """
        Take `quantity` units out of stock.

        Funds are not checked here; the orchestrator charges the player.

        Returns:
            OperationResult with `total_cost` and `item_key` on success
        """
        if quantity <= 0:
            return OperationResult.fail("Quantity must be positive")
        product = self.products.get(product_id)
        if product is None:
            return OperationResult.fail("Product not found")
        if product.stock < quantity:
            return OperationResult.fail("Insufficient stock")

        total_cost = round(product.price * quantity, 2)
        product.stock -= quantity
        product.popularity += 1
        self._append_event(
            MarketEvent(
                event_type="purchase",
                description=f"Purchase of {quantity} units of {product.name}",
                day=self.state.game_day,
                affected_products=[product.id],
                affected_vendors=[product.vendor_id] if product.vendor_id else [],
                impact=MarketImpact(demand_change=1, supply_change=-quantity / 100),
            )
        )
        self.emit("market:item_purchased", {"product_id": product.id, "quantity": quantity, "total_cost": total_cost})
        return OperationResult.ok(
            "Purchase completed",
            product_id=product.id,
            quantity=quantity,
            total_cost=total_cost,
            item_key=product.item_key,
        )

    def restock_product(self, product_id: str, quantity: int) -> Product | None:
        product = self.products.get(product_id)
        if product is None or quantity <= 0:
            return None
        product.stock += quantity
        self._append_event(
            MarketEvent(
                event_type="restock",
                description=f"Restock of {quantity} units of {product.name}",
                day=self.state.game_day,
                affected_products=[product.id],
                affected_vendors=[product.vendor_id] if product.vendor_id else [],
                impact=MarketImpact(price_change=-0.5, supply_change=quantity / 100),
            )
        )
        return product

    def market_statistics(self) -> dict[str, Any]:
        products = self.state.products
        vendors = self.state.vendors
        category_popularity: dict[str, list[int]] = {}
        for product in products:
            category_popularity.setdefault(product.category, []).append(product.popularity)

        if products and vendors:
            avg_stock = sum(p.stock / p.max_stock for p in products) / len(products) * 100
            avg_relationship = sum(v.relationship for v in vendors) / len(vendors)
            health = round(
                clamp(
                    min(100, len(vendors) * 10) * 0.3
                    + min(100, len(products) * 2) * 0.3
                    + avg_stock * 0.2
                    + avg_relationship * 0.2,
                    0,
                    100,
                )
            )
        else:
            health = 100

        indexes = self.state.market_indexes
        return {
            "average_price": round(sum(p.price for p in products) / len(products), 2) if products else 0.0,
            "total_vendors": len(vendors),
            "total_products": len(products),
            "market_health": health,
            "price_index": indexes.price_index,
            "demand_index": indexes.demand_index,
            "supply_index": indexes.supply_index,
            "overall_trend": indexes.overall_trend,
            "active_trends": len(self.state.market_trends),
            "popular_categories": sorted(
                (
                    {"category": category, "popularity": round(sum(values) / len(values))}
                    for category, values in category_popularity.items()
                ),
                key=lambda entry: entry["popularity"],
                reverse=True,
            )[:5],
            "trending_products": [
                {"product_id": p.id, "name": p.name, "popularity": p.popularity}
                for p in sorted(products, key=lambda p: p.popularity, reverse=True)[:10]
            ],
        }

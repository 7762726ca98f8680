"""
Tenant engine for the propsim simulation.

This module handles tenant satisfaction drift, monthly rent collection and
neighbour interactions between tenants who share a property.
"""

from __future__ import annotations

import logging
from typing import Any

from .game_state import (
    PaymentRecord,
    Property,
    Tenant,
    TenantRelationship,
    clamp,
)
from .store import Table
from .sub_engine import SubEngine

logger = logging.getLogger(__name__)

RENT_CYCLE_DAYS = 30
RENT_REFUSAL_THRESHOLD = 30.0
RENT_STRESS_RATIO = 0.4
POSITIVE_INTERACTION_SCORE = 70
NEGATIVE_INTERACTION_SCORE = 30
INTERACTIONS_PER_DAY = 1.0


def rent_affordability(ratio: float) -> float:
    """Affordability tier for a rent-to-income ratio."""
    if ratio <= 0.3:
        return 1.0
    if ratio <= 0.4:
        return 0.8
    if ratio <= 0.5:
        return 0.6
    if ratio <= 0.6:
        return 0.4
    return 0.2


def classify_relationship(strength: float) -> str:
    if strength > 60:
        return "friend"
    if strength < -30:
        return "conflict"
    return "neutral"


class TenantEngine(SubEngine):
    """
    Tenant simulation.

    Responsibilities:
    - Per-tick satisfaction drift from property condition, rent burden and
      unresolved complaints
    - Rent collection on the tenant's monthly rent day
    - Neighbour interactions at INTERACTIONS_PER_DAY, whatever the tick size
    """

    name = "tenant"

    @property
    def tenants(self) -> Table[Tenant]:
        return Table(self.state.tenants)

    @property
    def properties(self) -> Table[Property]:
        return Table(self.state.properties)

    def on_initialize(self) -> None:
        self.subscribe("tenant:added", self._handle_tenant_added)
        self.subscribe("tenant:removed", self._handle_tenant_removed)
        self.subscribe("day:advanced", self._handle_day_advanced)

    def update(self, delta_time: float) -> None:
        self.scheduler.update(delta_time)
        self.update_satisfaction(delta_time)
        chance = INTERACTIONS_PER_DAY * delta_time
        if chance >= 1 or self.rng.random() < chance:
            self.simulate_interaction()

    # ------------------------------------------------------------------
    # Satisfaction
    # ------------------------------------------------------------------

    def satisfaction_delta(self, tenant: Tenant) -> float:
        """
        Unscaled per-day satisfaction change for a tenant.

        Args:
            tenant: Tenant to evaluate

        Returns:
            Signed change before multiplying by the tick's delta time
        """
        delta = 0.0
        tenant_properties = [p for p in self.state.properties if p.id == tenant.property_id]
        if tenant_properties:
            avg_condition = sum(p.condition for p in tenant_properties) / len(tenant_properties)
            delta += (avg_condition - 50) / 10

        ratio = tenant.financials.monthly_rent / tenant.financials.monthly_income
        if ratio > RENT_STRESS_RATIO:
            delta -= (ratio - RENT_STRESS_RATIO) * 10

        delta -= 2 * tenant.unresolved_complaints
        return delta

    def update_satisfaction(self, delta_time: float) -> None:
        for tenant in self.state.tenants:
            old_value = tenant.satisfaction
            new_value = clamp(old_value + self.satisfaction_delta(tenant) * delta_time, 0.0, 100.0)
            if new_value == old_value:
                continue
            tenant.satisfaction = new_value
            self.emit(
                "tenant:satisfaction_changed",
                {"tenant_id": tenant.id, "old_value": old_value, "new_value": new_value},
            )

    # ------------------------------------------------------------------
    # Rent
    # ------------------------------------------------------------------

    def is_rent_day(self, tenant: Tenant, game_day: int) -> bool:
        return game_day != tenant.move_in_day and game_day % RENT_CYCLE_DAYS == tenant.move_in_day % RENT_CYCLE_DAYS

    def collect_rent(self, game_day: int) -> None:
        for tenant in list(self.state.tenants):
            if not self.is_rent_day(tenant, game_day):
                continue
            amount = tenant.financials.monthly_rent
            payload = {"tenant_id": tenant.id, "amount": amount}
            if tenant.satisfaction > RENT_REFUSAL_THRESHOLD:
                tenant.financials.payment_history.append(PaymentRecord(day=game_day, amount=amount, status="paid"))
                self.emit("tenant:rent_paid", payload)
            else:
                tenant.financials.payment_history.append(PaymentRecord(day=game_day, amount=amount, status="missed"))
                tenant.financials.outstanding_balance += amount
                self.emit("tenant:rent_missed", payload)

    # ------------------------------------------------------------------
    # Interactions
    # ------------------------------------------------------------------

    def calculate_compatibility(self, first: Tenant, second: Tenant) -> float:
        score = 50.0
        shared_traits = set(first.personality_traits) & set(second.personality_traits)
        score += len(shared_traits) * 10
        score += 10 if first.lifestyle.noise_level == second.lifestyle.noise_level else -10
        for flag in ("quiet_area", "needs_parking", "pet_friendly", "smoking_allowed"):
            if getattr(first.preferences, flag) == getattr(second.preferences, flag):
                score += 5
        return clamp(score, 0.0, 100.0)

    def simulate_interaction(self) -> dict[str, Any] | None:
        """
        Pick two distinct tenants and let them interact if they are neighbours.

        Returns:
            The interaction payload when an interaction event was emitted
        """
        tenants = self.state.tenants
        if len(tenants) < 2:
            return None
        first_index = self.rng.randrange(len(tenants))
        second_index = self.rng.randrange(len(tenants) - 1)
        if second_index >= first_index:
            second_index += 1
        first, second = tenants[first_index], tenants[second_index]
        if first.property_id is None or first.property_id != second.property_id:
            return None

        score = self.calculate_compatibility(first, second)
        if score > POSITIVE_INTERACTION_SCORE:
            change = self.rng.uniform(0, 10)
            event_name = "tenant:positive_interaction"
        elif score < NEGATIVE_INTERACTION_SCORE:
            change = -self.rng.uniform(0, 15)
            event_name = "tenant:negative_interaction"
        else:
            change = self.rng.uniform(-2, 2)
            event_name = None

        self._adjust_relationship(first, second.id, change)
        self._adjust_relationship(second, first.id, change)

        if event_name is None:
            return None
        payload = {"tenant1_id": first.id, "tenant2_id": second.id, "compatibility_score": score}
        self.emit(event_name, payload)
        return payload

    def _adjust_relationship(self, tenant: Tenant, other_id: str, change: float) -> None:
        relationship = next((r for r in tenant.relationships if r.tenant_id == other_id), None)
        if relationship is None:
            relationship = TenantRelationship(tenant_id=other_id)
            tenant.relationships.append(relationship)
        relationship.strength = clamp(relationship.strength + change, -100.0, 100.0)
        relationship.interactions += 1
        relationship.last_interaction_day = self.state.game_day
        relationship.relationship_type = classify_relationship(relationship.strength)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def match_properties(self, tenant: Tenant) -> list[Property]:
        """Properties with free capacity, best match first."""
        candidates = [p for p in self.state.properties if p.has_vacancy and tenant.id not in p.tenant_ids]

        def score(prop: Property) -> float:
            ratio = prop.monthly_rent / tenant.financials.monthly_income
            return rent_affordability(ratio) * 60 + prop.condition / 100 * 40

        return sorted(candidates, key=score, reverse=True)

    def tenant_statistics(self) -> dict[str, float]:
        tenants = self.state.tenants
        capacity = sum(p.max_tenants for p in self.state.properties)
        occupied = sum(len(p.tenant_ids) for p in self.state.properties)
        return {
            "count": len(tenants),
            "average_satisfaction": (sum(t.satisfaction for t in tenants) / len(tenants)) if tenants else 0.0,
            "total_monthly_rent": sum(t.financials.monthly_rent for t in tenants),
            "occupancy_rate": (occupied / capacity) if capacity else 0.0,
        }

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def _handle_tenant_added(self, payload: dict) -> None:
        logger.info("Tenant %s moved into property %s", payload.get("tenant_id"), payload.get("property_id"))

    def _handle_tenant_removed(self, payload: dict) -> None:
        logger.info("Tenant %s moved out", payload.get("tenant_id"))

    def _handle_day_advanced(self, payload: dict) -> None:
        self.collect_rent(payload.get("day", self.state.game_day))

"""
Tests for TenantEngine.

Covers satisfaction drift, rent collection on the monthly cycle and
neighbour interactions.
"""

import pytest

from propsim.sim_manager.core import TenantEngine
from propsim.sim_manager.core.game_state import (
    Complaint,
    LifestylePattern,
    Property,
    Tenant,
    TenantFinancials,
    TenantPreferences,
)
from propsim.sim_manager.core.tenant_engine import classify_relationship, rent_affordability


def _tenant(tenant_id, property_id="p1", income=5000.0, rent=1000.0, **kwargs):
    return Tenant(
        id=tenant_id,
        name=tenant_id.title(),
        property_id=property_id,
        financials=TenantFinancials(monthly_income=income, monthly_rent=rent),
        **kwargs,
    )


@pytest.fixture
def engine(state, bus, rng):
    state.properties.append(Property(id="p1", name="Maple Court", condition=50.0, max_tenants=4))
    engine = TenantEngine(rng=rng)
    engine.initialize(state, bus)
    yield engine
    engine.cleanup()


class TestSatisfaction:
    """Test satisfaction deltas and clamping."""

    def test_condition_above_fifty_raises_satisfaction(self, engine, state):
        state.properties[0].condition = 80.0
        tenant = _tenant("alice")
        assert engine.satisfaction_delta(tenant) == pytest.approx(3.0)

    def test_high_rent_ratio_lowers_delta(self, engine):
        expensive = _tenant("a", income=2000.0, rent=1000.0)
        cheap = _tenant("b", income=5000.0, rent=1000.0)

        assert engine.satisfaction_delta(expensive) == pytest.approx(-1.0)
        assert engine.satisfaction_delta(cheap) == pytest.approx(0.0)
        assert engine.satisfaction_delta(expensive) < engine.satisfaction_delta(cheap)

    def test_unresolved_complaints_lower_delta(self, engine):
        tenant = _tenant(
            "a",
            complaints=[Complaint(subject="noise"), Complaint(subject="heating"), Complaint(subject="x", resolved=True)],
        )
        assert engine.satisfaction_delta(tenant) == pytest.approx(-4.0)

    def test_tenant_without_property_ignores_condition(self, engine):
        assert engine.satisfaction_delta(_tenant("a", property_id=None)) == 0.0

    def test_update_scales_by_delta_time_and_emits(self, engine, state, recorder):
        recorder.watch("tenant:satisfaction_changed")
        state.properties[0].condition = 100.0
        state.tenants.append(_tenant("alice", satisfaction=70.0))

        engine.update_satisfaction(0.5)

        assert state.tenants[0].satisfaction == pytest.approx(72.5)
        assert recorder.named("tenant:satisfaction_changed") == [
            {"tenant_id": "alice", "old_value": 70.0, "new_value": pytest.approx(72.5)}
        ]

    def test_no_event_when_value_unchanged(self, engine, state, recorder):
        recorder.watch("tenant:satisfaction_changed")
        state.tenants.append(_tenant("alice", satisfaction=70.0))

        engine.update_satisfaction(1.0)

        assert recorder.named("tenant:satisfaction_changed") == []

    def test_satisfaction_clamped_to_range(self, engine, state):
        state.properties[0].condition = 0.0
        state.tenants.append(_tenant("alice", satisfaction=1.0))
        state.tenants.append(_tenant("bob", property_id=None, satisfaction=99.0))
        state.properties.append(Property(id="p2", name="Palace", condition=100.0))
        state.tenants[1].property_id = "p2"

        for _ in range(10):
            engine.update_satisfaction(1.0)

        assert state.tenants[0].satisfaction == 0.0
        assert state.tenants[1].satisfaction == 100.0


class TestRent:
    """Test the monthly rent cycle."""

    def test_rent_day_cycle(self, engine):
        tenant = _tenant("a", move_in_day=1)
        assert not engine.is_rent_day(tenant, 1)
        assert not engine.is_rent_day(tenant, 15)
        assert engine.is_rent_day(tenant, 31)
        assert engine.is_rent_day(tenant, 61)

    def test_satisfied_tenant_pays(self, engine, state, recorder):
        recorder.watch("tenant:rent_paid", "tenant:rent_missed")
        state.tenants.append(_tenant("alice", rent=1200.0, move_in_day=1, satisfaction=70.0))

        engine.collect_rent(31)

        tenant = state.tenants[0]
        assert recorder.named("tenant:rent_paid") == [{"tenant_id": "alice", "amount": 1200.0}]
        assert recorder.named("tenant:rent_missed") == []
        assert [(p.day, p.status) for p in tenant.financials.payment_history] == [(31, "paid")]

    def test_unhappy_tenant_misses_rent(self, engine, state, recorder):
        recorder.watch("tenant:rent_paid", "tenant:rent_missed")
        state.tenants.append(_tenant("alice", rent=1200.0, move_in_day=1, satisfaction=30.0))

        engine.collect_rent(31)

        tenant = state.tenants[0]
        assert recorder.named("tenant:rent_missed") == [{"tenant_id": "alice", "amount": 1200.0}]
        assert tenant.financials.outstanding_balance == 1200.0
        assert tenant.financials.payment_history[0].status == "missed"

    def test_day_advanced_triggers_collection(self, engine, state, bus, recorder):
        recorder.watch("tenant:rent_paid")
        state.tenants.append(_tenant("alice", move_in_day=5))

        bus.emit("day:advanced", {"day": 35})

        assert len(recorder.named("tenant:rent_paid")) == 1


class TestInteractions:
    """Test neighbour interactions."""

    def test_compatibility_formula(self, engine):
        first = _tenant("a", personality_traits=["quiet", "tidy"], lifestyle=LifestylePattern(noise_level=3))
        second = _tenant("b", personality_traits=["tidy"], lifestyle=LifestylePattern(noise_level=7))
        second.preferences = TenantPreferences(pet_friendly=True)

        # 50 + 10 shared trait - 10 noise + 3 matching preferences * 5
        assert engine.calculate_compatibility(first, second) == 65.0

    def test_compatibility_clamped(self, engine):
        traits = ["a", "b", "c", "d", "e"]
        first = _tenant("a", personality_traits=traits)
        second = _tenant("b", personality_traits=traits)
        assert engine.calculate_compatibility(first, second) == 100.0

    def test_positive_interaction_between_neighbours(self, engine, state, recorder):
        recorder.watch("tenant:positive_interaction")
        traits = ["friendly", "tidy"]
        state.tenants.extend([_tenant("a", personality_traits=traits), _tenant("b", personality_traits=traits)])

        payload = engine.simulate_interaction()

        assert payload is not None
        assert {payload["tenant1_id"], payload["tenant2_id"]} == {"a", "b"}
        assert recorder.named("tenant:positive_interaction") == [payload]
        for tenant in state.tenants:
            assert tenant.relationships[0].interactions == 1
            assert 0 <= tenant.relationships[0].strength <= 10

    def test_negative_interaction_event(self, engine, state, recorder, monkeypatch):
        recorder.watch("tenant:negative_interaction")
        state.tenants.extend([_tenant("a"), _tenant("b")])
        monkeypatch.setattr(engine, "calculate_compatibility", lambda first, second: 10.0)

        payload = engine.simulate_interaction()

        assert payload["compatibility_score"] == 10.0
        assert len(recorder.named("tenant:negative_interaction")) == 1
        assert all(t.relationships[0].strength <= 0 for t in state.tenants)

    def test_no_interaction_across_properties(self, engine, state, recorder):
        recorder.watch("tenant:positive_interaction", "tenant:negative_interaction")
        state.tenants.extend([_tenant("a", property_id="p1"), _tenant("b", property_id="p2")])

        assert engine.simulate_interaction() is None
        assert recorder.events == []
        assert all(t.relationships == [] for t in state.tenants)

    def test_single_tenant_has_no_interaction(self, engine, state):
        state.tenants.append(_tenant("a"))
        assert engine.simulate_interaction() is None

    def test_relationship_classification(self):
        assert classify_relationship(61) == "friend"
        assert classify_relationship(-31) == "conflict"
        assert classify_relationship(0) == "neutral"

    def test_interaction_rate_independent_of_tick_size(self, engine, state):
        traits = ["friendly", "tidy"]
        state.tenants.extend([_tenant("a", personality_traits=traits), _tenant("b", personality_traits=traits)])

        # Thirty simulated days at 24 ticks per day.
        for _ in range(30 * 24):
            engine.update(1 / 24)

        interactions = state.tenants[0].relationships[0].interactions
        assert 10 <= interactions <= 55

    def test_full_day_tick_always_interacts(self, engine, state):
        state.tenants.extend([_tenant("a"), _tenant("b")])
        engine.update(1.0)
        assert state.tenants[0].relationships[0].interactions == 1


class TestQueries:
    """Test property matching and statistics."""

    def test_rent_affordability_tiers(self):
        assert [rent_affordability(r) for r in (0.3, 0.4, 0.5, 0.6, 0.9)] == [1.0, 0.8, 0.6, 0.4, 0.2]

    def test_match_properties_prefers_affordable_vacancies(self, engine, state):
        state.properties.clear()
        state.properties.extend(
            [
                Property(id="cheap", name="Cheap", monthly_rent=900.0, condition=60.0),
                Property(id="pricey", name="Pricey", monthly_rent=2900.0, condition=100.0),
                Property(id="full", name="Full", monthly_rent=500.0, tenant_ids=["someone"]),
            ]
        )
        ranked = engine.match_properties(_tenant("a", income=3000.0))
        assert [p.id for p in ranked] == ["cheap", "pricey"]

    def test_tenant_statistics(self, engine, state):
        state.tenants.extend([_tenant("a", satisfaction=60.0), _tenant("b", satisfaction=80.0)])
        state.properties[0].tenant_ids = ["a", "b"]

        stats = engine.tenant_statistics()

        assert stats["count"] == 2
        assert stats["average_satisfaction"] == 70.0
        assert stats["total_monthly_rent"] == 2000.0
        assert stats["occupancy_rate"] == 0.5


class TestLifecycle:
    """Test SubEngine subscription bookkeeping."""

    def test_cleanup_unsubscribes_handlers(self, state, bus, rng):
        engine = TenantEngine(rng=rng)
        engine.initialize(state, bus)
        assert bus.handler_count("day:advanced") == 1

        engine.cleanup()

        assert bus.handler_count("day:advanced") == 0
        assert not engine.initialized
        with pytest.raises(RuntimeError):
            _ = engine.state

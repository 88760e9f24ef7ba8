"""
Unit tests for TenantAgent

Tests cover:
- Archetype profiles and weight normalization
- The three sub-utilities and their combination
- Sampling from and updating the strategy distribution
- Dominant-strategy detection
"""

import math

import numpy as np
import pytest

from agents import ARCHETYPE_PROFILES, Archetype, TenantAgent, create_tenant
from errors import InvalidConfiguration, NoDominantStrategy


class TestTenantConstruction:
    """Profiles, normalization and invariants"""

    @pytest.mark.parametrize("archetype", [Archetype.ECO, Archetype.TRAVELLER, Archetype.COMFORT])
    def test_archetype_weights_sum_to_one(self, archetype):
        tenant = create_tenant(archetype, agent_id=0)
        total = tenant.weight_heating + tenant.weight_transport + tenant.weight_comfort
        assert total == pytest.approx(1.0, abs=1e-12)
        assert tenant.ideal_temperature == ARCHETYPE_PROFILES[archetype][0]

    def test_erratic_tenants_are_reproducible_and_normalized(self):
        first = create_tenant(Archetype.ERRATIC, 0, rng=np.random.default_rng(7))
        second = create_tenant(Archetype.ERRATIC, 0, rng=np.random.default_rng(7))

        assert first.ideal_temperature == second.ideal_temperature
        assert first.weight_transport == second.weight_transport
        assert 15.0 <= first.ideal_temperature <= 25.0
        total = first.weight_heating + first.weight_transport + first.weight_comfort
        assert total == pytest.approx(1.0, abs=1e-12)

    def test_erratic_tenant_needs_random_source(self):
        with pytest.raises(InvalidConfiguration, match="random source"):
            create_tenant(Archetype.ERRATIC, 0)

    def test_custom_weights_are_normalized(self):
        tenant = create_tenant(
            Archetype.CUSTOM, 3,
            ideal_temperature=20.0, weight_heating=2.0, weight_transport=1.0, weight_comfort=1.0,
        )
        assert tenant.weight_heating == pytest.approx(0.5)
        assert tenant.weight_transport == pytest.approx(0.25)
        assert tenant.weight_comfort == pytest.approx(0.25)

    def test_custom_tenant_needs_all_parameters(self):
        with pytest.raises(InvalidConfiguration, match="custom"):
            create_tenant(Archetype.CUSTOM, 0, ideal_temperature=20.0)

    def test_ideal_below_minimum_rejected(self):
        with pytest.raises(InvalidConfiguration, match="ideal_temperature"):
            TenantAgent(0, Archetype.CUSTOM, 14.0, 1.0, 0.0, 0.0)

    def test_negative_weight_rejected(self):
        with pytest.raises(InvalidConfiguration, match="negative"):
            TenantAgent(0, Archetype.CUSTOM, 20.0, -0.1, 0.5, 0.6)

    def test_all_zero_weights_rejected(self):
        with pytest.raises(InvalidConfiguration, match="positive"):
            TenantAgent(0, Archetype.CUSTOM, 20.0, 0.0, 0.0, 0.0)


class TestUtility:
    """Comfort, heating and transport sub-utilities"""

    def test_comfort_peaks_at_ideal_temperature(self):
        tenant = create_tenant(Archetype.COMFORT, 0)
        assert tenant.utility(22.0, 5.0, 0.0) == pytest.approx(1.0)
        assert tenant.utility(20.0, 5.0, 0.0) < 1.0
        # normalized gap of 1 at the minimum temperature
        assert tenant.comfort_utility(15.0) == pytest.approx(math.exp(-1 / 0.05))

    def test_heating_utility_is_one_when_free(self):
        tenant = create_tenant(Archetype.ECO, 0)
        assert tenant.utility(17.0, 0.0, 0.0) == pytest.approx(1.0)
        assert tenant.utility(17.0, 2.0, 0.0) == pytest.approx(math.exp(-2.0))

    def test_transport_utility_spans_zero_to_one(self):
        tenant = create_tenant(Archetype.CUSTOM, 0, ideal_temperature=22.0,
                               weight_heating=0.0, weight_transport=1.0, weight_comfort=0.0)
        assert tenant.utility(20.0, 3.0, 0.0) == pytest.approx(0.0)
        assert tenant.utility(20.0, 3.0, 1.0) == pytest.approx(1.0)
        assert tenant.utility(20.0, 3.0, 0.2) < tenant.utility(20.0, 3.0, 0.4)

    def test_utility_accepts_arrays(self):
        tenant = create_tenant(Archetype.TRAVELLER, 0)
        temperatures = np.array([15.0, 18.5, 22.0])
        values = tenant.utility(temperatures, np.full(3, 2.0), np.zeros(3))
        assert values.shape == (3,)
        assert values[0] < values[1] < values[2]

    def test_ideal_at_minimum_is_always_comfortable(self):
        tenant = TenantAgent(0, Archetype.CUSTOM, 15.0, 0.0, 0.0, 1.0)
        assert tenant.utility(15.0, 2.0, 0.0) == pytest.approx(1.0)

    def test_temperature_for_strategy_interpolates(self):
        tenant = create_tenant(Archetype.TRAVELLER, 0)
        assert tenant.temperature_for_strategy(0, 10) == 15.0
        assert tenant.temperature_for_strategy(9, 10) == pytest.approx(22.0)
        assert tenant.temperature_for_strategy(3, 4) == pytest.approx(22.0)


class TestStrategyDistribution:
    """Linear reward-inaction bookkeeping"""

    def test_reset_is_uniform(self):
        tenant = create_tenant(Archetype.ECO, 0)
        tenant.reset_distribution(4)
        assert tenant.strategy_count == 4
        assert np.allclose(tenant.strategy_distribution, 0.25)

    def test_inverse_cdf_sampling(self):
        tenant = create_tenant(Archetype.ECO, 0)
        tenant.reset_distribution(4)
        assert tenant.strategy_for_probability(0.0) == 0
        assert tenant.strategy_for_probability(0.3) == 1
        assert tenant.strategy_for_probability(0.99) == 3
        # cumulative mass never exceeds 1.0, so the last index is the fallback
        assert tenant.strategy_for_probability(1.0) == 3

    def test_update_conserves_probability_mass(self):
        tenant = create_tenant(Archetype.ECO, 0)
        tenant.reset_distribution(4)

        new_probability = tenant.update_distribution(1, 0.8, 0.1, 0.0)

        assert new_probability == pytest.approx(0.25 + 0.08 * 0.75)
        assert tenant.strategy_distribution[0] == pytest.approx(0.25 * 0.92)
        assert tenant.strategy_distribution.sum() == pytest.approx(1.0, abs=1e-12)

    def test_update_conserves_mass_over_many_rounds(self):
        tenant = create_tenant(Archetype.ECO, 0)
        tenant.reset_distribution(5)
        rng = np.random.default_rng(3)
        for _ in range(500):
            tenant.update_distribution(int(rng.integers(0, 5)), float(rng.random()), 0.2, 0.0)
        assert tenant.strategy_distribution.sum() == pytest.approx(1.0, abs=1e-9)
        assert np.all(tenant.strategy_distribution >= 0)

    def test_update_is_noop_when_utility_drops(self):
        tenant = create_tenant(Archetype.ECO, 0)
        tenant.reset_distribution(3)
        tenant.update_distribution(0, 0.9, 0.5, 0.0)
        before = tenant.strategy_distribution.copy()

        returned = tenant.update_distribution(2, 0.3, 0.5, 0.4)

        assert np.array_equal(tenant.strategy_distribution, before)
        assert returned == before[2]

    def test_dominant_strategy_after_concentration(self):
        tenant = create_tenant(Archetype.ECO, 0)
        tenant.reset_distribution(4)
        for _ in range(30):
            tenant.update_distribution(2, 1.0, 0.5, 0.0)
        assert tenant.dominant_strategy(0.001) == 2
        assert tenant.expected_temperature() == pytest.approx(tenant.temperature_for_strategy(2, 4), abs=1e-3)

    def test_no_dominant_strategy_on_uniform_distribution(self):
        tenant = create_tenant(Archetype.ECO, 0)
        tenant.reset_distribution(4)
        with pytest.raises(NoDominantStrategy):
            tenant.dominant_strategy(0.001)

    def test_to_dict_round_trips_basic_types(self):
        tenant = create_tenant(Archetype.TRAVELLER, 5)
        tenant.reset_distribution(2)
        data = tenant.to_dict()
        assert data["agent_id"] == 5
        assert data["archetype"] == "traveller"
        assert data["strategy_distribution"] == [0.5, 0.5]

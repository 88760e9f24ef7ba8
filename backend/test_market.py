"""
Test the complete market: population construction, analysis with each
method, and the manager's cost.

Usage:
    pytest test_market.py
"""

import numpy as np
import pytest

from agents import Archetype
from billing import SubsidyPolicy
from equilibrium import SolverMethod
from errors import ConvergenceExhausted, InvalidConfiguration
from market import HousingMarket


def small_market(**kwargs):
    return HousingMarket.from_population(
        {Archetype.ECO: 2, Archetype.TRAVELLER: 1},
        strategy_count=10,
        external_temperature=12.5,
        **kwargs,
    )


def test_end_to_end_best_response_without_subsidy():
    """Two eco tenants and one traveller, no subsidy."""
    market = small_market(policy=SubsidyPolicy.NONE, method=SolverMethod.BEST_RESPONSE)

    result = market.analyse()

    print(f"Strategies: {result.strategies}")
    print(f"Temperatures: {market.chosen_temperatures}")
    print(f"Owner cost: {market.owner_cost():.4f}")

    eco_a, eco_b, traveller = result.strategies
    assert eco_a < traveller and eco_b < traveller
    assert result.strategies == [0, 0, 9]
    assert market.chosen_temperatures == pytest.approx([15.0, 15.0, 22.0])
    # tariff: 2 * 3 + (14.5 - 3 * 3)
    assert market.owner_cost() == pytest.approx(11.5)
    assert market.total_consumption() == pytest.approx(14.5)


def test_brute_force_matches_best_response_end_to_end():
    market = small_market(method=SolverMethod.BRUTE_FORCE)
    market.analyse()
    assert market.last_result.strategies == [0, 0, 9]
    assert market.owner_cost() == pytest.approx(11.5)


def test_population_order():
    market = HousingMarket.from_population(
        {Archetype.COMFORT: 1, Archetype.ECO: 1, Archetype.ERRATIC: 1, Archetype.TRAVELLER: 1},
        custom_agents=[{
            "ideal_temperature": 19.0,
            "weight_heating": 1.0,
            "weight_transport": 1.0,
            "weight_comfort": 1.0,
        }],
        seed=5,
    )
    assert [a.archetype for a in market.agents] == [
        Archetype.ECO, Archetype.TRAVELLER, Archetype.COMFORT, Archetype.ERRATIC, Archetype.CUSTOM,
    ]
    assert [a.agent_id for a in market.agents] == [0, 1, 2, 3, 4]
    assert market.strategy_count == 10
    assert market.external_temperature == 12.5


def test_seeded_populations_are_reproducible():
    first = HousingMarket.from_population({Archetype.ERRATIC: 3}, seed=99)
    second = HousingMarket.from_population({Archetype.ERRATIC: 3}, seed=99)
    assert [a.ideal_temperature for a in first.agents] == [a.ideal_temperature for a in second.agents]


@pytest.mark.parametrize("strategy_count", [1, 0, -3])
def test_too_few_strategies_rejected(strategy_count):
    with pytest.raises(InvalidConfiguration, match="at least 2 strategies"):
        HousingMarket.from_population({Archetype.ECO: 1}, strategy_count=strategy_count)


def test_non_integer_strategy_count_rejected():
    with pytest.raises(InvalidConfiguration, match="integer"):
        HousingMarket.from_population({Archetype.ECO: 1}, strategy_count=2.5)


def test_negative_counts_rejected():
    with pytest.raises(InvalidConfiguration, match="-1"):
        HousingMarket.from_population({Archetype.ECO: 2, Archetype.TRAVELLER: -1})


def test_empty_population_rejected():
    with pytest.raises(InvalidConfiguration, match="at least one tenant"):
        HousingMarket.from_population({Archetype.ECO: 0})


def test_custom_archetype_cannot_be_counted():
    with pytest.raises(InvalidConfiguration, match="custom"):
        HousingMarket.from_population({Archetype.CUSTOM: 1})


def test_owner_cost_requires_analysis():
    market = small_market()
    with pytest.raises(RuntimeError):
        market.owner_cost()


def test_learned_policy_needs_a_curve():
    market = small_market()
    with pytest.raises(InvalidConfiguration):
        market.policy = SubsidyPolicy.LEARNED


def test_test_policy_adds_subsidy_to_owner_cost():
    market = small_market(policy=SubsidyPolicy.TEST)
    market.analyse()
    temperatures = market.chosen_temperatures
    tariff = market.billing.collective_price(sum(t - 12.5 for t in temperatures))
    subsidies = sum(a.weight_transport * np.exp(15.0 - t) for a, t in zip(market.agents, temperatures))
    assert market.owner_cost() == pytest.approx(tariff + subsidies)


def test_lri_records_expected_temperatures():
    market = HousingMarket.from_population(
        {Archetype.COMFORT: 2}, strategy_count=3, method=SolverMethod.LRI, seed=3,
    )
    result = market.analyse()
    assert result.strategies == [2, 2]
    assert market.chosen_temperatures == pytest.approx([22.0, 22.0], abs=0.05)


def test_failed_analysis_keeps_previous_temperatures():
    market = HousingMarket.from_population(
        {},
        custom_agents=[{
            "ideal_temperature": 15.8,
            "weight_heating": 0.98,
            "weight_transport": 0.0,
            "weight_comfort": 0.02,
        }] * 2,
        strategy_count=2,
        method=SolverMethod.BRUTE_FORCE,
    )
    market.analyse()
    assert market.last_result.strategies == [1, 0]
    before = list(market.chosen_temperatures)

    with pytest.raises(ConvergenceExhausted):
        market.analyse(SolverMethod.BEST_RESPONSE)
    assert market.chosen_temperatures == before


def test_market_metrics_snapshot():
    market = small_market()
    assert "owner_cost" not in market.get_market_metrics()

    market.analyse()
    metrics = market.get_market_metrics()
    assert metrics["agent_count"] == 3
    assert metrics["archetypes"] == ["eco", "eco", "traveller"]
    assert metrics["owner_cost"] == pytest.approx(11.5)
    assert metrics["individual_bill"] == pytest.approx(2.0 + 14.5 / 3 - 3.0)
    assert metrics["result"]["strategies"] == [0, 0, 9]

"""
Collective heating bill and manager cost.

The building pays one tariff for the tenants' total consumption. Tenants
split it evenly: a flat minimum fee while average consumption stays under
the baseline, plus the excess once it goes above. The manager pays the
same tariff on the total and, depending on the subsidy policy, a
transport reduction to every tenant.
"""

import math
from enum import Enum
from typing import List, Optional, Sequence

import numpy as np

from agents import TenantAgent
from config import CONFIG, MarketConfig
from errors import InvalidConfiguration


class SubsidyPolicy(str, Enum):
    """How the manager maps a tenant's temperature to a transport reduction."""
    NONE = "none"
    LEARNED = "learned"  # Step curve found by the Monte-Carlo search
    TEST = "test"  # Closed-form exp(min_temperature - temperature)


class BillingModel:
    """
    Consumption, bills and owner cost for a fixed population.

    Strategy vectors hold one strategy index per agent, in population
    order.
    """

    def __init__(
        self,
        agents: List[TenantAgent],
        strategy_count: int,
        external_temperature: float,
        policy: SubsidyPolicy = SubsidyPolicy.NONE,
        reduction_curve: Optional[Sequence[float]] = None,
        config: MarketConfig = CONFIG,
    ):
        self.agents = agents
        self.strategy_count = strategy_count
        self.external_temperature = external_temperature
        self.config = config
        self._policy = SubsidyPolicy.NONE
        self._reduction_curve: Optional[np.ndarray] = None
        if reduction_curve is not None:
            self.reduction_curve = reduction_curve
        self.policy = policy

    # ------------------------------------------------------------------
    # Policy state
    # ------------------------------------------------------------------

    @property
    def policy(self) -> SubsidyPolicy:
        return self._policy

    @policy.setter
    def policy(self, policy: SubsidyPolicy) -> None:
        policy = SubsidyPolicy(policy)
        if policy is SubsidyPolicy.LEARNED and self._reduction_curve is None:
            raise InvalidConfiguration("the learned policy needs a reduction curve")
        self._policy = policy

    @property
    def reduction_curve(self) -> Optional[np.ndarray]:
        return self._reduction_curve

    @reduction_curve.setter
    def reduction_curve(self, curve: Sequence[float]) -> None:
        curve = np.asarray(curve, dtype=np.float64)
        step_count = self.config.curve.step_count
        if curve.shape != (step_count,):
            raise InvalidConfiguration(
                f"reduction curve must have {step_count} steps, got shape {curve.shape}"
            )
        if np.any(curve < 0) or np.any(curve > 1):
            raise InvalidConfiguration("reduction curve values must lie in [0, 1]")
        if np.any(np.diff(curve) > 0):
            raise InvalidConfiguration("reduction curve must be non-increasing")
        self._reduction_curve = curve

    def restore(self, policy: SubsidyPolicy, reduction_curve: Optional[np.ndarray]) -> None:
        """Reinstate a policy and curve previously read from this model."""
        self._reduction_curve = reduction_curve
        self._policy = policy

    @property
    def agent_count(self) -> int:
        return len(self.agents)

    # ------------------------------------------------------------------
    # Consumption and bills
    # ------------------------------------------------------------------

    def individual_consumption(self, temperature):
        """Degrees heated above the outside temperature."""
        return temperature - self.external_temperature

    def strategy_temperature(self, agent_index: int, strategy: int) -> float:
        return self.agents[agent_index].temperature_for_strategy(strategy, self.strategy_count)

    def temperatures(self, strategies: Sequence[int]) -> List[float]:
        return [self.strategy_temperature(i, s) for i, s in enumerate(strategies)]

    def bill_for_average(self, average_consumption):
        """Per-tenant bill for an average consumption (scalar or array)."""
        baseline = self.config.billing.consumption_baseline
        fee = self.config.billing.minimum_fee
        return np.where(
            average_consumption < baseline,
            fee,
            fee + (average_consumption - baseline),
        )

    def individual_bill(self, strategies: Sequence[int]) -> float:
        """What every tenant pays when the population plays `strategies`."""
        total = sum(self.individual_consumption(t) for t in self.temperatures(strategies))
        return float(self.bill_for_average(total / self.agent_count))

    def collective_price(self, total_consumption: float) -> float:
        """Tariff on the building's total consumption."""
        n = self.agent_count
        baseline = self.config.billing.consumption_baseline * n
        price = self.config.billing.minimum_fee * n
        if total_consumption < baseline:
            return price
        return price + total_consumption - baseline

    # ------------------------------------------------------------------
    # Subsidy and owner cost
    # ------------------------------------------------------------------

    def subsidy(self, temperature: float) -> float:
        """Transport reduction granted for heating at `temperature`."""
        thermal = self.config.thermal
        if self._policy is SubsidyPolicy.NONE:
            return 0.0
        if self._policy is SubsidyPolicy.LEARNED:
            step_count = self.config.curve.step_count
            position = step_count * (temperature - thermal.min_temperature) / (
                thermal.max_temperature - thermal.min_temperature
            )
            index = min(max(int(math.floor(position)), 0), step_count - 1)
            return float(self._reduction_curve[index])
        return math.exp(thermal.min_temperature - temperature)

    def owner_cost(self, temperatures: Sequence[float]) -> float:
        """Tariff on total consumption plus the reductions paid out."""
        total = sum(self.individual_consumption(t) for t in temperatures)
        cost = self.collective_price(total)
        for agent, temperature in zip(self.agents, temperatures):
            cost += agent.weight_transport * self.subsidy(temperature)
        return cost

    def owner_cost_for_strategies(self, strategies: Sequence[int]) -> float:
        return self.owner_cost(self.temperatures(strategies))

    # ------------------------------------------------------------------
    # Lookup tables (agents x strategies) for the solvers
    # ------------------------------------------------------------------

    def strategy_temperatures(self) -> np.ndarray:
        return np.array([
            [agent.temperature_for_strategy(k, self.strategy_count) for k in range(self.strategy_count)]
            for agent in self.agents
        ], dtype=np.float64)

    def strategy_consumptions(self) -> np.ndarray:
        return self.individual_consumption(self.strategy_temperatures())

    def strategy_subsidies(self) -> np.ndarray:
        temperatures = self.strategy_temperatures()
        return np.array([
            [self.subsidy(t) for t in row] for row in temperatures
        ], dtype=np.float64)

"""
Housing Market Coordinator

This module ties the tenants, the billing model and the equilibrium
solver together. A HousingMarket is built once from a population
composition and can then be analysed repeatedly under different
policies, subsidy curves and solver methods.
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from agents import Archetype, TenantAgent, create_tenant
from billing import BillingModel, SubsidyPolicy
from config import CONFIG, MarketConfig
from equilibrium import EquilibriumResult, EquilibriumSolver, SolverMethod
from errors import InvalidConfiguration

logger = logging.getLogger(__name__)

# Population order used when building a market from archetype counts
POPULATION_ORDER = (Archetype.ECO, Archetype.TRAVELLER, Archetype.COMFORT, Archetype.ERRATIC)


class HousingMarket:
    """
    One building: a fixed population sharing a heating bill.

    analyse() runs the configured solver and records each tenant's chosen
    temperature; owner_cost() prices that outcome for the manager.
    """

    def __init__(
        self,
        agents: List[TenantAgent],
        strategy_count: Optional[int] = None,
        external_temperature: Optional[float] = None,
        policy: SubsidyPolicy = SubsidyPolicy.NONE,
        method: SolverMethod = SolverMethod.BEST_RESPONSE,
        reduction_curve: Optional[Sequence[float]] = None,
        config: MarketConfig = CONFIG,
        rng: Optional[np.random.Generator] = None,
    ):
        """
        Initialize the market with pre-constructed agents.

        Args:
            agents: tenants in population order
            strategy_count: heating levels available to every tenant (>= 2)
            external_temperature: outside temperature consumption is measured from
            policy: subsidy policy of the manager
            method: equilibrium search analyse() runs
            reduction_curve: step curve for the learned policy
            config: tunables for billing, solvers and curves
            rng: shared random source (LRI sampling, Monte-Carlo seeds)
        """
        if strategy_count is None:
            strategy_count = config.defaults.strategy_count
        if external_temperature is None:
            external_temperature = config.defaults.external_temperature

        if isinstance(strategy_count, bool) or not isinstance(strategy_count, (int, np.integer)):
            raise InvalidConfiguration(f"strategy_count must be an integer, got {strategy_count!r}")
        if strategy_count < 2:
            raise InvalidConfiguration(f"a market needs at least 2 strategies, got {strategy_count}")
        if not agents:
            raise InvalidConfiguration("a market needs at least one tenant")

        self.agents = agents
        self.strategy_count = int(strategy_count)
        self.config = config
        self.rng = rng if rng is not None else np.random.default_rng()
        self.method = SolverMethod(method)

        self.billing = BillingModel(
            agents=agents,
            strategy_count=self.strategy_count,
            external_temperature=external_temperature,
            policy=policy,
            reduction_curve=reduction_curve,
            config=config,
        )
        self.solver = EquilibriumSolver(self.billing, config=config, rng=self.rng)

        for agent in self.agents:
            agent.reset_distribution(self.strategy_count)

        self.chosen_temperatures: Optional[List[float]] = None
        self.last_result: Optional[EquilibriumResult] = None

    @classmethod
    def from_population(
        cls,
        counts: Dict[Archetype, int],
        custom_agents: Iterable[Dict[str, float]] = (),
        config: MarketConfig = CONFIG,
        seed: Optional[int] = None,
        **kwargs,
    ) -> "HousingMarket":
        """
        Build a market from archetype counts.

        Args:
            counts: archetype -> number of tenants (missing archetypes count 0)
            custom_agents: dicts with ideal_temperature, weight_heating,
                weight_transport and weight_comfort, appended last
            config: tunables
            seed: seed of the shared random source
            **kwargs: forwarded to __init__

        Raises:
            InvalidConfiguration: negative counts or an empty population
        """
        counts = {Archetype(k): v for k, v in counts.items()}
        for archetype, count in counts.items():
            if archetype not in POPULATION_ORDER:
                raise InvalidConfiguration(f"{archetype.value} tenants cannot be counted, pass them as custom agents")
            if count < 0:
                raise InvalidConfiguration(f"cannot have {count} {archetype.value} tenants")

        rng = kwargs.pop("rng", None)
        if rng is None:
            rng = np.random.default_rng(seed)

        agents: List[TenantAgent] = []
        for archetype in POPULATION_ORDER:
            for _ in range(counts.get(archetype, 0)):
                agents.append(create_tenant(archetype, len(agents), rng=rng, thermal=config.thermal))
        for params in custom_agents:
            agents.append(create_tenant(Archetype.CUSTOM, len(agents), thermal=config.thermal, **params))

        logger.debug("Built population of %d tenants", len(agents))
        return cls(agents, config=config, rng=rng, **kwargs)

    # ------------------------------------------------------------------
    # Policy pass-through
    # ------------------------------------------------------------------

    @property
    def policy(self) -> SubsidyPolicy:
        return self.billing.policy

    @policy.setter
    def policy(self, policy: SubsidyPolicy) -> None:
        self.billing.policy = policy

    @property
    def reduction_curve(self) -> Optional[np.ndarray]:
        return self.billing.reduction_curve

    @reduction_curve.setter
    def reduction_curve(self, curve: Sequence[float]) -> None:
        self.billing.reduction_curve = curve

    @property
    def external_temperature(self) -> float:
        return self.billing.external_temperature

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def analyse(self, method: Optional[SolverMethod] = None) -> EquilibriumResult:
        """
        Search for an equilibrium and record the tenants' temperatures.

        LRI records the expected temperature under each tenant's final
        distribution; the other methods record the pure profile.

        Raises:
            ConvergenceExhausted: the search failed; the previous
                temperatures are left untouched
        """
        method = SolverMethod(method) if method is not None else self.method
        result = self.solver.solve(method)

        if method is SolverMethod.LRI:
            self.chosen_temperatures = [agent.expected_temperature() for agent in self.agents]
        else:
            self.chosen_temperatures = self.billing.temperatures(result.strategies)
        self.last_result = result
        return result

    def owner_cost(self) -> float:
        """Manager's cost for the most recent analysis."""
        if self.chosen_temperatures is None:
            raise RuntimeError("analyse() must succeed before owner_cost() is available")
        if self.last_result is not None and self.last_result.method is not SolverMethod.LRI:
            return self.billing.owner_cost_for_strategies(self.last_result.strategies)
        return self.billing.owner_cost(self.chosen_temperatures)

    def save_state(self) -> Tuple:
        """Policy, curve and latest outcome, for restore_state()."""
        return (self.policy, self.reduction_curve, self.chosen_temperatures, self.last_result)

    def restore_state(self, state: Tuple) -> None:
        policy, curve, temperatures, result = state
        self.billing.restore(policy, curve)
        self.chosen_temperatures = temperatures
        self.last_result = result

    def total_consumption(self) -> float:
        if self.chosen_temperatures is None:
            raise RuntimeError("analyse() must succeed before total_consumption() is available")
        return float(sum(self.billing.individual_consumption(t) for t in self.chosen_temperatures))

    def get_market_metrics(self) -> Dict[str, object]:
        """Snapshot of the latest outcome for reporting collaborators."""
        metrics: Dict[str, object] = {
            "agent_count": len(self.agents),
            "strategy_count": self.strategy_count,
            "external_temperature": self.external_temperature,
            "policy": self.policy.value,
            "method": self.method.value,
            "archetypes": [agent.archetype.value for agent in self.agents],
        }
        if self.chosen_temperatures is not None:
            metrics["chosen_temperatures"] = list(self.chosen_temperatures)
            metrics["total_consumption"] = self.total_consumption()
            metrics["individual_bill"] = float(self.billing.bill_for_average(
                metrics["total_consumption"] / len(self.agents)
            ))
            metrics["owner_cost"] = self.owner_cost()
        if self.last_result is not None:
            metrics["result"] = self.last_result.to_dict()
        return metrics

"""
Equilibrium Search Engine

Three interchangeable searches for a pure Nash equilibrium of the
heating game:

- exhaustive enumeration of every joint profile (exact, exponential),
- simultaneous best-response iteration (fast, may cycle),
- linear reward-inaction learning with validation and restarts.

Every search is synchronous; the only randomness comes from the numpy
Generator handed to the solver.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

import numpy as np

from billing import BillingModel
from config import CONFIG, MarketConfig
from errors import ConvergenceExhausted, InvalidConfiguration

logger = logging.getLogger(__name__)


class SolverMethod(str, Enum):
    """Which search analyse() runs."""
    BRUTE_FORCE = "brute_force"
    BEST_RESPONSE = "best_response"
    LRI = "lri"


@dataclass
class EquilibriumResult:
    """Outcome of one successful search."""
    strategies: List[int]
    method: SolverMethod
    rounds: int = 0  # best-response rounds or LRI rounds, 0 for brute force
    attempts: int = 1  # LRI restarts + 1
    precision: Optional[float] = None  # final LRI precision
    learning_rate: Optional[float] = None  # final LRI learning rate
    profiles_scanned: int = 0  # brute force only

    def to_dict(self) -> dict:
        return {
            "strategies": list(self.strategies),
            "method": self.method.value,
            "rounds": self.rounds,
            "attempts": self.attempts,
            "precision": self.precision,
            "learning_rate": self.learning_rate,
            "profiles_scanned": self.profiles_scanned,
        }


def first_pure_equilibrium(payoffs: np.ndarray, strategy_count: int) -> Optional[List[int]]:
    """
    Scan a full payoff table for the first pure equilibrium.

    Args:
        payoffs: array of shape (strategy_count ** agent_count, agent_count).
            Row i is the profile whose agent-j strategy is the j-th base
            `strategy_count` digit of i (agent 0 is the fastest digit).
        strategy_count: number of strategies per agent

    Returns:
        The strategy vector of the lowest-index row where no agent can
        strictly improve by switching alone, or None.
    """
    profile_count, agent_count = payoffs.shape
    if profile_count != strategy_count ** agent_count:
        raise InvalidConfiguration(
            f"payoff table has {profile_count} rows, expected {strategy_count ** agent_count}"
        )

    stable = np.ones(profile_count, dtype=bool)
    for j in range(agent_count):
        stride = strategy_count ** j
        # axis 1 walks agent j's strategy with everyone else held fixed
        column = payoffs[:, j].reshape(-1, strategy_count, stride)
        best = column.max(axis=1, keepdims=True)
        stable &= (column >= best).reshape(-1)

    hits = np.flatnonzero(stable)
    if hits.size == 0:
        return None
    index = int(hits[0])
    return [(index // strategy_count ** j) % strategy_count for j in range(agent_count)]


class EquilibriumSolver:
    """
    Finds joint strategies that are stable under unilateral deviation.

    The solver reads the population, policy and curve from the billing
    model at call time, so the same solver can be reused across the
    Monte-Carlo trials.
    """

    def __init__(
        self,
        billing: BillingModel,
        config: MarketConfig = CONFIG,
        rng: Optional[np.random.Generator] = None,
    ):
        self.billing = billing
        self.config = config
        self.rng = rng if rng is not None else np.random.default_rng()

    @property
    def agents(self):
        return self.billing.agents

    def solve(self, method: SolverMethod) -> EquilibriumResult:
        """Run one search; raises ConvergenceExhausted when nothing is found."""
        method = SolverMethod(method)
        if method is SolverMethod.BRUTE_FORCE:
            result = self.brute_force()
            if result is None:
                raise ConvergenceExhausted("no pure equilibrium exists among the enumerated profiles")
            return result
        if method is SolverMethod.LRI:
            return self.stochastic_learning()
        return self.best_response()

    # ------------------------------------------------------------------
    # Deviation test
    # ------------------------------------------------------------------

    def is_pure_equilibrium(self, strategies: Sequence[int]) -> bool:
        """
        Single-deviation test with the bill recomputed from scratch for
        every alternative strategy.
        """
        strategies = list(strategies)
        bill = self.billing.individual_bill(strategies)
        for i, agent in enumerate(self.agents):
            current = self._agent_utility(i, strategies[i], bill)
            for k in range(self.billing.strategy_count):
                if k == strategies[i]:
                    continue
                deviation = strategies.copy()
                deviation[i] = k
                if self._agent_utility(i, k, self.billing.individual_bill(deviation)) > current:
                    return False
        return True

    def _agent_utility(self, agent_index: int, strategy: int, bill: float) -> float:
        temperature = self.billing.strategy_temperature(agent_index, strategy)
        return float(self.agents[agent_index].utility(
            temperature, bill, self.billing.subsidy(temperature)
        ))

    # ------------------------------------------------------------------
    # Exhaustive enumeration
    # ------------------------------------------------------------------

    def brute_force(self) -> Optional[EquilibriumResult]:
        """
        Evaluate every joint profile and return the first pure equilibrium
        in counter order, or None if there is none.
        """
        n = self.billing.strategy_count
        m = self.billing.agent_count
        profile_count = n ** m
        limit = self.config.solver.brute_force_max_profiles
        if profile_count > limit:
            raise InvalidConfiguration(
                f"exhaustive search over {profile_count} profiles exceeds the limit of {limit}"
            )

        payoffs = self.payoff_table()
        logger.debug("Enumerated %d profiles for %d agents", profile_count, m)
        strategies = first_pure_equilibrium(payoffs, n)
        if strategies is None:
            logger.info("Exhaustive search found no pure equilibrium")
            return None
        return EquilibriumResult(
            strategies=strategies,
            method=SolverMethod.BRUTE_FORCE,
            profiles_scanned=profile_count,
        )

    def payoff_table(self) -> np.ndarray:
        """
        Utility of every agent under every joint profile.

        Rows follow the counter order of first_pure_equilibrium; the bill
        of each row is computed from that row's full consumption.
        """
        n = self.billing.strategy_count
        m = self.billing.agent_count
        temperatures, consumptions, subsidies = self._tables()

        index = np.arange(n ** m)
        digits = (index[:, None] // n ** np.arange(m)) % n  # (profiles, agents)
        agent_axis = np.arange(m)[None, :]

        profile_temperatures = temperatures[agent_axis, digits]
        profile_subsidies = subsidies[agent_axis, digits]
        average = consumptions[agent_axis, digits].sum(axis=1) / m
        bills = self.billing.bill_for_average(average)

        payoffs = np.empty((n ** m, m), dtype=np.float64)
        for j, agent in enumerate(self.agents):
            payoffs[:, j] = agent.utility(profile_temperatures[:, j], bills, profile_subsidies[:, j])
        return payoffs

    # ------------------------------------------------------------------
    # Best response
    # ------------------------------------------------------------------

    def _tables(self):
        return (
            self.billing.strategy_temperatures(),
            self.billing.strategy_consumptions(),
            self.billing.strategy_subsidies(),
        )

    def best_responses(self, strategies: Sequence[int], tables=None) -> List[int]:
        """
        Every agent's best reply to the others' current strategies.

        Only the replying agent's term of the total consumption changes;
        ties keep the current strategy.
        """
        temperatures, consumptions, subsidies = tables if tables is not None else self._tables()
        m = self.billing.agent_count
        total = sum(consumptions[i, s] for i, s in enumerate(strategies))

        replies = list(strategies)
        for i, agent in enumerate(self.agents):
            average = (total - consumptions[i, strategies[i]] + consumptions[i]) / m
            utilities = agent.utility(temperatures[i], self.billing.bill_for_average(average), subsidies[i])
            best_utility = utilities[strategies[i]]
            for k, utility in enumerate(utilities):
                if utility > best_utility:
                    replies[i] = k
                    best_utility = utility
        return replies

    def best_response(
        self,
        initial: Optional[Sequence[int]] = None,
        iterations: Optional[int] = None,
    ) -> EquilibriumResult:
        """
        Iterate simultaneous best responses until nobody wants to move.

        Args:
            initial: starting profile (all zeros by default)
            iterations: round budget (config value by default)

        Raises:
            ConvergenceExhausted: the budget ran out before a fixed point
        """
        current = list(initial) if initial is not None else [0] * self.billing.agent_count
        remaining = iterations if iterations is not None else self.config.solver.best_response_iterations
        tables = self._tables()
        rounds = 0

        while remaining > 0:
            rounds += 1
            replies = self.best_responses(current, tables)
            if replies == current:
                logger.debug("Best response converged after %d rounds", rounds)
                return EquilibriumResult(strategies=current, method=SolverMethod.BEST_RESPONSE, rounds=rounds)
            current = replies
            remaining -= 1

        raise ConvergenceExhausted(
            f"best response found no fixed point within {rounds} rounds"
        )

    # ------------------------------------------------------------------
    # Linear reward-inaction
    # ------------------------------------------------------------------

    def _learning_round(self, learning_rate: float, previous: List[float], precision: float) -> bool:
        """
        One LRI round: sample, pay out, update.

        Returns True when every agent's sampled strategy now has
        probability above 1 - precision.
        """
        strategies = [agent.strategy_for_probability(self.rng.random()) for agent in self.agents]
        bill = self.billing.individual_bill(strategies)

        converged = True
        for i, agent in enumerate(self.agents):
            achieved = self._agent_utility(i, strategies[i], bill)
            probability = agent.update_distribution(strategies[i], achieved, learning_rate, previous[i])
            if probability <= 1.0 - precision:
                converged = False
            previous[i] = achieved
        return converged

    def stochastic_learning(self) -> EquilibriumResult:
        """
        Learn a pure equilibrium with linear reward-inaction.

        Each attempt starts from uniform distributions and runs rounds
        until every distribution has concentrated. The concentrated
        profile is accepted only if it passes the deviation test;
        otherwise the learning rate is halved and a new attempt starts.
        Once the learning rate reaches the floor, the precision is divided
        by ten and the learning rate reset.

        Raises:
            ConvergenceExhausted: lri_max_rounds was reached
        """
        solver_config = self.config.solver
        precision = solver_config.lri_precision
        learning_rate = solver_config.lri_learning_rate
        max_rounds = solver_config.lri_max_rounds
        n = self.billing.strategy_count

        rounds = 0
        attempts = 0
        while True:
            attempts += 1
            for agent in self.agents:
                agent.reset_distribution(n)
            previous = [0.0] * self.billing.agent_count

            converged = False
            while not converged:
                if max_rounds is not None and rounds >= max_rounds:
                    raise ConvergenceExhausted(
                        f"LRI did not settle within {max_rounds} rounds ({attempts} attempts)"
                    )
                rounds += 1
                converged = self._learning_round(learning_rate, previous, precision)

            candidate = [agent.dominant_strategy(precision) for agent in self.agents]
            if self.is_pure_equilibrium(candidate):
                logger.debug("LRI accepted %s after %d rounds, %d attempts", candidate, rounds, attempts)
                return EquilibriumResult(
                    strategies=candidate,
                    method=SolverMethod.LRI,
                    rounds=rounds,
                    attempts=attempts,
                    precision=precision,
                    learning_rate=learning_rate,
                )

            learning_rate /= 2
            logger.debug("LRI candidate %s rejected, learning rate now %g", candidate, learning_rate)
            if learning_rate <= solver_config.lri_learning_rate_floor:
                precision /= 10
                learning_rate = solver_config.lri_reset_learning_rate
                logger.info("LRI learning rate exhausted, precision now %g", precision)

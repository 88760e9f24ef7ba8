"""
Monte-Carlo search for the manager's subsidy curve.

Curves are random non-increasing step functions identified by
(max_value, seed). The search keeps only that pair for the best curve
seen and regenerates the curve from it at the end.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from billing import SubsidyPolicy
from config import CurveConfig, MarketConfig, ThermalConfig
from errors import ConvergenceExhausted, InvalidConfiguration
from market import HousingMarket

logger = logging.getLogger(__name__)

SEED_BOUND = 2 ** 63 - 1


def generate_curve(
    max_value: float,
    seed: int,
    step_count: int = CurveConfig.step_count,
    granularity: int = CurveConfig.granularity,
) -> np.ndarray:
    """
    Random non-increasing step curve with curve[0] == max_value.

    `granularity` random steps each receive one unit of drop; a
    right-to-left running sum turns the drops into a staircase that
    starts at `granularity`, which is then rescaled to `max_value`.
    The same (max_value, seed) always yields the same curve.
    """
    rng = np.random.default_rng(seed)
    drops = np.zeros(step_count, dtype=np.float64)
    np.add.at(drops, rng.integers(0, step_count, size=granularity), 1.0)
    staircase = np.cumsum(drops[::-1])[::-1]
    return staircase * (max_value / granularity)


def format_curve_rows(curve: Sequence[float], thermal: ThermalConfig) -> List[str]:
    """
    One "<temperature> <reduction>" row per step, temperature interpolated
    linearly across [min_temperature, max_temperature).
    """
    step_count = len(curve)
    span = thermal.max_temperature - thermal.min_temperature
    return [
        f"{thermal.min_temperature + span * i / step_count} {float(value)}"
        for i, value in enumerate(curve)
    ]


@dataclass
class CurveSearchResult:
    """Winning curve of a Monte-Carlo search."""
    best_max_value: float
    best_seed: int
    best_cost: float
    baseline_cost: float
    curve: np.ndarray
    trials_run: int
    trials_skipped: int = 0

    @property
    def improved(self) -> bool:
        return self.best_cost < self.baseline_cost

    def to_dict(self) -> dict:
        return {
            "best_max_value": self.best_max_value,
            "best_seed": self.best_seed,
            "best_cost": self.best_cost,
            "baseline_cost": self.baseline_cost,
            "curve": self.curve.tolist(),
            "trials_run": self.trials_run,
            "trials_skipped": self.trials_skipped,
        }


class SubsidyCurveOptimizer:
    """
    Two-level Monte-Carlo search: a grid over curve amplitude, random
    curve shapes within each amplitude. Every candidate is priced by
    running the market's equilibrium search under the learned policy.
    """

    def __init__(
        self,
        market: HousingMarket,
        config: Optional[MarketConfig] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        self.market = market
        self.config = config if config is not None else market.config
        self.rng = rng if rng is not None else market.rng

    def curve_for(self, max_value: float, seed: int) -> np.ndarray:
        curve_config = self.config.curve
        return generate_curve(max_value, seed, curve_config.step_count, curve_config.granularity)

    def _price_curve(self, max_value: float, seed: int) -> float:
        self.market.reduction_curve = self.curve_for(max_value, seed)
        self.market.policy = SubsidyPolicy.LEARNED
        self.market.analyse()
        return self.market.owner_cost()

    def search(
        self,
        max_value_samples: Optional[int] = None,
        trials_per_sample: Optional[int] = None,
    ) -> CurveSearchResult:
        """
        Find the cheapest curve for the manager.

        Args:
            max_value_samples: amplitudes k / samples for k = 1..samples
            trials_per_sample: random curves per amplitude

        Returns:
            The winning (max_value, seed) with its cost. If no curve beats
            the no-subsidy baseline the winner is the zero curve. The market
            is left on the learned policy with the winning curve and the
            equilibrium that trial found.

        Raises:
            ConvergenceExhausted: a search failed and skipping is off; the
                market is restored to its state before the call
        """
        optimizer_config = self.config.optimizer
        samples = max_value_samples if max_value_samples is not None else optimizer_config.max_value_samples
        trials = trials_per_sample if trials_per_sample is not None else optimizer_config.trials_per_sample
        if samples < 1 or trials < 1:
            raise InvalidConfiguration("max_value_samples and trials_per_sample must be positive")

        saved = self.market.save_state()
        try:
            self.market.policy = SubsidyPolicy.NONE
            self.market.analyse()
            baseline_cost = self.market.owner_cost()
            logger.info("Baseline owner cost without subsidy: %.6f", baseline_cost)

            best_cost = baseline_cost
            best_max_value = 0.0
            best_seed = 0
            best_outcome = (self.market.chosen_temperatures, self.market.last_result)
            trials_run = 0
            skipped = 0

            for k in range(1, samples + 1):
                max_value = k / samples
                for _ in range(trials):
                    seed = int(self.rng.integers(0, SEED_BOUND))
                    trials_run += 1
                    try:
                        cost = self._price_curve(max_value, seed)
                    except ConvergenceExhausted as exc:
                        if not optimizer_config.skip_unconverged_trials:
                            raise
                        skipped += 1
                        logger.warning("Skipping curve (max=%.3f, seed=%d): %s", max_value, seed, exc)
                        continue

                    logger.debug("Curve (max=%.3f, seed=%d) costs %.6f", max_value, seed, cost)
                    if cost < best_cost:
                        best_cost = cost
                        best_max_value = max_value
                        best_seed = seed
                        best_outcome = (self.market.chosen_temperatures, self.market.last_result)
                        logger.info("New best curve: max=%.3f seed=%d cost=%.6f", max_value, seed, cost)
        except ConvergenceExhausted:
            self.market.restore_state(saved)
            raise

        # the market keeps the outcome that was priced as best_cost
        curve = self.curve_for(best_max_value, best_seed)
        self.market.restore_state((SubsidyPolicy.LEARNED, curve) + best_outcome)

        return CurveSearchResult(
            best_max_value=best_max_value,
            best_seed=best_seed,
            best_cost=best_cost,
            baseline_cost=baseline_cost,
            curve=curve,
            trials_run=trials_run,
            trials_skipped=skipped,
        )

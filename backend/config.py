"""
Market Configuration

Centralizes all tunable parameters for the shared-heating market.
Components receive a MarketConfig at construction; CONFIG is only the
default they fall back to.
"""

from dataclasses import dataclass, field
from typing import Optional

from errors import InvalidConfiguration


@dataclass
class ThermalConfig:
    """Temperature range and utility-curve constants."""
    min_temperature: float = 15.0  # Lowest temperature any tenant accepts
    max_temperature: float = 25.0  # Upper end of the subsidy curve domain
    comfort_tolerance: float = 0.05  # Higher = tenants feel deviations less
    wealth: float = 1.0  # Heating utility is 1/e when the bill equals wealth
    subsidy_steepness: float = 5.0  # Curvature of the transport-subsidy utility


@dataclass
class BillingConfig:
    """Collective heating tariff."""
    consumption_baseline: float = 3.0  # Average degrees above outside before the tariff turns marginal
    minimum_fee: float = 2.0  # Flat fee every tenant pays


@dataclass
class SolverConfig:
    """Equilibrium search budgets and learning parameters."""

    # Best response
    best_response_iterations: int = 10000

    # Linear reward-inaction
    lri_learning_rate: float = 0.1
    lri_reset_learning_rate: float = 0.01  # Used after the precision is divided by ten
    lri_precision: float = 0.001
    lri_learning_rate_floor: float = 0.0  # 0.0 means "halve until the float underflows"
    lri_max_rounds: Optional[int] = 1_000_000  # None = unbounded

    # Exhaustive enumeration
    brute_force_max_profiles: int = 2_000_000


@dataclass
class CurveConfig:
    """Discretization of the subsidy curve."""
    step_count: int = 100  # Number of steps across [min_temperature, max_temperature]
    granularity: int = 10  # Number of random slope changes per generated curve


@dataclass
class OptimizerConfig:
    """Monte-Carlo subsidy search."""
    max_value_samples: int = 10
    trials_per_sample: int = 20
    skip_unconverged_trials: bool = False


@dataclass
class MarketDefaults:
    """Defaults for a market built without explicit values."""
    strategy_count: int = 10
    external_temperature: float = 12.5


@dataclass
class MarketConfig:
    """Master configuration for the market and its solvers."""

    thermal: ThermalConfig = field(default_factory=ThermalConfig)
    billing: BillingConfig = field(default_factory=BillingConfig)
    solver: SolverConfig = field(default_factory=SolverConfig)
    curve: CurveConfig = field(default_factory=CurveConfig)
    optimizer: OptimizerConfig = field(default_factory=OptimizerConfig)
    defaults: MarketDefaults = field(default_factory=MarketDefaults)

    def __post_init__(self):
        """Validation and derived values."""
        if self.thermal.max_temperature <= self.thermal.min_temperature:
            raise InvalidConfiguration("max_temperature must exceed min_temperature")
        if self.thermal.comfort_tolerance <= 0:
            raise InvalidConfiguration("comfort_tolerance must be positive")
        if self.thermal.wealth <= 0:
            raise InvalidConfiguration("wealth must be positive")
        if self.thermal.subsidy_steepness <= 0:
            raise InvalidConfiguration("subsidy_steepness must be positive")

        if self.billing.minimum_fee < 0:
            raise InvalidConfiguration("minimum_fee cannot be negative")

        if self.solver.best_response_iterations <= 0:
            raise InvalidConfiguration("best_response_iterations must be positive")
        if not (0.0 < self.solver.lri_learning_rate <= 1.0):
            raise InvalidConfiguration("lri_learning_rate must be in (0, 1]")
        if not (0.0 < self.solver.lri_reset_learning_rate <= 1.0):
            raise InvalidConfiguration("lri_reset_learning_rate must be in (0, 1]")
        if self.solver.lri_learning_rate_floor < 0:
            raise InvalidConfiguration("lri_learning_rate_floor cannot be negative")
        if self.solver.lri_learning_rate_floor >= self.solver.lri_reset_learning_rate:
            raise InvalidConfiguration("lri_learning_rate_floor must be below lri_reset_learning_rate")
        if not (0.0 < self.solver.lri_precision < 1.0):
            raise InvalidConfiguration("lri_precision must be in (0, 1)")
        if self.solver.lri_max_rounds is not None and self.solver.lri_max_rounds <= 0:
            raise InvalidConfiguration("lri_max_rounds must be positive or None")

        if self.curve.step_count <= 0:
            raise InvalidConfiguration("step_count must be positive")
        if self.curve.granularity <= 0:
            raise InvalidConfiguration("granularity must be positive")

        if self.defaults.strategy_count < 2:
            raise InvalidConfiguration("a market needs at least 2 strategies")


# Global configuration instance
CONFIG = MarketConfig()

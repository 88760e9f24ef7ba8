"""
Heating Market Agent System

This module defines the tenants that share a heating bill. Each tenant
has a fixed preference profile (an archetype) and, for the stochastic
solver, a probability distribution over its discrete heating strategies.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple

import numpy as np

from config import CONFIG, ThermalConfig
from errors import InvalidConfiguration, NoDominantStrategy


class Archetype(str, Enum):
    """Named preference profiles."""
    ECO = "eco"
    TRAVELLER = "traveller"
    COMFORT = "comfort"
    ERRATIC = "erratic"
    CUSTOM = "custom"


# archetype -> (ideal temperature, heating weight, transport weight, comfort weight)
ARCHETYPE_PROFILES: Dict[Archetype, Tuple[float, float, float, float]] = {
    Archetype.ECO: (17.0, 1.0, 0.0, 0.0),
    Archetype.TRAVELLER: (22.0, 0.0, 0.7, 0.3),
    Archetype.COMFORT: (22.0, 0.0, 0.0, 1.0),
}


@dataclass(slots=True)
class TenantAgent:
    """
    Represents one tenant of the building.

    Weights are normalized on construction so they always sum to 1.
    The strategy distribution is only meaningful once
    reset_distribution() has been called.
    """

    agent_id: int
    archetype: Archetype
    ideal_temperature: float
    weight_heating: float
    weight_transport: float
    weight_comfort: float
    strategy_distribution: np.ndarray = field(default_factory=lambda: np.zeros(0))
    thermal: Optional[ThermalConfig] = field(default=None, repr=False)

    def __post_init__(self):
        """Validate invariants after initialization."""
        if self.thermal is None:
            self.thermal = CONFIG.thermal

        if self.ideal_temperature < self.thermal.min_temperature:
            raise InvalidConfiguration(
                f"ideal_temperature must be >= {self.thermal.min_temperature}, got {self.ideal_temperature}"
            )
        weights = (self.weight_heating, self.weight_transport, self.weight_comfort)
        if any(w < 0 for w in weights):
            raise InvalidConfiguration(f"weights cannot be negative, got {weights}")
        total = sum(weights)
        if total <= 0:
            raise InvalidConfiguration("at least one weight must be positive")

        self.weight_heating = self.weight_heating / total
        self.weight_transport = self.weight_transport / total
        self.weight_comfort = 1.0 - self.weight_heating - self.weight_transport

    # ------------------------------------------------------------------
    # Utility
    # ------------------------------------------------------------------

    def _normalise(self, temperature):
        """Map [min_temperature, ideal_temperature] onto [0, 1]."""
        span = self.ideal_temperature - self.thermal.min_temperature
        if span == 0:
            return np.ones_like(temperature, dtype=np.float64)
        return (temperature - self.thermal.min_temperature) / span

    def comfort_utility(self, temperature):
        gap = 1.0 - self._normalise(temperature)
        return np.exp(-(gap ** 2) / self.thermal.comfort_tolerance)

    def heating_utility(self, bill):
        return np.exp(-bill / self.thermal.wealth)

    def transport_utility(self, subsidy_fraction):
        steepness = self.thermal.subsidy_steepness
        return (1.0 - np.exp(-subsidy_fraction * steepness)) / (1.0 - math.exp(-steepness))

    def utility(self, temperature, bill, subsidy_fraction):
        """
        Weighted sum of the comfort, heating-cost and transport-subsidy utilities.

        Accepts scalars or numpy arrays of matching shape.
        """
        return (
            self.comfort_utility(temperature) * self.weight_comfort
            + self.heating_utility(bill) * self.weight_heating
            + self.transport_utility(subsidy_fraction) * self.weight_transport
        )

    def temperature_for_strategy(self, strategy: int, strategy_count: int) -> float:
        """Heating level `strategy` interpolated between min and ideal temperature."""
        step = (self.ideal_temperature - self.thermal.min_temperature) / (strategy_count - 1)
        return self.thermal.min_temperature + strategy * step

    # ------------------------------------------------------------------
    # Strategy distribution (linear reward-inaction)
    # ------------------------------------------------------------------

    @property
    def strategy_count(self) -> int:
        return len(self.strategy_distribution)

    def reset_distribution(self, strategy_count: int) -> None:
        """Give every strategy the same probability."""
        self.strategy_distribution = np.full(strategy_count, 1.0 / strategy_count)

    def strategy_for_probability(self, draw: float) -> int:
        """
        Inverse-CDF sample from the strategy distribution.

        Args:
            draw: uniform number in [0, 1)

        Returns:
            The first index whose cumulative probability exceeds draw, or
            the last index if rounding keeps the total below draw.
        """
        cumulative = 0.0
        for index, probability in enumerate(self.strategy_distribution):
            if cumulative + probability > draw:
                return index
            cumulative += probability
        return self.strategy_count - 1

    def update_distribution(
        self,
        chosen: int,
        achieved_utility: float,
        learning_rate: float,
        previous_utility: float
    ) -> float:
        """
        Linear reward-inaction update.

        Non-improving rounds leave the distribution untouched. Otherwise
        every other strategy loses a `gain` share of its mass and the
        chosen strategy absorbs it, so the total stays 1.

        Returns:
            The probability of the chosen strategy after the update.
        """
        dist = self.strategy_distribution
        if achieved_utility < previous_utility:
            return float(dist[chosen])

        gain = achieved_utility * learning_rate
        chosen_probability = dist[chosen]
        dist *= (1.0 - gain)
        dist[chosen] = chosen_probability + gain * (1.0 - chosen_probability)
        return float(dist[chosen])

    def dominant_strategy(self, tolerance: float) -> int:
        """Strategy whose probability exceeds 1 - tolerance."""
        for index, probability in enumerate(self.strategy_distribution):
            if probability > 1.0 - tolerance:
                return index
        raise NoDominantStrategy(
            f"agent {self.agent_id} has no strategy above {1.0 - tolerance:.6f}"
        )

    def expected_temperature(self) -> float:
        """Probability-weighted temperature under the current distribution."""
        count = self.strategy_count
        temperatures = [self.temperature_for_strategy(k, count) for k in range(count)]
        return float(np.dot(self.strategy_distribution, temperatures))

    def to_dict(self) -> Dict[str, object]:
        """
        Serialize all fields to basic Python types.

        Returns:
            Dictionary representation of the tenant
        """
        return {
            "agent_id": self.agent_id,
            "archetype": self.archetype.value,
            "ideal_temperature": self.ideal_temperature,
            "weight_heating": self.weight_heating,
            "weight_transport": self.weight_transport,
            "weight_comfort": self.weight_comfort,
            "strategy_distribution": self.strategy_distribution.tolist(),
        }


def create_tenant(
    archetype: Archetype,
    agent_id: int,
    rng: Optional[np.random.Generator] = None,
    thermal: Optional[ThermalConfig] = None,
    ideal_temperature: Optional[float] = None,
    weight_heating: Optional[float] = None,
    weight_transport: Optional[float] = None,
    weight_comfort: Optional[float] = None,
) -> TenantAgent:
    """
    Build a tenant from an archetype.

    ERRATIC tenants draw their ideal temperature uniformly in
    [min_temperature, max_temperature] and their three weights uniformly
    in [0, 1) from `rng`. CUSTOM tenants take the four parameters given.
    """
    thermal = thermal or CONFIG.thermal
    archetype = Archetype(archetype)

    if archetype in ARCHETYPE_PROFILES:
        ideal, heating, transport, comfort = ARCHETYPE_PROFILES[archetype]
    elif archetype is Archetype.ERRATIC:
        if rng is None:
            raise InvalidConfiguration("erratic tenants need a random source")
        span = thermal.max_temperature - thermal.min_temperature
        ideal = thermal.min_temperature + rng.random() * span
        heating, transport, comfort = rng.random(3)
    else:
        params = (ideal_temperature, weight_heating, weight_transport, weight_comfort)
        if any(p is None for p in params):
            raise InvalidConfiguration("custom tenants need an ideal temperature and three weights")
        ideal, heating, transport, comfort = params

    return TenantAgent(
        agent_id=agent_id,
        archetype=archetype,
        ideal_temperature=float(ideal),
        weight_heating=float(heating),
        weight_transport=float(transport),
        weight_comfort=float(comfort),
        thermal=thermal,
    )

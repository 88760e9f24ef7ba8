"""
Error taxonomy for the heating market.

All failures are raised to the immediate caller; the solver loops never
swallow them.
"""


class InvalidConfiguration(ValueError):
    """A market, agent or solver parameter is outside its valid range."""


class ConvergenceExhausted(RuntimeError):
    """An equilibrium search used up its budget without a fixed point."""


class NoDominantStrategy(LookupError):
    """A strategy distribution was queried before it concentrated."""

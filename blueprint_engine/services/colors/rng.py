"""
Seeded pseudo-random number generator.

A linear congruential generator (Numerical Recipes parameters) with unsigned
32-bit wraparound, so a given seed yields the same sequence on every platform.
"""

_MODULUS = 2 ** 32
_MULTIPLIER = 1664525
_INCREMENT = 1013904223


class SeededRNG:
    """Deterministic LCG stream used for reproducible k-means initialization."""

    def __init__(self, seed: float = 42):
        # Coerce to a positive, non-zero 32-bit state
        self.state = (int(abs(seed)) % _MODULUS) or 1

    def random(self) -> float:
        """Return a float in [0, 1)."""
        self.state = (self.state * _MULTIPLIER + _INCREMENT) % _MODULUS
        return self.state / _MODULUS

    def random_int(self, min_value: int, max_value: int) -> int:
        """Return an integer in [min_value, max_value)."""
        return int(self.random() * (max_value - min_value)) + min_value

    def random_int_max(self, max_value: int) -> int:
        """Return an integer in [0, max_value)."""
        return int(self.random() * max_value)

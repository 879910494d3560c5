from typing import Iterable

import numpy as np


class MathTools:
    """Provides essential mathematical utilities for workout calculations."""

    EPLEY_DIVISOR: float = 30.0

    @classmethod
    def epley_1rm(cls, weight: float, reps: int) -> float:
        """Return the estimated one-rep max using the Epley formula."""
        if reps < 0:
            raise ValueError("reps must be non-negative")
        return weight * (1 + reps / cls.EPLEY_DIVISOR)

    @staticmethod
    def volume(sets: Iterable[tuple[int, float]]) -> float:
        """Compute training volume as the sum of reps times weight."""
        vol = 0.0
        for reps, weight in sets:
            vol += reps * weight
        return vol

    @staticmethod
    def mean(values: list[float]) -> float:
        """Return the arithmetic mean or ``0.0`` for an empty list."""
        if not values:
            return 0.0
        return float(np.mean(np.array(values, dtype=float)))

    @staticmethod
    def maximum(values: list[float]) -> float:
        """Return the largest value or ``0.0`` for an empty list."""
        if not values:
            return 0.0
        return float(np.max(np.array(values, dtype=float)))

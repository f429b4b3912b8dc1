"""
Cryptographically strong dice for the Monte Carlo simulator
Each simulation worker owns one roller; rollers are never shared between threads.
"""

import os
from typing import Tuple, Union

import numpy as np

from combat_errors import RandomSourceUnavailable
from combat_logging import get_logger

logger = get_logger(__name__)

Shape = Union[int, Tuple[int, ...]]

# 53 random bits fill the mantissa of a float64 in [0, 1)
_FLOAT_SHIFT = np.uint64(11)
_FLOAT_SCALE = 2.0 ** -53


class SecureDiceRoller:
    """
    Dice backed by the operating system's entropy source.

    Draws are taken from os.urandom in bulk and converted with numpy, so a
    chunk of trials costs one system call per array.
    """

    def __init__(self, name: str = "dice"):
        self.name = name
        self.draws = 0

    def _random_words(self, count: int) -> np.ndarray:
        try:
            raw = os.urandom(8 * count)
        except (OSError, NotImplementedError) as e:
            logger.critical("%s: operating system entropy source unavailable: %s", self.name, e)
            raise RandomSourceUnavailable(f"Cannot read OS entropy: {e}") from e
        self.draws += count
        return np.frombuffer(raw, dtype=np.uint64)

    def uniform(self, size: Shape) -> np.ndarray:
        """Floats in [0, 1) with the given shape"""
        shape = (int(size),) if np.ndim(size) == 0 else tuple(int(n) for n in size)
        count = int(np.prod(shape, dtype=np.int64))
        if count == 0:
            return np.zeros(shape, dtype=np.float64)
        words = self._random_words(count)
        return ((words >> _FLOAT_SHIFT).astype(np.float64) * _FLOAT_SCALE).reshape(shape)

    def integers(self, low: int, high: int, size: Shape) -> np.ndarray:
        """Integers in [low, high) with the given shape"""
        span = high - low
        if span <= 0:
            raise ValueError(f"high ({high}) must be greater than low ({low})")
        values = np.floor(self.uniform(size) * span).astype(np.int64) + low
        # float rounding can land exactly on high
        return np.minimum(values, high - 1)

    def roll_d6(self, size: Shape) -> np.ndarray:
        """Roll D6s"""
        return self.integers(1, 7, size)

    def roll_d3(self, size: Shape) -> np.ndarray:
        """Roll D3s"""
        return self.integers(1, 4, size)

    def __repr__(self) -> str:
        return f"SecureDiceRoller(name={self.name!r}, draws={self.draws})"

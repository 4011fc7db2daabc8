"""Randomness helpers for reproducible candidate generation."""

from __future__ import annotations

import os
import random
import time
from typing import MutableSequence, Optional, TypeVar

T = TypeVar("T")

_UINT32_MASK = 0xFFFFFFFF


class RandomSource:
    """Injectable source for every random decision the engine makes.

    Seed bases, instruction shuffling and decoding-parameter jitter all draw
    from one instance so tests can pin the whole request down. ``for_request``
    derives a seeded source when the caller asked for a fixed sampling seed.
    """

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng if rng is not None else random.Random()

    @classmethod
    def seeded(cls, seed: int) -> "RandomSource":
        return cls(random.Random(int(seed)))

    def for_request(self, sampling_seed: Optional[int]) -> "RandomSource":
        if sampling_seed is None:
            return self
        return RandomSource.seeded(int(sampling_seed) & _UINT32_MASK)

    def uniform(self, low: float, high: float) -> float:
        return self._rng.uniform(low, high)

    def shuffle(self, items: MutableSequence[T]) -> MutableSequence[T]:
        self._rng.shuffle(items)
        return items

    def seed_base(self) -> int:
        """Return an unpredictable 32-bit base for per-call seeds."""

        entropy = int.from_bytes(os.urandom(4), "little")
        return (entropy ^ self._rng.getrandbits(32) ^ time.time_ns()) & _UINT32_MASK


def derive_seeds(count: int, base: int) -> list[int]:
    """Return ``count`` consecutive seeds starting at ``base`` modulo 2**32."""

    value = int(base) & _UINT32_MASK
    return [(value + i) & _UINT32_MASK for i in range(count)]

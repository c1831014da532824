from __future__ import annotations

import random
from typing import Optional, Protocol, Union

# Guests have no entropy source, so every run replays the same stream.
PRNG_SEED = 0xDEADBEEFDEADBEEF


class EntropySource(Protocol):
    def fill(self, buffer: Union[bytearray, memoryview]) -> None:
        ...


class SeededEntropy:
    """Deterministic pseudorandom bytes, created on first use.

    Identical output across runs is intended: it keeps guest runs
    reproducible and there is nothing better to seed from.
    """

    def __init__(self, seed: int = PRNG_SEED) -> None:
        self.seed = seed
        self._rng: Optional[random.Random] = None

    def _generator(self) -> random.Random:
        if self._rng is None:
            self._rng = random.Random(self.seed)
        return self._rng

    def fill(self, buffer: Union[bytearray, memoryview]) -> None:
        buffer[:] = self._generator().randbytes(len(buffer))

    def random_bytes(self, count: int) -> bytes:
        buffer = bytearray(count)
        self.fill(buffer)
        return bytes(buffer)

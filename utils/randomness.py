"""
Random sources injected into every component that samples secrets,
session identifiers or proof blinding values.
"""

import logging
import random
import secrets
from typing import List, Protocol

logger = logging.getLogger(__name__)


class RandomSource(Protocol):
    def random_bits(self, count: int) -> List[bool]:
        ...

    def randbelow(self, upper: int) -> int:
        ...

    def token_bytes(self, count: int) -> bytes:
        ...


class SecureRandomSource:
    """Operating-system CSPRNG. The only source suitable for key material."""

    def random_bits(self, count: int) -> List[bool]:
        if count <= 0:
            return []
        value = secrets.randbits(count)
        return [bool((value >> (count - 1 - i)) & 1) for i in range(count)]

    def randbelow(self, upper: int) -> int:
        return secrets.randbelow(upper)

    def token_bytes(self, count: int) -> bytes:
        return secrets.token_bytes(count)


class SeededRandomSource:
    """Deterministic source for tests and reproducible demos."""

    def __init__(self, seed: int):
        self.seed = seed
        self._rng = random.Random(seed)
        logger.warning(
            f"Using deterministic random source (seed={seed}); not for real elections")

    def random_bits(self, count: int) -> List[bool]:
        if count <= 0:
            return []
        value = self._rng.getrandbits(count)
        return [bool((value >> (count - 1 - i)) & 1) for i in range(count)]

    def randbelow(self, upper: int) -> int:
        return self._rng.randrange(upper)

    def token_bytes(self, count: int) -> bytes:
        if count <= 0:
            return b""
        return self._rng.getrandbits(8 * count).to_bytes(count, "big")


def make_random_source(seed: int = None) -> RandomSource:
    if seed is None:
        return SecureRandomSource()
    return SeededRandomSource(seed)

"""Short code generation: base62 encoding plus collision probing against the store."""

import logging
import random
import time
from collections.abc import Callable
from typing import Protocol

from prometheus_client import Counter

__all__ = [
    "BASE62_ALPHABET",
    "MAX_SEED",
    "MAX_CODE_LENGTH",
    "MAX_CODE_SEED",
    "encode",
    "decode",
    "default_seed",
    "IdentifierGenerator",
]

logger = logging.getLogger(__name__)

# Digits, then uppercase, then lowercase. The order is part of the code format.
BASE62_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
_BASE = len(BASE62_ALPHABET)
_INDEX = {char: position for position, char in enumerate(BASE62_ALPHABET)}
MAX_SEED = 2**64 - 1
MAX_CODE_LENGTH = 10
# Largest seed whose code still fits in MAX_CODE_LENGTH characters.
MAX_CODE_SEED = 62**MAX_CODE_LENGTH - 1

ID_COLLISIONS_TOTAL = Counter(
    "shortlink_id_collisions_total",
    "Generated codes that were already taken and had to be re-probed",
)


class CodeLookup(Protocol):
    async def exists_by_code(self, code: str) -> bool: ...


def encode(value: int) -> str:
    """Encode a non-negative 64-bit integer, most significant digit first.

    Example:
        >>> encode(0)
        '0'
        >>> encode(62)
        '10'
    """
    if value < 0 or value > MAX_SEED:
        raise ValueError(f"value must be within [0, 2**64 - 1], got {value!r}")
    if value == 0:
        return BASE62_ALPHABET[0]

    encoded_chars: list[str] = []
    current = value
    while current > 0:
        current, remainder = divmod(current, _BASE)
        encoded_chars.append(BASE62_ALPHABET[remainder])
    encoded_chars.reverse()
    return "".join(encoded_chars)


def decode(code: str) -> int:
    """Inverse of :func:`encode`. Unknown characters raise ``ValueError``."""
    if not code:
        raise ValueError("code must be a non-empty string")

    value = 0
    for char in code:
        digit = _INDEX.get(char)
        if digit is None:
            raise ValueError(f"Invalid base62 character {char!r} in {code!r}")
        value = value * _BASE + digit
    if value > MAX_SEED:
        raise ValueError(f"code {code!r} does not fit in 64 bits")
    return value


def default_seed() -> int:
    return int(time.time() * 1000) + random.randrange(10_000)


class IdentifierGenerator:
    """Produces codes that are not present in the store at call time.

    The seed is time based with random jitter; on collision the seed is
    incremented and re-encoded until a free code is found.
    """

    def __init__(
        self,
        store: CodeLookup,
        seed_source: Callable[[], int] = default_seed,
        max_probes: int = 10_000,
    ):
        self._store = store
        self._seed_source = seed_source
        self._max_probes = max_probes

    async def generate_unique(self) -> str:
        return await self.generate_unique_from(self._seed_source())

    async def generate_unique_from(self, seed: int) -> str:
        """Probe upward from ``seed``. Seeds past ``MAX_CODE_SEED`` raise ``ValueError``."""
        if seed < 0 or seed > MAX_CODE_SEED:
            raise ValueError(f"seed must be within [0, 62**{MAX_CODE_LENGTH} - 1], got {seed!r}")
        current = seed
        for _ in range(self._max_probes):
            if current > MAX_CODE_SEED:
                break
            code = encode(current)
            if not await self._store.exists_by_code(code):
                return code
            ID_COLLISIONS_TOTAL.inc()
            logger.debug(f"Code collision for {code}, probing next seed")
            current += 1
        raise RuntimeError(f"No free short code within {self._max_probes} probes from seed {seed}")

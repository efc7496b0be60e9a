"""Random key generation for inserts without a caller-supplied key."""

from __future__ import annotations

import logging
import random
import string
from collections.abc import Callable

from ..core.errors import KeyspaceExhausted

logger = logging.getLogger(__name__)

ALPHABET = string.ascii_letters + string.digits  # 62 symbols


class KeyGenerator:
    """Generates uniformly random alphanumeric keys.

    Args:
        rng: Random source; defaults to a `random.Random` seeded from the OS.
            Not cryptographically secure, and not required to be.
        alphabet: Symbols keys are drawn from
    """

    def __init__(self, rng: random.Random | None = None, alphabet: str = ALPHABET):
        if not alphabet:
            raise ValueError("alphabet must not be empty")
        self._rng = rng if rng is not None else random.Random()
        self.alphabet = alphabet

    def generate(self, length: int) -> str:
        """Return a random key of exactly `length` symbols."""
        if length < 1:
            raise ValueError("key length must be at least 1")
        return "".join(self._rng.choices(self.alphabet, k=length))

    def unique(self, length: int, is_taken: Callable[[str], bool], attempts: int) -> str:
        """Draw keys until one is not taken.

        Raises:
            KeyspaceExhausted: if `attempts` consecutive candidates collide
        """
        for attempt in range(attempts):
            candidate = self.generate(length)
            if not is_taken(candidate):
                return candidate
            logger.debug(f"Generated key collided (attempt {attempt + 1}/{attempts})")
        raise KeyspaceExhausted(
            f"No free key of length {length} after {attempts} attempts"
        )

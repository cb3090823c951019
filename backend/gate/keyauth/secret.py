"""Random shared-secret generation.

Secrets are short human-relayed passwords, not cryptographic keys. Values
come from a seeded ``random.Random`` that is statistically uniform but NOT
suitable for security-critical secrets.
"""

import random
import string

ALPHANUMERIC = string.ascii_uppercase + string.ascii_lowercase + string.digits
DEFAULT_SECRET_LENGTH = 6


class SecretGenerator:
    def __init__(
        self,
        length: int = DEFAULT_SECRET_LENGTH,
        alphabet: str = ALPHANUMERIC,
        rng: random.Random | None = None,
    ) -> None:
        if length < 1:
            raise ValueError(f"length must be positive, got {length}")
        if not alphabet:
            raise ValueError("alphabet must not be empty")
        self._length = length
        self._alphabet = alphabet
        self._rng = rng or random.Random()  # noqa: S311

    @property
    def length(self) -> int:
        return self._length

    @property
    def alphabet(self) -> str:
        return self._alphabet

    def generate(self) -> str:
        """Draw ``length`` characters independently and uniformly from the alphabet."""
        return "".join(self._rng.choices(self._alphabet, k=self._length))

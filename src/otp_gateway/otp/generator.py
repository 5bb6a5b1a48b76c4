"""OTP code generator — unbiased, human-readable codes from a CSPRNG."""

from __future__ import annotations

import secrets
from collections.abc import Callable

from otp_gateway.errors import GenerationError

# Digits + uppercase letters without the look-alikes I and O.
ALPHABET = "0123456789ABCDEFGHJKLMNPQRSTUVWXYZ"
CODE_LENGTH = 6

_WORD_SPACE = 1 << 16

# Upper bound on 16-bit draws per code.
MAX_DRAWS = 1024


def _random_word() -> int:
    return secrets.randbits(16)


def generate_code(
    length: int = CODE_LENGTH,
    alphabet: str = ALPHABET,
    random_word: Callable[[], int] = _random_word,
    max_draws: int = MAX_DRAWS,
) -> str:
    """Return a *length*-character code drawn uniformly from *alphabet*.

    Uses rejection sampling over 16-bit words.  *random_word* can be
    swapped out in tests; a source that keeps producing rejected words
    raises :class:`GenerationError` after *max_draws* draws.
    """
    size = len(alphabet)
    # Largest multiple of the alphabet size that fits in 16 bits; words at
    # or above it are rejected so ``word % size`` stays uniform.
    accept_below = (_WORD_SPACE // size) * size

    chars: list[str] = []
    draws = 0
    while len(chars) < length:
        if draws >= max_draws:
            raise GenerationError("Random source kept returning rejected values")
        draws += 1
        word = random_word() & 0xFFFF
        if word < accept_below:
            chars.append(alphabet[word % size])
    return "".join(chars)

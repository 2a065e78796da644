"""The decoder ring: seeded positional scrambling of the GitHub token.

The token is published in scrambled form: the character at position i of
the plaintext sits at position order[i] of the scrambled string, where
order is a Fisher-Yates permutation driven by mulberry32(seed). Decoding
rebuilds order from (length, seed) and reads the characters back.

This is obfuscation, not encryption. Seed and algorithm are public; the
only point is to keep a bearer token out of plaintext at rest.

The generator must stay bit-for-bit identical to the JavaScript tooling
that produces the scrambled token, so all arithmetic is masked to 32 bits.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

_MASK32 = 0xFFFFFFFF
_GOLDEN_GAMMA = 0x6D2B79F5


def _imul(a: int, b: int) -> int:
    """32-bit wrapping multiply (JavaScript ``Math.imul``, unsigned result)."""
    return (a * b) & _MASK32


def mulberry32(seed: int) -> Callable[[], float]:
    """Return a generator of floats in [0, 1) seeded with a 32-bit seed."""
    state = seed & _MASK32

    def next_float() -> float:
        nonlocal state
        state = (state + _GOLDEN_GAMMA) & _MASK32
        t = state
        t = _imul(t ^ (t >> 15), t | 1)
        t ^= (t + _imul(t ^ (t >> 7), t | 61)) & _MASK32
        t ^= t >> 14
        return t / 4294967296

    return next_float


def generate_permutation(length: int, seed: int) -> list[int]:
    """Deterministic permutation of range(length) for the given seed."""
    if length < 0:
        raise ValueError(f"length must be non-negative, got {length}")
    order = list(range(length))
    rng = mulberry32(seed)
    for i in range(length - 1, 0, -1):
        j = int(rng() * (i + 1))
        order[i], order[j] = order[j], order[i]
    return order


def invert_scramble(shuffled: Sequence[str], seed: int) -> str:
    """Recover the plaintext from its scrambled form.

    Input is assumed to come from ``scramble`` with the same seed. Nothing
    checks that; a wrong seed or corrupted input decodes to garbage.
    """
    order = generate_permutation(len(shuffled), seed)
    return "".join(shuffled[k] for k in order)


def scramble(plain: Sequence[str], seed: int) -> str:
    """Forward transform: move plain[i] to position order[i]."""
    order = generate_permutation(len(plain), seed)
    out = [""] * len(plain)
    for i, k in enumerate(order):
        out[k] = plain[i]
    return "".join(out)


class DecoderRing:
    """A seed bound to the scramble/unscramble pair."""

    def __init__(self, seed: int) -> None:
        self.seed = seed

    def encode(self, plain: str) -> str:
        """Scramble a plaintext token for publication."""
        return scramble(plain, self.seed)

    def decode(self, scrambled: str) -> str:
        """Unscramble a published token."""
        return invert_scramble(scrambled, self.seed)

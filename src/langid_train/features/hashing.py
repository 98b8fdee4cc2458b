from __future__ import annotations

from langid_train.config import FEATURE_SEED, U32_MASK

_M = 0x5BD1E995


def murmurhash2(k: int, seed: int = FEATURE_SEED) -> int:
    """32-bit MurmurHash2 mix of a single word; bit-exact with the exported inference tables."""
    k = (k * _M) & U32_MASK
    k ^= k >> 24
    k = (k * _M) & U32_MASK
    h = (seed * _M) & U32_MASK
    h ^= k
    h ^= h >> 13
    h = (h * _M) & U32_MASK
    return h ^ (h >> 15)

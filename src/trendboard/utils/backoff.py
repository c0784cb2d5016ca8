from __future__ import annotations

import random
from typing import Iterator

def next_backoff(prev: float, cap: float) -> float:
    """Exponential backoff progression with cap (no jitter)."""
    return min(prev * 2.0, cap)

def jitter(v: float, *, ratio: float = 0.2) -> float:
    """
    Add ±ratio jitter. ratio=0.2 -> multiply by [0.8, 1.2].
    """
    lo = 1.0 - ratio
    hi = 1.0 + ratio
    return v * (lo + (hi - lo) * random.random())

def batched(items: list, size: int) -> Iterator[list]:
    """Split `items` into consecutive chunks of at most `size`."""
    if size <= 0:
        raise ValueError("size must be positive")
    for i in range(0, len(items), size):
        yield items[i:i + size]

"""
Query combination generator and worker distributor.

The portal's search only matches on a prefix of at least one letter, so the
whole registry is covered by enumerating every fixed-length string over the
Persian alphabet and spreading the strings across workers.
"""

import math
from itertools import product
from typing import List, Sequence, TypeVar

T = TypeVar("T")

PERSIAN_LETTERS = [
    "آ", "ا", "ب", "پ", "ت", "ث", "ج", "چ", "ح", "خ", "د",
    "ذ", "ر", "ز", "ژ", "س", "ش", "ص", "ض", "ط", "ظ", "ع",
    "غ", "ف", "ق", "ک", "گ", "ل", "م", "ن", "و", "ه", "ی",
]


def combination_count(length: int) -> int:
    return len(PERSIAN_LETTERS) ** length if length > 0 else 0


def generate_combinations(length: int) -> List[str]:
    """Every string of exactly ``length`` letters, in alphabet order"""
    if length <= 0:
        return []
    return ["".join(letters) for letters in product(PERSIAN_LETTERS, repeat=length)]


def partition(items: Sequence[T], workers: int) -> List[List[T]]:
    """
    Split items into ``workers`` contiguous chunks of ceil(n / workers).

    Trailing workers may get an empty chunk.
    """
    if workers < 1:
        raise ValueError("workers must be a positive integer")
    size = math.ceil(len(items) / workers) if items else 0
    return [list(items[i * size:min((i + 1) * size, len(items))]) for i in range(workers)]


def chunked(items: Sequence[T], size: int) -> List[List[T]]:
    return [list(items[i:i + size]) for i in range(0, len(items), size)]

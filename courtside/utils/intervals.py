"""
Half-open interval helpers shared by slot generation and booking validation.
"""

from typing import Iterable, Optional, Tuple, TypeVar

T = TypeVar("T")


def overlaps(a_start: T, a_end: T, b_start: T, b_end: T) -> bool:
    """
    Return True if [a_start, a_end) and [b_start, b_end) share any point.

    Touching intervals (one ends exactly where the other starts) do not
    overlap, and a zero-length interval never overlaps anything.
    """
    if not a_start < a_end or not b_start < b_end:
        return False
    return a_start < b_end and b_start < a_end


def first_overlap(
    start: T, end: T, intervals: Iterable[Tuple[T, T]]
) -> Optional[Tuple[T, T]]:
    """Return the first interval in ``intervals`` overlapping [start, end), if any."""
    for other_start, other_end in intervals:
        if overlaps(start, end, other_start, other_end):
            return other_start, other_end
    return None

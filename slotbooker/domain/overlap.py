"""
Overlap detection between half-open time ranges.
"""

from .models import TimeRange


def overlaps(a: TimeRange, b: TimeRange) -> bool:
    """
    Check whether two half-open ranges intersect.

    Touching endpoints do not overlap: a booking ending at 10:00 leaves
    10:00 free for the next one.
    """
    return a.start < b.end and b.start < a.end

"""Decides whether a new fix is worth appending to the path."""

from __future__ import annotations

import math
from typing import Optional

from .constants import DEFAULT_THRESHOLD_DEGREES
from .types import Position

# Binary floating point cannot represent most decimal coordinates exactly, so
# a difference of "exactly the threshold" may come out a few ulps above it.
# Differences within one part per million of the threshold count as equal to it.
_RELATIVE_TOLERANCE = 1e-6


def _exceeds(diff: float, threshold: float) -> bool:
    return diff > threshold and not math.isclose(diff, threshold, rel_tol=_RELATIVE_TOLERANCE, abs_tol=0.0)


def is_significant(
    candidate: Position,
    last: Optional[Position],
    threshold_degrees: float = DEFAULT_THRESHOLD_DEGREES,
) -> bool:
    """Return True if ``candidate`` moved more than the threshold on either axis.

    The axes are compared independently against ``threshold_degrees`` (no
    distance math, no geodesic correction), so the check is cheap enough to
    run on every sample. The first point, with no ``last``, is always kept.
    """
    if last is None:
        return True

    lat_diff = abs(candidate.latitude - last.latitude)
    lng_diff = abs(candidate.longitude - last.longitude)
    return _exceeds(lat_diff, threshold_degrees) or _exceeds(lng_diff, threshold_degrees)


__all__ = ["is_significant"]

from __future__ import annotations

from datetime import datetime


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open interval intersection: touching windows (end_a == start_b) do not overlap."""
    return start_a < end_b and end_a > start_b

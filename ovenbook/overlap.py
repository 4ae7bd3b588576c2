# overlap.py
from datetime import datetime
from typing import Iterable, Optional

from ovenbook.data_models import Reservation


def overlaps(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    """Half-open intersection test: [start, end) against [other_start, other_end)."""
    return other_end > start and other_start < end


def find_conflict(
    candidates: Iterable[Reservation],
    start: datetime,
    end: datetime,
    exclude_id: Optional[int] = None,
) -> Optional[Reservation]:
    """Return the first candidate that intersects [start, end), ignoring `exclude_id`."""
    for reservation in candidates:
        if exclude_id is not None and reservation.id == exclude_id:
            continue
        if overlaps(start, end, reservation.start_time, reservation.end_time):
            return reservation
    return None

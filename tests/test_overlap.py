from datetime import datetime, timezone

from conftest import at
from ovenbook.data_models import Reservation
from ovenbook.overlap import find_conflict, overlaps


def booking(id, start, end):
    return Reservation(
        id=id,
        resource_id=1,
        user_id=1,
        start_time=start,
        end_time=end,
        title="x",
        created_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
    )


def test_overlaps_is_half_open():
    assert overlaps(at(10, 30), at(11, 30), at(10), at(11))
    assert overlaps(at(9), at(12), at(10), at(11))
    assert overlaps(at(10, 15), at(10, 45), at(10), at(11))
    assert not overlaps(at(11), at(12), at(10), at(11))
    assert not overlaps(at(9), at(10), at(10), at(11))


def test_find_conflict_returns_first_clash():
    existing = [booking(1, at(8), at(9)), booking(2, at(10), at(11))]
    assert find_conflict(existing, at(10, 30), at(12)).id == 2
    assert find_conflict(existing, at(9), at(10)) is None


def test_find_conflict_skips_excluded():
    existing = [booking(1, at(10), at(11))]
    assert find_conflict(existing, at(10, 30), at(11, 30), exclude_id=1) is None
    assert find_conflict(existing, at(10, 30), at(11, 30), exclude_id=2).id == 1

from __future__ import annotations

import pytest

from ro_ingest.dedup import deduplicate, normalize_revision
from ro_ingest.models import Record


@pytest.mark.parametrize(
    ("token", "rank"),
    [
        (".10", 10),
        ("10", 10),
        ("01", 1),
        (".2", 2),
        (".00", 0),
        ("rev", 0),
        ("", 0),
        (None, 0),
        (3, 3),
    ],
)
def test_normalize_revision(token: object, rank: int) -> None:
    assert normalize_revision(token) == rank


def test_deduplicate_keeps_highest_revision() -> None:
    records = [
        Record(ro_num="RO-1", ro_rev=".01", row_index=1),
        Record(ro_num="RO-1", ro_rev=".10", row_index=2),
        Record(ro_num="RO-1", ro_rev=".02", row_index=3),
    ]

    result = deduplicate(records)

    assert [r.row_index for r in result.records] == [2]
    assert result.duplicates_removed == 2


def test_deduplicate_tie_keeps_first_seen() -> None:
    records = [
        Record(ro_num="RO-1", ro_rev="bad", row_index=1),
        Record(ro_num="RO-1", ro_rev="worse", row_index=2),
    ]

    result = deduplicate(records)

    assert result.records[0].row_index == 1


def test_deduplicate_preserves_first_appearance_order() -> None:
    records = [
        Record(ro_num="RO-2", row_index=1),
        Record(ro_num="C-1", row_index=2),
        Record(ro_num="RO-2", ro_rev=".05", row_index=3),
        Record(ro_num="RO-3", row_index=4),
    ]

    result = deduplicate(records)

    assert [r.ro_num for r in result.records] == ["RO-2", "C-1", "RO-3"]
    assert result.records[0].row_index == 3
    assert result.commercial == 1
    assert result.normal == 2


def test_deduplicate_is_idempotent() -> None:
    records = [
        Record(ro_num="RO-1", ro_rev=".01"),
        Record(ro_num="RO-1", ro_rev=".03"),
        Record(ro_num="C-9"),
    ]

    once = deduplicate(records)
    twice = deduplicate(once.records)

    assert twice.records == once.records
    assert twice.duplicates_removed == 0


def test_deduplicate_empty_input() -> None:
    result = deduplicate([])

    assert result.records == ()
    assert result.duplicates_removed == 0

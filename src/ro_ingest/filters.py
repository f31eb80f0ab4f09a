"""Record filtering over a published dataset."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, fields
from typing import Literal

from ro_ingest.lookups import DEFAULT_LOOKUPS, CodeLookupTable
from ro_ingest.models import Record

RecordKind = Literal["all", "normal", "commercial"]

# (lower bound, label), checked top-down.
PROBABILITY_BANDS: tuple[tuple[float, str], ...] = (
    (90, "90% - Almost certain"),
    (60, "60% - Likely"),
    (30, "30% - Possible"),
    (10, "10% - Low"),
    (0, "0% - Not specified"),
)


def probability_band(percent: float) -> str:
    for lower, label in PROBABILITY_BANDS:
        if percent >= lower:
            return label
    return PROBABILITY_BANDS[-1][1]


@dataclass(frozen=True)
class RecordFilter:
    """Filter criteria; ``None`` / empty values mean "no constraint"."""

    kind: RecordKind = "all"
    probability_band: str | None = None
    month: str | None = None
    country: str | None = None
    agent: str | None = None
    outcome: str | None = None
    date_from: str | None = None
    date_to: str | None = None
    value_min: float | None = None
    value_max: float | None = None
    search: str | None = None

    def __post_init__(self) -> None:
        if self.kind not in ("all", "normal", "commercial"):
            raise ValueError(f"Invalid record kind: {self.kind!r}. Use all/normal/commercial.")
        if self.search is not None:
            object.__setattr__(self, "search", self.search.strip().lower() or None)


def active_filter_count(flt: RecordFilter) -> int:
    """Number of criteria that actually constrain the result."""
    count = 0
    for f in fields(flt):
        value = getattr(flt, f.name)
        if f.name == "kind":
            count += value != "all"
        elif value not in (None, ""):
            count += 1
    return count


def _searchable_text(record: Record) -> str:
    parts = [
        record.ro_num,
        record.country,
        record.agent_name,
        record.outcome,
        record.category,
        record.description,
        str(record.offer_value),
        str(record.contract_value),
    ]
    return " ".join(part for part in parts if part).lower()


def matches(
    record: Record, flt: RecordFilter, lookups: CodeLookupTable = DEFAULT_LOOKUPS
) -> bool:
    if flt.kind == "normal" and record.is_commercial:
        return False
    if flt.kind == "commercial" and record.is_normal:
        return False

    if flt.probability_band and probability_band(record.completion_percent) != flt.probability_band:
        return False

    # Undated records pass every date criterion.
    if flt.month and record.ro_date and not record.ro_date.startswith(flt.month):
        return False
    if flt.date_from and record.ro_date and record.ro_date < flt.date_from:
        return False
    if flt.date_to and record.ro_date and record.ro_date > flt.date_to:
        return False

    if flt.country and record.country != flt.country:
        return False
    if flt.agent and flt.agent not in (
        record.agent_name,
        record.agent_code,
        lookups.agent_code(record.agent_name),
    ):
        return False
    if flt.outcome and record.outcome != flt.outcome:
        return False

    if flt.value_min is not None and record.offer_value < flt.value_min:
        return False
    if flt.value_max is not None and record.offer_value > flt.value_max:
        return False

    if flt.search and flt.search not in _searchable_text(record):
        return False
    return True


def apply_filters(
    records: Iterable[Record],
    flt: RecordFilter,
    lookups: CodeLookupTable = DEFAULT_LOOKUPS,
) -> list[Record]:
    """Return the records matching *flt*, preserving order."""
    return [record for record in records if matches(record, flt, lookups)]

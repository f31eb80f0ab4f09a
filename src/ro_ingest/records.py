"""Record construction — one raw row + column map → one :class:`Record`."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from ro_ingest.columns import ColumnMap
from ro_ingest.errors import RowStructureError
from ro_ingest.lookups import DEFAULT_LOOKUPS, CodeLookupTable
from ro_ingest.models import (
    DEFAULT_REVISION,
    NO_AGENT,
    NO_CATEGORY,
    NO_COUNTRY,
    OUTCOME_IN_PROGRESS,
    Record,
)
from ro_ingest.normalize import (
    NormalizationStats,
    cell_text,
    clean_string,
    is_blank,
    parse_date,
    parse_numeric,
    parse_percentage,
)

MIN_RO_NUM_LENGTH = 2


# ── Cell access ──────────────────────────────────────────────────


def is_empty_row(row: Any) -> bool:
    """True when every cell of *row* is blank (or the row has no cells)."""
    if row is None:
        return True
    if isinstance(row, (str, bytes)) or not isinstance(row, Sequence):
        return False
    return all(is_blank(cell) for cell in row)


def _cell(row: Sequence[Any], idx: int | None) -> Any:
    # Short rows are common in exports that trim trailing empty cells.
    if idx is None or idx >= len(row):
        return None
    value = row[idx]
    return None if is_blank(value) else value


def _text(value: Any) -> str | None:
    if value is None:
        return None
    return cell_text(value).strip() or None


def _revision_text(value: Any) -> str | None:
    if isinstance(value, float) and 0 < value < 1:
        # 0.1 is how a spreadsheet stores the revision ".10"
        return f"{value:.2f}"[1:]
    return _text(value)


def _record_id(value: Any, row_index: int, stats: NormalizationStats | None) -> int | float:
    number = parse_numeric(value, stats)
    if not number:
        return row_index
    return int(number) if number.is_integer() else number


# ── Builder ──────────────────────────────────────────────────────


def build_record(
    row: Sequence[Any],
    column_map: ColumnMap,
    row_index: int,
    *,
    lookups: CodeLookupTable = DEFAULT_LOOKUPS,
    dayfirst: bool = False,
    stats: NormalizationStats | None = None,
) -> Record:
    """Build a :class:`Record` from one spreadsheet row.

    Data-quality problems never raise: unparseable cells fall back to
    defaults through :mod:`ro_ingest.normalize`.

    Raises
    ------
    RowStructureError
        If *row* is not a sequence of cells.
    """
    if isinstance(row, (str, bytes)) or not isinstance(row, Sequence):
        raise RowStructureError(
            f"Row {row_index} is not a sequence of cells (got {type(row).__name__})"
        )

    def cell(field_name: str) -> Any:
        return _cell(row, column_map.index(field_name))

    agent_code = clean_string(cell("AgentName"))
    category_code = clean_string(cell("Category"))

    return Record(
        ro_num=_text(cell("RO_num")) or f"RO-{row_index}",
        ro_rev=_revision_text(cell("RO_rev")) or DEFAULT_REVISION,
        record_id=_record_id(cell("ID"), row_index, stats),
        row_index=row_index,
        ro_date=parse_date(cell("RO_date"), dayfirst=dayfirst, stats=stats),
        country=clean_string(cell("Country")) or NO_COUNTRY,
        agent_name=lookups.agent_name(agent_code) if agent_code else NO_AGENT,
        agent_code=agent_code,
        offer_value=parse_numeric(cell("OfferValue"), stats),
        outcome=clean_string(cell("OfferOutcome")) or OUTCOME_IN_PROGRESS,
        contract_value=parse_numeric(cell("ContractValue"), stats),
        category=lookups.category_name(category_code) if category_code else NO_CATEGORY,
        category_code=category_code,
        description=clean_string(cell("Description")) or "",
        completion_percent=parse_percentage(cell("CompletionPercent"), stats),
    )


def validate_record(record: Record) -> str | None:
    """Return why *record* breaks an invariant, or None when it is valid."""
    if len(record.ro_num) < MIN_RO_NUM_LENGTH:
        return f"RO number {record.ro_num!r} is shorter than {MIN_RO_NUM_LENGTH} characters"
    if record.offer_value < 0:
        return f"Negative offer value: {record.offer_value}"
    if record.contract_value < 0:
        return f"Negative contract value: {record.contract_value}"
    if not 0 <= record.completion_percent <= 100:
        return f"Completion percentage {record.completion_percent} outside 0-100"
    return None


def row_preview(row: Any, width: int = 3) -> tuple[str, ...]:
    """First *width* cells as text, for failure diagnostics."""
    if isinstance(row, (str, bytes)) or not isinstance(row, Sequence):
        return (repr(row)[:40],)
    return tuple("" if is_blank(v) else cell_text(v) for v in row[:width])

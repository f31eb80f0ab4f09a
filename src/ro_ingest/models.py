"""Data models used across the package."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from numbers import Integral
from typing import Any

COMMERCIAL_PREFIX = "C-"
DEFAULT_REVISION = "01"
OUTCOME_IN_PROGRESS = "In progress"
NO_COUNTRY = "Country not specified"
NO_AGENT = "Agent not specified"
NO_CATEGORY = "Category not specified"


def _to_non_negative_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise TypeError(f"{field_name} must be an integer")
    result = int(value)
    if result < 0:
        raise ValueError(f"{field_name} must be >= 0")
    return result


def _to_string_list(values: Sequence[Any] | None, field_name: str) -> list[str]:
    if values is None:
        return []
    if isinstance(values, str):
        raise TypeError(f"{field_name} must be a sequence of strings")
    normalized: list[str] = []
    for item in values:
        if not isinstance(item, str):
            raise TypeError(f"{field_name} items must be strings")
        normalized.append(item)
    return normalized


# ── Classification ───────────────────────────────────────────────


def is_commercial(ro_num: Any) -> bool:
    """Commercial ROs are the ones whose number starts with ``C-``."""
    return str(ro_num).startswith(COMMERCIAL_PREFIX)


def is_normal(ro_num: Any) -> bool:
    return not is_commercial(ro_num)


# ── Record ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class Record:
    """One cleaned RO row. Immutable; duplicates are dropped, never patched."""

    ro_num: str
    ro_rev: str = DEFAULT_REVISION
    record_id: int | float = 0
    row_index: int = 0
    ro_date: str | None = None
    country: str = NO_COUNTRY
    agent_name: str = NO_AGENT
    agent_code: str | None = None
    offer_value: float = 0.0
    outcome: str = OUTCOME_IN_PROGRESS
    contract_value: float = 0.0
    category: str = NO_CATEGORY
    category_code: str | None = None
    description: str = ""
    completion_percent: float = 0.0

    @property
    def is_commercial(self) -> bool:
        return is_commercial(self.ro_num)

    @property
    def is_normal(self) -> bool:
        return is_normal(self.ro_num)

    @property
    def month(self) -> str | None:
        return self.ro_date[:7] if self.ro_date else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ro_num": self.ro_num,
            "ro_rev": self.ro_rev,
            "record_id": self.record_id,
            "row_index": self.row_index,
            "ro_date": self.ro_date,
            "country": self.country,
            "agent_name": self.agent_name,
            "agent_code": self.agent_code,
            "offer_value": self.offer_value,
            "outcome": self.outcome,
            "contract_value": self.contract_value,
            "category": self.category,
            "category_code": self.category_code,
            "description": self.description,
            "completion_percent": self.completion_percent,
            "commercial": self.is_commercial,
        }


# ── Ingestion report ─────────────────────────────────────────────


@dataclass(frozen=True)
class RowFailure:
    """A sampled row that was skipped during ingestion."""

    row_index: int
    reason: str
    kind: str = "validation"
    preview: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "row_index": self.row_index,
            "reason": self.reason,
            "kind": self.kind,
            "preview": list(self.preview),
        }


@dataclass
class IngestionReport:
    """Counters and diagnostics for one ingestion run.

    Contract invariants:
    ``rows_empty + rows_failed + records_built <= rows_in``,
    ``records_out == records_built - duplicates_removed`` and
    ``commercial + normal == records_out``.
    """

    rows_in: int = 0
    rows_empty: int = 0
    rows_failed: int = 0
    records_built: int = 0
    duplicates_removed: int = 0
    records_out: int = 0
    commercial: int = 0
    normal: int = 0
    failures: list[RowFailure] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    degraded_cells: dict[str, int] = field(default_factory=dict)
    columns: dict[str, str | None] = field(default_factory=dict)
    error: str = ""

    def __post_init__(self) -> None:
        for name in (
            "rows_in", "rows_empty", "rows_failed", "records_built",
            "duplicates_removed", "records_out", "commercial", "normal",
        ):
            setattr(self, name, _to_non_negative_int(getattr(self, name), name))
        self.warnings = _to_string_list(self.warnings, "warnings")
        self.failures = list(self.failures or [])
        for failure in self.failures:
            if not isinstance(failure, RowFailure):
                raise TypeError("failures items must be RowFailure")
        self.degraded_cells = {
            str(k): _to_non_negative_int(v, "degraded_cells")
            for k, v in dict(self.degraded_cells or {}).items()
        }
        self.columns = dict(self.columns or {})

        if self.rows_empty + self.rows_failed + self.records_built > self.rows_in:
            raise ValueError("rows_empty + rows_failed + records_built must be <= rows_in")
        if self.records_out != self.records_built - self.duplicates_removed:
            raise ValueError("records_out must equal records_built - duplicates_removed")
        if self.commercial + self.normal != self.records_out:
            raise ValueError("commercial + normal must equal records_out")
        if len(self.failures) > self.rows_failed:
            raise ValueError("failures sample cannot exceed rows_failed")

    @property
    def success_rate(self) -> float:
        """Share of data rows that produced a valid record, in percent."""
        if self.rows_in == 0:
            return 0.0
        return round(self.records_built / self.rows_in * 100, 1)

    def summary_messages(self) -> list[str]:
        messages: list[str] = []
        if self.duplicates_removed:
            messages.append(f"{self.duplicates_removed} duplicate RO revisions removed")
        if self.rows_failed:
            messages.append(f"{self.rows_failed} rows skipped")
        degraded = sum(self.degraded_cells.values())
        if degraded:
            messages.append(f"{degraded} cells could not be parsed and were defaulted")
        return messages

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows_in": self.rows_in,
            "rows_empty": self.rows_empty,
            "rows_failed": self.rows_failed,
            "records_built": self.records_built,
            "duplicates_removed": self.duplicates_removed,
            "records_out": self.records_out,
            "commercial": self.commercial,
            "normal": self.normal,
            "success_rate": self.success_rate,
            "failures": [failure.to_dict() for failure in self.failures],
            "warnings": list(self.warnings),
            "degraded_cells": dict(self.degraded_cells),
            "columns": dict(self.columns),
            "error": self.error,
        }


@dataclass(frozen=True)
class IngestionResult:
    """Published output of a run: read-only records plus their report."""

    records: tuple[Record, ...]
    report: IngestionReport

    def __len__(self) -> int:
        return len(self.records)


# ── Run manifest ─────────────────────────────────────────────────


@dataclass
class RunManifest:
    """Audit-trail manifest for a single CLI run."""

    tool: str = "ro-ingest"
    version: str = ""
    run_id: str = ""
    input_path: str = ""
    output_dir: str = ""
    created_at_utc: str = ""
    rows_in: int = 0
    records_out: int = 0
    sha256: str = ""
    status: str = "success"
    error_code: int | None = None
    error_message: str = ""
    options: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.rows_in = _to_non_negative_int(self.rows_in, "rows_in")
        self.records_out = _to_non_negative_int(self.records_out, "records_out")
        if self.status not in {"success", "failed"}:
            raise ValueError("status must be 'success' or 'failed'")

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "version": self.version,
            "run_id": self.run_id,
            "input_path": self.input_path,
            "output_dir": self.output_dir,
            "created_at_utc": self.created_at_utc,
            "rows_in": self.rows_in,
            "records_out": self.records_out,
            "sha256": self.sha256,
            "status": self.status,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "options": dict(self.options),
        }

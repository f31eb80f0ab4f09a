"""Ingestion pipeline — grid in, deduplicated records + report out.

The pipeline is cooperative: rows are processed in batches and control is
handed back to the event loop (``await asyncio.sleep(0)``) between two
batches, so a host UI or progress bar stays responsive on large sheets.
That is the only suspension point; a batch itself runs synchronously.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from enum import Enum
from typing import Any

from ro_ingest.columns import ColumnMap, check_columns, resolve_columns
from ro_ingest.context import IngestionContext
from ro_ingest.dedup import deduplicate
from ro_ingest.errors import (
    EmptySheetError,
    IngestionCancelledError,
    IngestionError,
    NoValidRecordsError,
    RowStructureError,
)
from ro_ingest.models import IngestionReport, IngestionResult, Record, RowFailure
from ro_ingest.normalize import NormalizationStats
from ro_ingest.records import build_record, is_empty_row, row_preview, validate_record

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    IDLE = "idle"
    COLUMNS_RESOLVED = "columns_resolved"
    PROCESSING = "processing"
    DEDUPLICATING = "deduplicating"
    COMPLETE = "complete"
    FAILED = "failed"


class _RunState:
    """Accumulators owned by a single run."""

    def __init__(self) -> None:
        self.records: list[Record] = []
        self.failures: list[RowFailure] = []
        self.rows_failed = 0
        self.rows_empty = 0
        self.stats = NormalizationStats()


class IngestionPipeline:
    """Single-use orchestrator for one ingestion run.

    Create a fresh instance per file; :meth:`run` refuses to run twice.
    """

    def __init__(self, context: IngestionContext | None = None) -> None:
        self.context = context or IngestionContext()
        self.state = PipelineState.IDLE
        self.column_map: ColumnMap | None = None

    # ── Public API ───────────────────────────────────────────────

    async def run(self, grid: Sequence[Sequence[Any]]) -> IngestionResult:
        """Ingest *grid* (header row first) and return the published result.

        Raises
        ------
        IngestionError
            On a structural failure; the pipeline ends in ``FAILED``.
        """
        if self.state is not PipelineState.IDLE:
            raise RuntimeError(
                f"IngestionPipeline is single-use (current state: {self.state.value})"
            )
        try:
            return await self._run(grid)
        except IngestionError as exc:
            self.state = PipelineState.FAILED
            logger.error("Ingestion failed: %s", exc)
            raise

    # ── Stages ───────────────────────────────────────────────────

    async def _run(self, grid: Sequence[Sequence[Any]]) -> IngestionResult:
        if grid is None or len(grid) < 2:
            raise EmptySheetError("Sheet is empty: expected a header row and at least one data row")

        header = grid[0]
        if (
            isinstance(header, (str, bytes))
            or not isinstance(header, Sequence)
            or is_empty_row(header)
        ):
            raise EmptySheetError("Sheet has no header row")

        column_map = resolve_columns(header, self.context.aliases)
        warnings = check_columns(column_map)
        self.column_map = column_map
        self.state = PipelineState.COLUMNS_RESOLVED

        self.state = PipelineState.PROCESSING
        run = _RunState()
        await self._process_rows(grid, column_map, run)

        if not run.records:
            raise NoValidRecordsError(
                f"No valid records found in sheet ({run.rows_failed} rows skipped, "
                f"{run.rows_empty} empty)"
            )

        self.state = PipelineState.DEDUPLICATING
        dedup = deduplicate(run.records)

        report = IngestionReport(
            rows_in=len(grid) - 1,
            rows_empty=run.rows_empty,
            rows_failed=run.rows_failed,
            records_built=len(run.records),
            duplicates_removed=dedup.duplicates_removed,
            records_out=len(dedup.records),
            commercial=dedup.commercial,
            normal=dedup.normal,
            failures=run.failures,
            warnings=warnings,
            degraded_cells=run.stats.to_dict(),
            columns=column_map.describe(),
        )
        self.state = PipelineState.COMPLETE
        logger.info(
            "Ingestion complete: %d rows, %d records, %d duplicates removed, %d rows skipped",
            report.rows_in, report.records_out, report.duplicates_removed, report.rows_failed,
        )
        return IngestionResult(records=dedup.records, report=report)

    async def _process_rows(
        self,
        grid: Sequence[Sequence[Any]],
        column_map: ColumnMap,
        run: _RunState,
    ) -> None:
        total = len(grid) - 1
        batch_size = self.context.batch_size
        for start in range(1, len(grid), batch_size):
            end = min(start + batch_size, len(grid))
            for row_index in range(start, end):
                self._process_row(grid[row_index], row_index, column_map, run)

            if self.context.on_progress is not None:
                self.context.on_progress(end - 1, total)
            if self.context.should_cancel is not None and self.context.should_cancel():
                raise IngestionCancelledError(f"Ingestion cancelled after {end - 1} rows")
            await asyncio.sleep(0)

    def _process_row(
        self,
        row: Sequence[Any],
        row_index: int,
        column_map: ColumnMap,
        run: _RunState,
    ) -> None:
        if is_empty_row(row):
            run.rows_empty += 1
            return
        try:
            record = build_record(
                row,
                column_map,
                row_index,
                lookups=self.context.lookups,
                dayfirst=self.context.dayfirst,
                stats=run.stats,
            )
        except RowStructureError as exc:
            self._fail(run, row, row_index, str(exc), "structure")
            logger.warning("Row %d: %s", row_index, exc)
            return

        reason = validate_record(record)
        if reason is not None:
            self._fail(run, row, row_index, reason, "validation")
            logger.debug("Row %d rejected: %s", row_index, reason)
            return
        run.records.append(record)

    def _fail(
        self, run: _RunState, row: Any, row_index: int, reason: str, kind: str
    ) -> None:
        run.rows_failed += 1
        if len(run.failures) < self.context.max_failure_samples:
            run.failures.append(
                RowFailure(row_index=row_index, reason=reason, kind=kind, preview=row_preview(row))
            )


def ingest(
    grid: Sequence[Sequence[Any]],
    context: IngestionContext | None = None,
) -> IngestionResult:
    """Run a fresh :class:`IngestionPipeline` over *grid* to completion.

    Returns the deduplicated records and their :class:`IngestionReport`.
    Raises :class:`~ro_ingest.errors.IngestionError` on structural failure.

    This drives its own event loop through :func:`asyncio.run`, which raises
    ``RuntimeError`` when a loop is already running. Async hosts should
    ``await IngestionPipeline(context).run(grid)`` instead.
    """
    return asyncio.run(IngestionPipeline(context).run(grid))

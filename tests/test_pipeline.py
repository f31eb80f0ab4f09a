"""End-to-end tests for the ingestion pipeline over in-memory grids."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from ro_ingest.context import IngestionContext
from ro_ingest.errors import (
    EmptySheetError,
    IngestionCancelledError,
    IngestionError,
    MissingColumnError,
    NoValidRecordsError,
)
from ro_ingest.lookups import CodeLookupTable
from ro_ingest.pipeline import IngestionPipeline, PipelineState, ingest

HEADERS = [
    "ID", "RO_num", "RO_rev", "RO_data", "Nazione", "Agente_nome", "Offerta_Valore",
    "Offerta_Esito", "Valore_Contratto", "Offerta_Categoria", "Offerta_Descrizione",
    "Perc_realizzazione",
]


def _row(ro_num: Any, rev: Any = ".01", value: Any = 1000, **overrides: Any) -> list[Any]:
    row: dict[str, Any] = {
        "ID": None,
        "RO_num": ro_num,
        "RO_rev": rev,
        "RO_data": "2024-02-10",
        "Nazione": "Italia",
        "Agente_nome": "1",
        "Offerta_Valore": value,
        "Offerta_Esito": "In corso",
        "Valore_Contratto": 0,
        "Offerta_Categoria": "P02",
        "Offerta_Descrizione": "",
        "Perc_realizzazione": 0.3,
    }
    row.update(overrides)
    return [row[h] for h in HEADERS]


def _grid(*rows: list[Any]) -> list[list[Any]]:
    return [list(HEADERS), *rows]


def test_ingest_deduplicates_and_reports() -> None:
    grid = _grid(
        _row("RO-1", ".01", 100),
        _row("RO-1", ".10", 200),
        _row("C-7", ".01", 50),
        _row("RO-1", ".02", 300),
        _row("RO-2"),
    )

    result = ingest(grid)

    assert [r.ro_num for r in result.records] == ["RO-1", "C-7", "RO-2"]
    assert result.records[0].offer_value == 200
    report = result.report
    assert report.rows_in == 5
    assert report.records_built == 5
    assert report.duplicates_removed == 2
    assert report.records_out == 3
    assert report.commercial == 1
    assert report.normal == 2
    assert report.warnings == []
    assert report.columns["RO_num"] == "RO_num"


def test_ingest_counts_empty_and_invalid_rows() -> None:
    grid = _grid(
        _row("RO-1"),
        [None] * len(HEADERS),
        _row("X"),
        _row("RO-2", value=-5),
        _row("RO-3", Perc_realizzazione="250%"),
        _row("RO-4"),
    )

    result = ingest(grid)

    report = result.report
    assert [r.ro_num for r in result.records] == ["RO-1", "RO-4"]
    assert report.rows_empty == 1
    assert report.rows_failed == 3
    assert [f.row_index for f in report.failures] == [3, 4, 5]
    assert all(f.kind == "validation" for f in report.failures)
    assert report.failures[0].preview[:2] == ("", "X")
    assert "3 rows skipped" in report.summary_messages()


def test_ingest_skips_structurally_broken_rows() -> None:
    grid: list[Any] = _grid(_row("RO-1"), 42, _row("RO-2"))

    result = ingest(grid)

    assert result.report.rows_failed == 1
    assert result.report.failures[0].kind == "structure"
    assert result.report.records_out == 2


def test_ingest_caps_failure_samples() -> None:
    grid = _grid(_row("RO-1"), *[_row("X") for _ in range(5)])

    result = ingest(grid, IngestionContext(max_failure_samples=2))

    assert result.report.rows_failed == 5
    assert len(result.report.failures) == 2


def test_ingest_reports_degraded_cells() -> None:
    grid = _grid(_row("RO-1", value="n.d. euro", RO_data="soon"))

    report = ingest(grid).report

    assert report.degraded_cells == {"numeric": 1, "percentage": 0, "date": 1}
    assert "2 cells could not be parsed and were defaulted" in report.summary_messages()


def test_ingest_treats_impossible_calendar_dates_as_missing() -> None:
    grid = [
        ["RO_num", "RO_data", "Offerta_Valore"],
        ["RO-1", "2024-13-45", 10],
        ["RO-2", "2024-02-30", 5],
    ]

    result = ingest(grid)

    assert [record.ro_date for record in result.records] == [None, None]
    assert result.report.degraded_cells["date"] == 2


def test_ingest_warns_on_missing_recommended_columns() -> None:
    grid = [["RO_num", "Nazione"], ["RO-1", "Italia"]]

    result = ingest(grid)

    assert len(result.report.warnings) == 2
    assert result.records[0].ro_rev == "01"


@pytest.mark.parametrize("grid", [[], [HEADERS], [[None, None], ["RO-1", "x"]], ["RO_num", ["RO-1"]]])
def test_ingest_rejects_empty_sheet(grid: list[Any]) -> None:
    with pytest.raises(EmptySheetError):
        ingest(grid)


def test_ingest_requires_ro_number_column() -> None:
    with pytest.raises(MissingColumnError, match="Missing mandatory columns: RO_num"):
        ingest([["Nazione", "Valore"], ["Italia", 10]])


def test_ingest_without_valid_rows_fails() -> None:
    with pytest.raises(NoValidRecordsError, match="2 rows skipped"):
        ingest(_grid(_row("X"), _row("RO-1", value=-1)))


def test_ingest_is_idempotent() -> None:
    grid = _grid(_row("RO-1", ".01"), _row("RO-1", ".03"), _row("C-1"))

    first = ingest(grid)
    second = ingest(grid)

    assert first.records == second.records
    assert first.report.to_dict() == second.report.to_dict()


def test_ingest_uses_context_lookups_and_dayfirst() -> None:
    context = IngestionContext(
        lookups=CodeLookupTable(agents={"1": "Ada"}, categories={}),
        dayfirst=True,
    )
    grid = _grid(_row("RO-1", RO_data="03/04/2024"))

    record = ingest(grid, context).records[0]

    assert record.agent_name == "Ada"
    assert record.category == "P02"
    assert record.ro_date == "2024-04-03"


def test_progress_is_reported_after_every_batch() -> None:
    calls: list[tuple[int, int]] = []
    grid = _grid(*[_row(f"RO-{i}") for i in range(5)])

    ingest(grid, IngestionContext(batch_size=2, on_progress=lambda d, t: calls.append((d, t))))

    assert calls == [(2, 5), (4, 5), (5, 5)]


def test_cancellation_between_batches() -> None:
    pipeline = IngestionPipeline(IngestionContext(batch_size=2, should_cancel=lambda: True))
    grid = _grid(*[_row(f"RO-{i}") for i in range(5)])

    with pytest.raises(IngestionCancelledError, match="after 2 rows"):
        asyncio.run(pipeline.run(grid))

    assert pipeline.state is PipelineState.FAILED


def test_pipeline_state_and_single_use() -> None:
    pipeline = IngestionPipeline()
    assert pipeline.state is PipelineState.IDLE

    result = asyncio.run(pipeline.run(_grid(_row("RO-1"))))

    assert pipeline.state is PipelineState.COMPLETE
    assert pipeline.column_map is not None
    assert len(result) == 1
    with pytest.raises(RuntimeError, match="single-use"):
        asyncio.run(pipeline.run(_grid(_row("RO-1"))))


def test_failed_pipeline_publishes_nothing() -> None:
    pipeline = IngestionPipeline()

    with pytest.raises(IngestionError):
        asyncio.run(pipeline.run([["Nazione"], ["Italia"]]))

    assert pipeline.state is PipelineState.FAILED


def test_pipeline_yields_to_event_loop_between_batches() -> None:
    events: list[str] = []

    async def _ticker() -> None:
        for i in range(3):
            events.append(f"tick{i}")
            await asyncio.sleep(0)

    async def _main() -> int:
        context = IngestionContext(
            batch_size=1, on_progress=lambda done, _total: events.append(f"rows{done}")
        )
        task = asyncio.create_task(_ticker())
        result = await IngestionPipeline(context).run(_grid(*[_row(f"RO-{i}") for i in range(4)]))
        await task
        return len(result)

    assert asyncio.run(_main()) == 4
    assert events.index("tick0") < events.index("rows4")

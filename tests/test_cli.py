"""CLI integration tests for ro-ingest."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
from openpyxl import Workbook, load_workbook
from typer.testing import CliRunner

import ro_ingest.cli as cli_mod
from ro_ingest import __version__
from ro_ingest.cli import app
from ro_ingest.context import IngestionContext
from ro_ingest.models import IngestionResult

runner = CliRunner()

HEADERS = [
    "ID", "RO_num", "RO_rev", "RO_data", "Nazione", "Agente_nome", "Offerta_Valore",
    "Offerta_Esito", "Valore_Contratto", "Offerta_Categoria", "Offerta_Descrizione",
    "Perc_realizzazione",
]
ROWS: list[list[Any]] = [
    [1, "RO-1", ".01", 45306, "Italia", "5", "€1,000.00", "In corso", None, "P02", "", 0.3],
    [2, "RO-1", ".03", 45306, "Italia", "5", "€1,200.00", "Presa", 1100, "P02", "", 1],
    [3, "C-9", ".01", 45337, "Francia", "6", 500, "N/A", None, "P04", "Suite", "60%"],
    [" ", None, None, None, None, None, None, None, None, None, None, None],
    [4, "X", ".01", None, None, None, 10, None, None, None, None, None],
]


def _write_xlsx(tmp_path: Path, headers: list[str] = HEADERS, rows: list[list[Any]] = ROWS) -> Path:
    path = tmp_path / "ro.xlsx"
    wb = Workbook()
    ws = wb.active
    ws.append(headers)
    for row in rows:
        ws.append(row)
    wb.save(path)
    return path


def _write_csv(tmp_path: Path, name: str, text: str) -> Path:
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


def _read_json(path: Path) -> dict[str, Any]:
    return json.loads(path.read_text(encoding="utf-8"))


def test_run_success_generates_all_artifacts(tmp_path: Path) -> None:
    input_path = _write_xlsx(tmp_path)
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app, ["run", "--input", str(input_path), "--out-dir", str(out_dir), "--quiet"]
    )

    assert result.exit_code == 0, result.output
    report = _read_json(out_dir / "ingestion_report.json")
    manifest = _read_json(out_dir / "run_manifest.json")
    assert report["rows_in"] == 5
    assert report["rows_empty"] == 1
    assert report["rows_failed"] == 1
    assert report["duplicates_removed"] == 1
    assert report["records_out"] == 2
    assert manifest["status"] == "success"
    assert manifest["records_out"] == 2
    assert len(manifest["sha256"]) == 64
    assert manifest["options"]["type"] == "all"

    wb = load_workbook(out_dir / "RO_Report.xlsx")
    ws = wb["Records"]
    assert ws.max_row == 3
    assert ws.cell(row=2, column=1).value == "RO-1"
    assert ws.cell(row=2, column=2).value == ".03"

    summary = (out_dir / "summary.txt").read_text(encoding="utf-8")
    assert "records_out: 2" in summary
    assert "kpi_total_ro: 2" in summary
    assert "date_range: 2024-01-15 to 2024-02-15" in summary
    assert "warning_1: 1 duplicate RO revisions removed" in summary


def test_run_type_filter_restricts_export(tmp_path: Path) -> None:
    input_path = _write_xlsx(tmp_path)
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        ["run", "-i", str(input_path), "-o", str(out_dir), "--type", "commercial", "-q"],
    )

    assert result.exit_code == 0, result.output
    ws = load_workbook(out_dir / "RO_Report.xlsx")["Records"]
    assert [ws.cell(row=r, column=1).value for r in range(2, ws.max_row + 1)] == ["C-9"]
    assert "record_type: commercial" in (out_dir / "summary.txt").read_text(encoding="utf-8")


def test_run_missing_ro_column_exits_2_and_writes_failure_artifacts(tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, "bad.csv", "Codice,Nazione\nRO-1,Italia\n")
    out_dir = tmp_path / "out"

    result = runner.invoke(app, ["run", "-i", str(csv_path), "-o", str(out_dir)])

    assert result.exit_code == 2
    assert "Missing mandatory columns: RO_num" in result.output
    assert "--alias" in result.output
    report = _read_json(out_dir / "ingestion_report.json")
    manifest = _read_json(out_dir / "run_manifest.json")
    assert report["error"] == "Missing mandatory columns: RO_num"
    assert report["rows_in"] == 1
    assert manifest["status"] == "failed"
    assert manifest["error_code"] == 2
    assert not (out_dir / "RO_Report.xlsx").exists()


def test_alias_option_maps_renamed_header(tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, "renamed.csv", "Codice,Nazione\nRO-1,Italia\nRO-2,Spagna\n")
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        ["run", "-i", str(csv_path), "-o", str(out_dir), "--alias", "ro_num=Codice", "-q"],
    )

    assert result.exit_code == 0, result.output
    report = _read_json(out_dir / "ingestion_report.json")
    assert report["records_out"] == 2
    assert report["columns"]["RO_num"] == "Codice"


@pytest.mark.parametrize(
    ("alias", "message"),
    [("RO_num", "expected FIELD=Header"), ("Price=Prezzo", "Unknown field"), ("RO_num= ", "non-empty")],
)
def test_invalid_alias_exits_2(tmp_path: Path, alias: str, message: str) -> None:
    csv_path = _write_csv(tmp_path, "ok.csv", "RO_num\nRO-1\n")
    out_dir = tmp_path / "out"

    result = runner.invoke(app, ["run", "-i", str(csv_path), "-o", str(out_dir), "-a", alias])

    assert result.exit_code == 2
    assert message in result.output
    assert _read_json(out_dir / "run_manifest.json")["status"] == "failed"


def test_profile_file_with_comments_and_blanks(tmp_path: Path) -> None:
    profile = tmp_path / "client.profile"
    profile.write_text("# client export\n\nRO_num=Codice\n  Country = Paese Cliente\n")
    csv_path = _write_csv(tmp_path, "client.csv", "Codice,Paese Cliente\nRO-1,Italia\n")
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app, ["validate", "-i", str(csv_path), "-o", str(out_dir), "--profile", str(profile), "-q"]
    )

    assert result.exit_code == 0, result.output
    report = _read_json(out_dir / "ingestion_report.json")
    assert report["columns"]["RO_num"] == "Codice"
    assert report["columns"]["Country"] == "Paese Cliente"


def test_profile_not_found_exits_2(tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, "ok.csv", "RO_num\nRO-1\n")

    result = runner.invoke(
        app,
        ["run", "-i", str(csv_path), "-o", str(tmp_path / "out"), "--profile", str(tmp_path / "nope")],
    )

    assert result.exit_code == 2
    assert "Profile not found" in result.output


def test_profile_is_directory_exits_2(tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, "ok.csv", "RO_num\nRO-1\n")

    result = runner.invoke(
        app, ["run", "-i", str(csv_path), "-o", str(tmp_path / "out"), "--profile", str(tmp_path)]
    )

    assert result.exit_code == 2
    assert "directory" in result.output


def test_missing_input_file_exits_2(tmp_path: Path) -> None:
    out_dir = tmp_path / "out"

    result = runner.invoke(app, ["run", "-i", str(tmp_path / "nope.xlsx"), "-o", str(out_dir)])

    assert result.exit_code == 2
    assert "not found" in result.output
    manifest = _read_json(out_dir / "run_manifest.json")
    assert manifest["sha256"] == ""
    assert manifest["status"] == "failed"


def test_no_valid_records_exits_2(tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, "bad.csv", "RO_num,Offerta_Valore\nX,10\nRO-1,-4\n")

    result = runner.invoke(app, ["run", "-i", str(csv_path), "-o", str(tmp_path / "out")])

    assert result.exit_code == 2
    assert "No valid records" in result.output


def test_unexpected_error_exits_1(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, "ok.csv", "RO_num\nRO-1\n")
    out_dir = tmp_path / "out"

    def _boom(*_args: object, **_kwargs: object) -> IngestionResult:
        raise RuntimeError("kaboom")

    monkeypatch.setattr(cli_mod, "ingest", _boom)

    result = runner.invoke(app, ["run", "-i", str(csv_path), "-o", str(out_dir)])

    assert result.exit_code == 1
    assert "kaboom" in result.output
    assert _read_json(out_dir / "run_manifest.json")["error_code"] == 1


def test_validate_writes_report_and_manifest_only(tmp_path: Path) -> None:
    input_path = _write_xlsx(tmp_path)
    out_dir = tmp_path / "out"

    result = runner.invoke(app, ["validate", "-i", str(input_path), "-o", str(out_dir)])

    assert result.exit_code == 0, result.output
    assert "Validation Summary" in result.output
    assert "PASS" in result.output
    assert (out_dir / "ingestion_report.json").exists()
    assert (out_dir / "run_manifest.json").exists()
    assert not (out_dir / "RO_Report.xlsx").exists()
    assert not (out_dir / "summary.txt").exists()


def test_validate_write_error_exits_1(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    input_path = _write_xlsx(tmp_path)
    out_dir = tmp_path / "out"
    original = cli_mod._write_manifest
    calls: list[str] = []

    def _flaky_manifest(*args: Any, **kwargs: Any) -> Path:
        calls.append(kwargs.get("status", "success"))
        if len(calls) == 1:
            raise OSError("disk full")
        return original(*args, **kwargs)

    monkeypatch.setattr(cli_mod, "_write_manifest", _flaky_manifest)

    result = runner.invoke(app, ["validate", "-i", str(input_path), "-o", str(out_dir)])

    assert result.exit_code == 1
    assert "Could not write outputs: disk full" in result.output
    assert calls == ["success", "failed"]
    manifest = _read_json(out_dir / "run_manifest.json")
    assert manifest["status"] == "failed"
    assert manifest["error_code"] == 1


def test_run_nonquiet_shows_panels(tmp_path: Path) -> None:
    input_path = _write_xlsx(tmp_path)

    result = runner.invoke(app, ["run", "-i", str(input_path), "-o", str(tmp_path / "out")])

    assert result.exit_code == 0, result.output
    assert "Pipeline Start" in result.output
    assert "Pipeline Complete" in result.output
    assert "1 duplicate RO revisions removed" in result.output


def test_date_mode_and_batch_size_reach_the_context(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    csv_path = _write_csv(tmp_path, "dates.csv", "RO_num,RO_data\nRO-1,03/04/2024\n")
    seen: dict[str, IngestionContext] = {}
    real_ingest = cli_mod.ingest

    def _spy(grid: Any, context: IngestionContext) -> IngestionResult:
        seen["context"] = context
        return real_ingest(grid, context)

    monkeypatch.setattr(cli_mod, "ingest", _spy)

    result = runner.invoke(
        app,
        [
            "run", "-i", str(csv_path), "-o", str(tmp_path / "out"),
            "--dayfirst", "--batch-size", "7", "-q",
        ],
    )

    assert result.exit_code == 0, result.output
    assert seen["context"].dayfirst is True
    assert seen["context"].batch_size == 7
    assert seen["context"].on_progress is not None
    assert "date_range: 2024-04-03 to 2024-04-03" in (
        tmp_path / "out" / "summary.txt"
    ).read_text(encoding="utf-8")


def test_invalid_batch_size_exits_2(tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, "ok.csv", "RO_num\nRO-1\n")

    result = runner.invoke(
        app, ["run", "-i", str(csv_path), "-o", str(tmp_path / "out"), "--batch-size", "0"]
    )

    assert result.exit_code == 2
    assert "batch_size" in result.output


def test_version_flag_prints_and_exits() -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert f"ro-ingest v{__version__}" in result.output

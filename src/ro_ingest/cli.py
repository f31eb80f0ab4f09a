"""CLI entry point for ro-ingest."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import replace
from enum import Enum
from pathlib import Path
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.table import Table as RichTable

from ro_ingest import REQUIRED_FIELDS, __version__
from ro_ingest.columns import CANONICAL_FIELDS, FIELD_ALIASES, merge_aliases
from ro_ingest.context import DEFAULT_BATCH_SIZE, IngestionContext
from ro_ingest.errors import IngestionError, MissingColumnError
from ro_ingest.filters import RecordFilter, apply_filters
from ro_ingest.io import Grid, load_grid, sha256_file, utcnow_iso, write_json
from ro_ingest.metrics import (
    agent_analysis,
    compute_summary,
    monthly_trend,
    probability_distribution,
)
from ro_ingest.models import IngestionReport, IngestionResult, Record, RunManifest
from ro_ingest.pipeline import ingest
from ro_ingest.qc import write_ingestion_report
from ro_ingest.report import write_report

app = typer.Typer(
    name="roingest",
    help="ro-ingest — Clean, deduplicate and summarise RO opportunity spreadsheets.",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


class RecordKindOption(str, Enum):
    all = "all"
    normal = "normal"
    commercial = "commercial"


def _noop(*_args: object, **_kwargs: object) -> None:
    return None


def _printer(quiet: bool) -> Callable[..., None]:
    return _noop if quiet else console.print


def _err(msg: str) -> None:
    console.print(f"[red]x[/red] {msg}")


def _configure_logging(verbose: bool) -> None:
    logger = logging.getLogger("ro_ingest")
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    logger.addHandler(RichHandler(console=err_console, show_path=False, markup=False))
    logger.setLevel(logging.DEBUG if verbose else logging.CRITICAL)
    logger.propagate = False


# ── Helpers ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"ro-ingest v{__version__}")
        raise typer.Exit()


def _parse_alias_pairs(raw: Sequence[str] | None) -> dict[str, list[str]]:
    """Parse ``FIELD=Header`` pairs into ``{field: [header, ...]}``."""
    if not raw:
        return {}
    by_lower = {name.lower(): name for name in CANONICAL_FIELDS}
    aliases: dict[str, list[str]] = {}
    for item in raw:
        if "=" not in item:
            raise ValueError(f"Invalid --alias value: {item!r}  (expected FIELD=Header)")
        field_part, header = item.split("=", 1)
        name = by_lower.get(field_part.strip().lower())
        if name is None:
            raise ValueError(
                f"Unknown field {field_part.strip()!r} in {item!r}. "
                f"Expected one of: {', '.join(CANONICAL_FIELDS)}"
            )
        if not header.strip():
            raise ValueError("--alias entries must have a non-empty header (FIELD=Header)")
        aliases.setdefault(name, []).append(header.strip())
    return aliases


def _load_profile_aliases(profile: Path | None) -> list[str]:
    """Return list of ``FIELD=Header`` strings from a profile file."""
    if not profile:
        return []
    if not profile.exists():
        raise ValueError(f"Profile not found: {profile} (expected lines like RO_num=Codice)")
    if profile.is_dir():
        raise ValueError(f"Profile is a directory, not a file: {profile}")
    try:
        text = profile.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"Cannot read profile {profile}: {exc}") from exc

    lines: list[str] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        lines.append(stripped)
    return lines


def _build_aliases(
    profile: Path | None, alias: Sequence[str] | None
) -> Mapping[str, Sequence[str]]:
    extra = _parse_alias_pairs(_load_profile_aliases(profile) + list(alias or []))
    if not extra:
        return FIELD_ALIASES
    return merge_aliases(extra)


def _write_manifest(
    out_dir: Path,
    input_file: Path,
    run_id: str,
    created_at: str,
    report: IngestionReport,
    *,
    options: Mapping[str, Any],
    status: str = "success",
    error_code: int | None = None,
    error_message: str = "",
) -> Path:
    sha256 = ""
    if input_file.is_file():
        sha256 = sha256_file(input_file)

    manifest = RunManifest(
        version=__version__,
        run_id=run_id,
        input_path=str(input_file.resolve()),
        output_dir=str(out_dir.resolve()),
        created_at_utc=created_at,
        rows_in=report.rows_in,
        records_out=report.records_out,
        sha256=sha256,
        status=status,
        error_code=error_code,
        error_message=error_message,
        options=options,
    )
    return write_json(out_dir / "run_manifest.json", manifest.to_dict())


def _fail(
    out_dir: Path,
    input_file: Path,
    run_id: str,
    created_at: str,
    *,
    message: str,
    options: Mapping[str, Any],
    rows_in: int = 0,
    error_code: int = 2,
) -> NoReturn:
    """Write failure artifacts, print the error and exit with *error_code*."""
    report = IngestionReport(rows_in=rows_in, error=message)
    report_path = write_ingestion_report(out_dir, report)
    manifest_path = _write_manifest(
        out_dir,
        input_file,
        run_id,
        created_at,
        report,
        options=options,
        status="failed",
        error_code=error_code,
        error_message=message,
    )
    _err(message)
    console.print(f"  Ingestion report -> {report_path}")
    console.print(f"  Manifest         -> {manifest_path}")
    raise typer.Exit(code=error_code)


def _write_text_artifact(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(text, encoding="utf-8")
    tmp_path.replace(path)
    return path


def _date_range(records: Sequence[Record]) -> str:
    dates = sorted(r.ro_date for r in records if r.ro_date)
    if not dates:
        return "N/A"
    return f"{dates[0]} to {dates[-1]}"


def _write_summary_artifact(
    *,
    out_dir: Path,
    input_file: Path,
    report: IngestionReport,
    summary: Mapping[str, Any],
    records: Sequence[Record],
    kind: RecordKindOption,
    max_warnings: int = 5,
) -> Path:
    notes = [*report.warnings, *report.summary_messages()]
    lines: list[str] = [
        "ro-ingest summary",
        f"tool_version: ro-ingest v{__version__}",
        f"input_file: {input_file.name}",
        f"rows_in: {report.rows_in}",
        f"rows_empty: {report.rows_empty}",
        f"rows_skipped: {report.rows_failed}",
        f"duplicates_removed: {report.duplicates_removed}",
        f"records_out: {report.records_out}",
        f"warning_count: {len(notes)}",
    ]
    for idx, note in enumerate(notes[:max_warnings], start=1):
        lines.append(f"warning_{idx}: {note}")
    if len(notes) > max_warnings:
        lines.append(f"warning_more: {len(notes) - max_warnings}")

    lines.append(f"record_type: {kind.value}")
    lines.append(f"date_range: {_date_range(records)}")
    for label, value in summary.items():
        key = "kpi_" + label.lower().replace("%", "pct").strip().replace(" ", "_")
        rendered = f"{value:.2f}" if isinstance(value, float) else str(value)
        lines.append(f"{key}: {rendered}")
    payload = "\n".join(lines) + "\n"
    return _write_text_artifact(out_dir / "summary.txt", payload)


def _ingest_with_progress(grid: Grid, context: IngestionContext, *, quiet: bool) -> IngestionResult:
    with Progress(
        TextColumn("[blue]>[/blue] Ingesting rows"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
        disable=quiet,
        transient=True,
    ) as progress:
        task = progress.add_task("ingest", total=max(len(grid) - 1, 1))

        def on_progress(done: int, total: int) -> None:
            progress.update(task, completed=done, total=total)

        return ingest(grid, replace(context, on_progress=on_progress))


def _load_and_ingest(
    *,
    input_file: Path,
    out_dir: Path,
    run_id: str,
    created_at: str,
    alias: list[str] | None,
    profile: Path | None,
    batch_size: int,
    dayfirst: bool,
    quiet: bool,
    options: Mapping[str, Any],
) -> IngestionResult:
    """Shared front half of ``run`` and ``validate``; exits on failure."""
    echo = _printer(quiet)
    try:
        aliases = _build_aliases(profile, alias)
        context = IngestionContext(batch_size=batch_size, aliases=aliases, dayfirst=dayfirst)
    except (ValueError, TypeError) as exc:
        _fail(out_dir, input_file, run_id, created_at, message=str(exc), options=options)

    if profile:
        echo(f"  Using profile: {profile}")
    echo(f"  Date parse mode: {'DD/MM' if dayfirst else 'MM/DD'}, batch size {batch_size}")

    # ── Load ─────────────────────────────────────────────────────
    echo("[blue]>[/blue] Loading first sheet …")
    try:
        grid = load_grid(input_file)
    except (FileNotFoundError, ValueError, OSError) as exc:
        _fail(out_dir, input_file, run_id, created_at, message=str(exc), options=options)
    width = max((len(row) for row in grid), default=0)
    echo(f"  {len(grid)} rows x {width} columns")

    # ── Ingest ───────────────────────────────────────────────────
    rows_in = max(len(grid) - 1, 0)
    try:
        result = _ingest_with_progress(grid, context, quiet=quiet)
    except MissingColumnError as exc:
        console.print(f"  Accepted headers for RO_num: {', '.join(aliases['RO_num'])}")
        console.print("  Hint: use --alias RO_num=<your header> to add a header name")
        _fail(
            out_dir, input_file, run_id, created_at,
            message=str(exc), options=options, rows_in=rows_in,
        )
    except IngestionError as exc:
        _fail(
            out_dir, input_file, run_id, created_at,
            message=str(exc), options=options, rows_in=rows_in,
        )
    except Exception as exc:
        _fail(
            out_dir, input_file, run_id, created_at,
            message=f"Unexpected internal error: {exc}",
            options=options, rows_in=rows_in, error_code=1,
        )

    if not quiet:
        for warning in result.report.warnings:
            console.print(f"  [yellow]![/yellow] {warning}")
        for message in result.report.summary_messages():
            console.print(f"  [yellow]![/yellow] {message}")
        console.print(f"  {result.report.records_out} unique records retained")
    return result


# ── Callbacks ────────────────────────────────────────────────────


@app.callback()
def main(
    version: bool | None = typer.Option(
        None, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """ro-ingest CLI."""


# ── run command ──────────────────────────────────────────────────


@app.command()
def run(
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Path to XLSX/XLS/CSV input file (first sheet is read).",
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for report + ingestion report + manifest.",
    ),
    alias: list[str] | None = typer.Option(
        None, "--alias", "-a",
        help="Extra header name for a field: FIELD=Header. E.g. --alias RO_num=Codice",
    ),
    profile: Path | None = typer.Option(
        None, "--profile",
        help="Profile file containing extra header names (FIELD=Header lines).",
    ),
    batch_size: int = typer.Option(
        DEFAULT_BATCH_SIZE, "--batch-size",
        help="Rows processed between two progress updates.",
    ),
    kind: RecordKindOption = typer.Option(
        RecordKindOption.all, "--type",
        help="Restrict metrics and export to all, normal or commercial ROs.",
    ),
    dayfirst: bool = typer.Option(
        False,
        "--dayfirst/--monthfirst",
        help="Date parsing mode for ambiguous text dates like 01/02/2024.",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes all artifacts.",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Show debug logging (column mapping, dedup decisions).",
    ),
) -> None:
    """Ingest a spreadsheet and write the RO report."""
    _configure_logging(verbose)
    echo = _printer(quiet)
    created_at = utcnow_iso()
    run_id = created_at
    out_dir.mkdir(parents=True, exist_ok=True)
    options: dict[str, Any] = {
        "alias": list(alias or []),
        "profile": str(profile) if profile else None,
        "batch_size": batch_size,
        "type": kind.value,
        "dayfirst": dayfirst,
    }

    if not quiet:
        console.print(Panel(
            f"[bold]ro-ingest[/bold] v{__version__}\n"
            f"Input:  {input_file}\nOutput: {out_dir}",
            title="Pipeline Start", border_style="blue",
        ))

    result = _load_and_ingest(
        input_file=input_file,
        out_dir=out_dir,
        run_id=run_id,
        created_at=created_at,
        alias=alias,
        profile=profile,
        batch_size=batch_size,
        dayfirst=dayfirst,
        quiet=quiet,
        options=options,
    )
    report = result.report

    try:
        report_json = write_ingestion_report(out_dir, report)
        echo(f"  Ingestion report -> {report_json}")

        # ── Metrics ──────────────────────────────────────────────
        echo("[blue]>[/blue] Computing metrics …")
        records = apply_filters(result.records, RecordFilter(kind=kind.value))
        summary = compute_summary(records)
        agents = agent_analysis(records)
        monthly = monthly_trend(records)
        distribution = probability_distribution(records)

        # ── Export ───────────────────────────────────────────────
        echo("[blue]>[/blue] Writing RO_Report.xlsx …")
        report_path = write_report(
            out_dir, records, summary, agents, monthly,
            report=report, distribution=distribution,
        )
        echo(f"  Report   -> {report_path}")

        manifest_path = _write_manifest(
            out_dir, input_file, run_id, created_at, report, options=options
        )
        echo(f"  Manifest -> {manifest_path}")

        summary_path = _write_summary_artifact(
            out_dir=out_dir,
            input_file=input_file,
            report=report,
            summary=summary,
            records=records,
            kind=kind,
        )
        echo(f"  Summary  -> {summary_path}")
    except (OSError, ValueError) as exc:
        _fail(
            out_dir, input_file, run_id, created_at,
            message=f"Could not write outputs: {exc}",
            options=options, rows_in=report.rows_in, error_code=1,
        )

    if not quiet:
        console.print(Panel(
            f"[green]Done[/green] — {len(records)} records -> {report_path}",
            title="Pipeline Complete", border_style="green",
        ))


# ── validate command ─────────────────────────────────────────────


@app.command()
def validate(
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Path to XLSX/XLS/CSV input file (first sheet is read).",
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for ingestion report + manifest.",
    ),
    alias: list[str] | None = typer.Option(
        None, "--alias", "-a",
        help="Extra header name for a field: FIELD=Header.",
    ),
    profile: Path | None = typer.Option(
        None, "--profile",
        help="Profile file containing extra header names (FIELD=Header lines).",
    ),
    batch_size: int = typer.Option(
        DEFAULT_BATCH_SIZE, "--batch-size",
        help="Rows processed between two progress updates.",
    ),
    dayfirst: bool = typer.Option(
        False,
        "--dayfirst/--monthfirst",
        help="Date parsing mode for ambiguous text dates like 01/02/2024.",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes the ingestion report + manifest.",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Show debug logging (column mapping, dedup decisions).",
    ),
) -> None:
    """Ingest a file without producing the Excel report.

    Writes ingestion_report.json + run_manifest.json only.
    Exit 0 = OK, exit 2 = structural failure, exit 1 = output write error.
    """
    _configure_logging(verbose)
    created_at = utcnow_iso()
    run_id = created_at
    out_dir.mkdir(parents=True, exist_ok=True)
    options: dict[str, Any] = {
        "alias": list(alias or []),
        "profile": str(profile) if profile else None,
        "batch_size": batch_size,
        "dayfirst": dayfirst,
    }

    if not quiet:
        console.print(Panel(
            f"[bold]ro-ingest[/bold] v{__version__}  [dim]validate mode[/dim]\n"
            f"Input: {input_file}",
            title="Validate", border_style="cyan",
        ))

    result = _load_and_ingest(
        input_file=input_file,
        out_dir=out_dir,
        run_id=run_id,
        created_at=created_at,
        alias=alias,
        profile=profile,
        batch_size=batch_size,
        dayfirst=dayfirst,
        quiet=quiet,
        options=options,
    )
    report = result.report
    try:
        report_path = write_ingestion_report(out_dir, report)
        manifest_path = _write_manifest(
            out_dir, input_file, run_id, created_at, report, options=options
        )
    except (OSError, ValueError) as exc:
        _fail(
            out_dir, input_file, run_id, created_at,
            message=f"Could not write outputs: {exc}",
            options=options, rows_in=report.rows_in, error_code=1,
        )

    if not quiet:
        tbl = RichTable(title="Validation Summary", show_lines=True)
        tbl.add_column("Check", style="bold")
        tbl.add_column("Result")

        tbl.add_row("Rows in", str(report.rows_in))
        tbl.add_row("Empty rows", str(report.rows_empty))
        tbl.add_row("Rows skipped", str(report.rows_failed))
        tbl.add_row("Duplicates removed", str(report.duplicates_removed))
        tbl.add_row("Records", str(report.records_out))
        tbl.add_row("Normal / Commercial", f"{report.normal} / {report.commercial}")
        for name, header in report.columns.items():
            if header is None and name not in REQUIRED_FIELDS:
                tbl.add_row(f"Column {name}", "[dim]not found[/dim]")
        for failure in report.failures:
            tbl.add_row(f"Row {failure.row_index}", f"[yellow]{failure.reason}[/yellow]")
        tbl.add_row("Status", "[green]PASS[/green]")
        console.print(tbl)

    console.print(f"  Ingestion report -> {report_path}")
    console.print(f"  Manifest         -> {manifest_path}")

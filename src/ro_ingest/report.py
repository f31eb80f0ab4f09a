"""Excel export — produces RO_Report.xlsx."""

from __future__ import annotations

import re
from collections.abc import Sequence
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo
from openpyxl.worksheet.worksheet import Worksheet

from ro_ingest.models import IngestionReport, Record

REPORT_FILENAME = "RO_Report.xlsx"

# ── Style constants ──────────────────────────────────────────────

HEADER_FONT = Font(name="Calibri", bold=True, size=11, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="2F5496", end_color="2F5496", fill_type="solid")
HEADER_ALIGN = Alignment(horizontal="center", vertical="center", wrap_text=True)

TITLE_FONT = Font(name="Calibri", bold=True, size=14, color="2F5496")
SUBTITLE_FONT = Font(name="Calibri", size=10, color="808080")
LABEL_FONT = Font(name="Calibri", bold=True, size=11)
VALUE_FONT = Font(name="Calibri", size=11)
WARN_FONT = Font(name="Calibri", italic=True, size=10, color="CC6600")

NOTE_FILL = PatternFill(start_color="FFF2CC", end_color="FFF2CC", fill_type="solid")
KPI_FILL = PatternFill(start_color="D6E4F0", end_color="D6E4F0", fill_type="solid")

CURRENCY_FMT = '#,##0.00 "€"'
INT_FMT = '#,##0'
# Percentages arrive as percent points (e.g. 42.5), not fractions.
PCT_FMT = '0.00"%"'
DATE_FMT = 'yyyy-mm-dd'

RECORD_HEADERS: dict[str, str] = {
    "ro_num": "RO Number",
    "ro_rev": "Revision",
    "ro_date": "Date",
    "country": "Country",
    "agent_name": "Agent",
    "agent_code": "Agent Code",
    "offer_value": "Offer Value",
    "outcome": "Outcome",
    "contract_value": "Contract Value",
    "completion_percent": "Probability %",
    "category": "Category",
    "description": "Description",
}

_COL_FORMATS: dict[str, str] = {
    "Date": DATE_FMT,
    "Offer Value": CURRENCY_FMT,
    "Contract Value": CURRENCY_FMT,
    "Probability %": PCT_FMT,
    "total_value": CURRENCY_FMT,
    "total_contracts": CURRENCY_FMT,
    "avg_value": CURRENCY_FMT,
    "value": CURRENCY_FMT,
    "count": INT_FMT,
    "won": INT_FMT,
    "success_rate": PCT_FMT,
    "conversion_rate": PCT_FMT,
    "avg_probability": PCT_FMT,
}

SUMMARY_FORMATS: dict[str, str | None] = {
    "Total RO": INT_FMT,
    "Normal RO": INT_FMT,
    "Commercial RO": INT_FMT,
    "Total Offer Value": CURRENCY_FMT,
    "Total Contract Value": CURRENCY_FMT,
    "Probable Value": CURRENCY_FMT,
    "Contracts Won": INT_FMT,
    "Success Rate %": PCT_FMT,
    "Average Offer Value": CURRENCY_FMT,
    "Value Conversion %": PCT_FMT,
    "Average Probability %": PCT_FMT,
}

_MAX_COL_WIDTH = 40
_EXCEL_FORMULA_PREFIXES = ("=", "+", "-", "@")
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DATE_COLUMNS = frozenset({"Date"})


# ── Helpers ──────────────────────────────────────────────────────


def records_frame(records: Sequence[Record]) -> pd.DataFrame:
    """Records as a DataFrame with display headers, plus an RO type column."""
    rows = []
    for record in records:
        data = record.to_dict()
        row = {header: data[key] for key, header in RECORD_HEADERS.items()}
        row["Type"] = "Commercial" if record.is_commercial else "Normal"
        rows.append(row)
    return pd.DataFrame(rows, columns=[*RECORD_HEADERS.values(), "Type"])


def _excel_value(val: Any, *, as_date: bool = False) -> Any:
    if val is None or val is pd.NA or val is pd.NaT:
        return None
    if isinstance(val, float) and pd.isna(val):
        return None
    if isinstance(val, str):
        if as_date and _ISO_DATE_RE.fullmatch(val):
            try:
                return date.fromisoformat(val)
            except ValueError:
                return val
        # Neutralise text that Excel would evaluate as a formula.
        if val.lstrip()[:1] in _EXCEL_FORMULA_PREFIXES and not val.startswith("'"):
            return f"'{val}"
    item = getattr(val, "item", None)
    if callable(item):
        return item()
    return val


def _style_header(ws: Worksheet, ncols: int) -> None:
    for c in range(1, ncols + 1):
        cell = ws.cell(row=1, column=c)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = HEADER_ALIGN


def _auto_width(ws: Worksheet) -> None:
    for c_idx in range(1, ws.max_column + 1):
        letter = get_column_letter(c_idx)
        width = max(
            (len(str(cell.value or "")) for (cell,) in ws.iter_rows(
                min_row=1, max_row=min(ws.max_row, 301), min_col=c_idx, max_col=c_idx
            )),
            default=0,
        )
        ws.column_dimensions[letter].width = min(width + 4, _MAX_COL_WIDTH)


def _df_to_sheet(wb: Workbook, name: str, df: pd.DataFrame) -> Worksheet:
    ws = wb.create_sheet(title=name)
    col_names = [str(c) for c in df.columns]
    if not col_names:
        ws.cell(row=1, column=1, value="No data").font = VALUE_FONT
        return ws

    for c_idx, col_name in enumerate(col_names, 1):
        ws.cell(row=1, column=c_idx, value=col_name)
    for r_idx, row_vals in enumerate(df.itertuples(index=False, name=None), 2):
        for c_idx, val in enumerate(row_vals, 1):
            col_name = col_names[c_idx - 1]
            cell = ws.cell(
                row=r_idx,
                column=c_idx,
                value=_excel_value(val, as_date=col_name in DATE_COLUMNS),
            )
            fmt = _COL_FORMATS.get(col_name)
            if fmt:
                cell.number_format = fmt

    _style_header(ws, len(col_names))
    ws.freeze_panes = "A2"
    _auto_width(ws)
    if len(df) > 0:
        table = Table(
            displayName=re.sub(r"[^A-Za-z0-9_]", "_", name),
            ref=f"A1:{get_column_letter(len(col_names))}{len(df) + 1}",
        )
        table.tableStyleInfo = TableStyleInfo(
            name="TableStyleMedium9", showFirstColumn=False,
            showLastColumn=False, showRowStripes=True, showColumnStripes=False,
        )
        ws.add_table(table)
    return ws


def _fill_row(ws: Worksheet, row: int, fill: PatternFill, ncols: int = 4) -> None:
    for c in range(1, ncols + 1):
        ws.cell(row=row, column=c).fill = fill


def _write_summary(
    wb: Workbook,
    summary: dict[str, Any],
    report: IngestionReport,
    distribution: dict[str, int] | None,
) -> None:
    ws = wb.create_sheet(title="Summary")

    ws.cell(row=1, column=1, value="RO Dashboard — Summary").font = TITLE_FONT
    ws.merge_cells("A1:D1")
    generated = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    ws.cell(row=2, column=1, value=f"Generated {generated}").font = SUBTITLE_FONT
    ws.merge_cells("A2:D2")

    # ── Ingestion notes ──────────────────────────────────────────
    row = 4
    ws.cell(row=row, column=1, value="Ingestion").font = LABEL_FONT
    _fill_row(ws, row, NOTE_FILL)
    row += 1
    ws.cell(row=row, column=1, value=f"Rows in: {report.rows_in}")
    ws.cell(row=row, column=2, value=f"Records: {report.records_out}")
    ws.cell(row=row, column=3, value=f"Duplicates removed: {report.duplicates_removed}")
    ws.cell(row=row, column=4, value=f"Rows skipped: {report.rows_failed}")
    _fill_row(ws, row, NOTE_FILL)
    row += 1
    notes = [*report.warnings, *report.summary_messages()]
    if notes:
        for note in notes:
            ws.cell(row=row, column=1, value=f"⚠ {note}").font = WARN_FONT
            _fill_row(ws, row, NOTE_FILL)
            row += 1
    else:
        ws.cell(row=row, column=1, value="No warnings").font = VALUE_FONT
        _fill_row(ws, row, NOTE_FILL)
        row += 1

    # ── Key metrics ──────────────────────────────────────────────
    row += 1
    ws.cell(row=row, column=1, value="Key Metrics").font = LABEL_FONT
    _fill_row(ws, row, KPI_FILL)
    row += 1
    extras = sorted(label for label in summary if label not in SUMMARY_FORMATS)
    for label in [*SUMMARY_FORMATS, *extras]:
        if label not in summary:
            continue
        ws.cell(row=row, column=1, value=label).font = LABEL_FONT
        val_cell = ws.cell(row=row, column=2, value=summary[label])
        val_cell.font = VALUE_FONT
        fmt = SUMMARY_FORMATS.get(label)
        if fmt:
            val_cell.number_format = fmt
            val_cell.alignment = Alignment(horizontal="right")
        _fill_row(ws, row, KPI_FILL, ncols=2)
        row += 1

    if distribution:
        row += 1
        ws.cell(row=row, column=1, value="Probability Distribution").font = LABEL_FONT
        row += 1
        for label, count in distribution.items():
            ws.cell(row=row, column=1, value=label)
            ws.cell(row=row, column=2, value=count).number_format = INT_FMT
            row += 1

    for letter, width in zip("ABCD", (26, 22, 22, 18)):
        ws.column_dimensions[letter].width = width


# ── Public API ───────────────────────────────────────────────────


def write_report(
    out_dir: Path,
    records: Sequence[Record],
    summary: dict[str, Any],
    agents: pd.DataFrame,
    monthly: pd.DataFrame,
    report: IngestionReport | None = None,
    distribution: dict[str, int] | None = None,
) -> Path:
    """Write ``RO_Report.xlsx`` and return the path."""
    if report is None:
        report = IngestionReport()

    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    report_path = out_dir / REPORT_FILENAME

    wb = Workbook()
    active_sheet = wb.active
    if active_sheet is not None:
        wb.remove(active_sheet)

    _write_summary(wb, summary, report, distribution)
    _df_to_sheet(wb, "Records", records_frame(records))
    _df_to_sheet(wb, "Agents", agents)
    _df_to_sheet(wb, "Monthly", monthly)

    tmp_path = out_dir / "RO_Report.tmp.xlsx"
    wb.save(tmp_path)
    tmp_path.replace(report_path)
    return report_path

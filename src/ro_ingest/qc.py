"""Ingestion report persistence."""

from __future__ import annotations

from pathlib import Path

from ro_ingest.io import write_json
from ro_ingest.models import IngestionReport

REPORT_FILENAME = "ingestion_report.json"


def write_ingestion_report(out_dir: Path, report: IngestionReport) -> Path:
    """Write ``ingestion_report.json`` into *out_dir* and return the path."""
    return write_json(Path(out_dir) / REPORT_FILENAME, report.to_dict())

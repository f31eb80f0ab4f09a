"""Exception taxonomy for ingestion runs."""

from __future__ import annotations

from collections.abc import Sequence


class IngestionError(Exception):
    """Structural failure: the run aborts and no dataset is published."""


class EmptySheetError(IngestionError):
    """The sheet has no header row or no data rows."""


class MissingColumnError(IngestionError):
    """A mandatory column could not be matched to any header."""

    def __init__(self, missing: Sequence[str]) -> None:
        self.missing = list(missing)
        super().__init__(f"Missing mandatory columns: {', '.join(self.missing)}")


class NoValidRecordsError(IngestionError):
    """Every data row was empty or failed validation."""


class IngestionCancelledError(IngestionError):
    """The caller asked the run to stop between two batches."""


class RowStructureError(ValueError):
    """A single row is malformed; the row is skipped, the run continues."""

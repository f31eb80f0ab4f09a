"""Per-call ingestion settings, owned by the caller."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field

from ro_ingest.columns import FIELD_ALIASES
from ro_ingest.lookups import DEFAULT_LOOKUPS, CodeLookupTable

DEFAULT_BATCH_SIZE = 100
DEFAULT_MAX_FAILURE_SAMPLES = 10

ProgressCallback = Callable[[int, int], None]
"""Called after every batch with ``(rows_done, rows_total)``."""


@dataclass(frozen=True)
class IngestionContext:
    """Everything a run needs besides the grid itself.

    The context carries no state between runs, so one instance can be
    reused for any number of :func:`ro_ingest.pipeline.ingest` calls.
    """

    batch_size: int = DEFAULT_BATCH_SIZE
    max_failure_samples: int = DEFAULT_MAX_FAILURE_SAMPLES
    lookups: CodeLookupTable = field(default_factory=lambda: DEFAULT_LOOKUPS)
    aliases: Mapping[str, Sequence[str]] = field(default_factory=lambda: FIELD_ALIASES)
    dayfirst: bool = False
    on_progress: ProgressCallback | None = None
    should_cancel: Callable[[], bool] | None = None

    def __post_init__(self) -> None:
        if isinstance(self.batch_size, bool) or not isinstance(self.batch_size, int):
            raise TypeError("batch_size must be an integer")
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if isinstance(self.max_failure_samples, bool) or not isinstance(
            self.max_failure_samples, int
        ):
            raise TypeError("max_failure_samples must be an integer")
        if self.max_failure_samples < 0:
            raise ValueError("max_failure_samples must be >= 0")

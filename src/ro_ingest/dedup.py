"""Revision-based deduplication of records sharing an RO number."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from ro_ingest.models import Record

logger = logging.getLogger(__name__)

# Revision grammar: an optional leading dot, then the rank in 1-2 digits.
# ".10" → 10, "01" → 1, ".00" → 0. Anything else ranks lowest (0).
_REVISION_RE = re.compile(r"\.(\d{1,2})")


def normalize_revision(token: Any) -> int:
    """Return the integer rank of a revision token; malformed tokens rank 0."""
    if token is None:
        return 0
    text = str(token).strip()
    if not text:
        return 0
    if not text.startswith("."):
        text = "." + text
    match = _REVISION_RE.search(text)
    if match is None:
        return 0
    return int(match.group(1))


@dataclass(frozen=True)
class DedupResult:
    records: tuple[Record, ...]
    duplicates_removed: int
    commercial: int
    normal: int


def _pick_survivor(group: list[Record]) -> Record:
    survivor = group[0]
    best = normalize_revision(survivor.ro_rev)
    for candidate in group[1:]:
        rank = normalize_revision(candidate.ro_rev)
        if rank > best:
            survivor, best = candidate, rank
    return survivor


def deduplicate(records: Iterable[Record]) -> DedupResult:
    """Keep one record per RO number: the highest revision, first seen on ties.

    Output order follows the first appearance of each RO number.
    """
    groups: dict[str, list[Record]] = {}
    for record in records:
        groups.setdefault(record.ro_num, []).append(record)

    logger.debug("Unique RO numbers: %d", len(groups))

    survivors: list[Record] = []
    removed = 0
    for ro_num, group in groups.items():
        survivor = _pick_survivor(group)
        survivors.append(survivor)
        if len(group) > 1:
            removed += len(group) - 1
            logger.debug(
                "RO %s: kept rev %s, removed %d duplicates",
                ro_num, survivor.ro_rev, len(group) - 1,
            )

    commercial = sum(1 for record in survivors if record.is_commercial)
    return DedupResult(
        records=tuple(survivors),
        duplicates_removed=removed,
        commercial=commercial,
        normal=len(survivors) - commercial,
    )

"""Header auto-detection — map a raw header row onto the canonical fields."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from ro_ingest import RECOMMENDED_FIELDS, REQUIRED_FIELDS, VALUE_FIELDS
from ro_ingest.errors import MissingColumnError
from ro_ingest.normalize import is_blank

logger = logging.getLogger(__name__)

CANONICAL_FIELDS: tuple[str, ...] = (
    "ID",
    "RO_num",
    "RO_rev",
    "RO_date",
    "Country",
    "AgentName",
    "OfferValue",
    "OfferOutcome",
    "ContractValue",
    "Category",
    "Description",
    "CompletionPercent",
)

# Ranked aliases per field. A header matches an alias when its lower-cased,
# trimmed text contains it; earlier headers win over later ones.
FIELD_ALIASES: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        "ID": ("ID",),
        "RO_num": ("RO_num", "RO Numero", "Numero RO", "RO Number", "NumRO", "N. RO"),
        "RO_rev": ("RO_rev", "RO Rev", "Revisione", "Rev", "RO_revisione"),
        "RO_date": ("RO_data", "RO Data", "Data RO", "RO_date", "Date", "Data", "Data Creazione"),
        "Country": ("Nazione", "Nation", "Country", "Paese", "Stato", "Cliente Nazione"),
        "AgentName": (
            "Agente_nome", "Agente Nome", "Agent", "Agente", "Nome Agente", "Responsabile",
        ),
        "OfferValue": (
            "Offerta_Valore", "Valore Offerta", "Offer Value", "Valore", "Importo", "Prezzo",
        ),
        "OfferOutcome": ("Offerta_Esito", "Esito Offerta", "Outcome", "Esito", "Status", "Stato"),
        "ContractValue": (
            "Valore_Contratto", "Contract Value", "Contratto", "Valore Contratto",
            "Importo Contratto",
        ),
        "Category": (
            "Offerta_Categoria", "Category", "Categoria", "Tipo", "Settore", "Prodotto",
        ),
        "Description": ("Offerta_Descrizione", "Description", "Descrizione", "Note", "Dettagli"),
        "CompletionPercent": (
            "Perc_realizzazione", "Percentuale Realizzazione", "Perc Realizzazione",
            "% Realizzazione", "Completion",
        ),
    }
)

FIELD_LABELS: Mapping[str, str] = MappingProxyType(
    {
        "RO_num": "RO number",
        "RO_rev": "RO revision",
        "RO_date": "RO date",
        "CompletionPercent": "completion percentage",
    }
)


# ── Column map ───────────────────────────────────────────────────


@dataclass(frozen=True)
class ColumnMap:
    """Canonical field → column index (``None`` when no header matched)."""

    indices: Mapping[str, int | None]
    headers: tuple[str, ...] = field(default=())

    def __post_init__(self) -> None:
        unknown = sorted(set(self.indices) - set(CANONICAL_FIELDS))
        if unknown:
            raise ValueError(f"Unknown canonical fields: {', '.join(unknown)}")
        frozen = {name: self.indices.get(name) for name in CANONICAL_FIELDS}
        object.__setattr__(self, "indices", MappingProxyType(frozen))
        object.__setattr__(self, "headers", tuple(self.headers))

    def index(self, field_name: str) -> int | None:
        return self.indices[field_name]

    def is_found(self, field_name: str) -> bool:
        return self.indices[field_name] is not None

    @property
    def found(self) -> list[str]:
        return [name for name in CANONICAL_FIELDS if self.indices[name] is not None]

    @property
    def missing(self) -> list[str]:
        return [name for name in CANONICAL_FIELDS if self.indices[name] is None]

    def describe(self) -> dict[str, str | None]:
        """Return ``{field: matched header text or None}`` for diagnostics."""
        described: dict[str, str | None] = {}
        for name, idx in self.indices.items():
            if idx is None or idx >= len(self.headers):
                described[name] = None
            else:
                described[name] = self.headers[idx]
        return described


# ── Resolution ───────────────────────────────────────────────────


def _normalize_header(value: Any) -> str:
    if is_blank(value):
        return ""
    return str(value).strip().lower()


def _find_column(headers: Sequence[str], aliases: Sequence[str]) -> int | None:
    needles = [alias.strip().lower() for alias in aliases if alias.strip()]
    for idx, header in enumerate(headers):
        if not header:
            continue
        for needle in needles:
            if needle in header:
                return idx
    return None


def resolve_columns(
    headers: Sequence[Any],
    aliases: Mapping[str, Sequence[str]] = FIELD_ALIASES,
) -> ColumnMap:
    """Build a :class:`ColumnMap` from a header row by alias matching."""
    normalized = [_normalize_header(h) for h in headers]
    indices = {
        name: _find_column(normalized, aliases.get(name, ())) for name in CANONICAL_FIELDS
    }
    column_map = ColumnMap(
        indices=indices,
        headers=tuple("" if is_blank(h) else str(h) for h in headers),
    )
    for name, header in column_map.describe().items():
        if header is None:
            logger.debug("%s: not found", name)
        else:
            logger.debug("%s: column %s (%s)", name, column_map.index(name), header)
    return column_map


def check_columns(column_map: ColumnMap) -> list[str]:
    """Validate a column map.

    Raises
    ------
    MissingColumnError
        If a mandatory field (``RO_num``) did not resolve.

    Returns
    -------
    list[str]
        Warnings for missing recommended fields and for the absence of
        every value column.
    """
    missing = [name for name in REQUIRED_FIELDS if not column_map.is_found(name)]
    if missing:
        raise MissingColumnError(missing)

    warnings: list[str] = []
    recommended = [name for name in RECOMMENDED_FIELDS if not column_map.is_found(name)]
    if recommended:
        labels = ", ".join(f"{name} ({FIELD_LABELS[name]})" for name in recommended)
        warnings.append(
            f"Recommended columns not found: {labels}; some analyses will be limited"
        )
    if not any(column_map.is_found(name) for name in VALUE_FIELDS):
        warnings.append(
            "No value column found (OfferValue, ContractValue); economic analysis will be limited"
        )
    for warning in warnings:
        logger.warning(warning)
    return warnings


def merge_aliases(
    extra: Mapping[str, Sequence[str]],
    base: Mapping[str, Sequence[str]] = FIELD_ALIASES,
) -> dict[str, tuple[str, ...]]:
    """Return a new alias table with *extra* aliases ranked ahead of *base*."""
    unknown = sorted(set(extra) - set(CANONICAL_FIELDS))
    if unknown:
        raise ValueError(
            f"Unknown field(s) in alias map: {', '.join(unknown)}. "
            f"Expected one of: {', '.join(CANONICAL_FIELDS)}"
        )
    merged: dict[str, tuple[str, ...]] = {}
    for name in CANONICAL_FIELDS:
        added = tuple(alias for alias in extra.get(name, ()) if alias.strip())
        existing = tuple(alias for alias in base.get(name, ()) if alias not in added)
        merged[name] = added + existing
    return merged

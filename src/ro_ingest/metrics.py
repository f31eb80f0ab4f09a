"""Summary metrics over a (possibly filtered) record sequence."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import pandas as pd

from ro_ingest.filters import PROBABILITY_BANDS, probability_band
from ro_ingest.models import NO_AGENT, NO_CATEGORY, Record

RECORD_COLUMNS: list[str] = [
    "ro_num", "ro_rev", "record_id", "row_index", "ro_date", "country",
    "agent_name", "agent_code", "offer_value", "outcome", "contract_value",
    "category", "category_code", "description", "completion_percent", "commercial",
]

# Outcome substrings that count as a won contract.
WON_OUTCOMES: tuple[str, ...] = ("presa", "chiusa", "vinta", "aggiudicata", "confermata", "won")

MONTHLY_COLUMNS = ["month", "count", "value", "avg_value", "avg_probability"]
AGENT_COLUMNS = [
    "agent", "count", "total_value", "total_contracts", "won",
    "success_rate", "avg_value", "conversion_rate", "avg_probability",
]


def records_to_frame(records: Iterable[Record]) -> pd.DataFrame:
    """Return one row per record with :data:`RECORD_COLUMNS`."""
    rows = [record.to_dict() for record in records]
    return pd.DataFrame(rows, columns=RECORD_COLUMNS)


def _won_mask(df: pd.DataFrame) -> pd.Series:
    outcome = df["outcome"].astype("string").str.lower()
    return outcome.str.contains("|".join(WON_OUTCOMES), regex=True, na=False)


def _pct(part: float, whole: float) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


# ── Headline metrics ─────────────────────────────────────────────


def compute_summary(records: Iterable[Record]) -> dict[str, Any]:
    """Return the headline metrics, keyed by display label."""
    df = records_to_frame(records)
    if df.empty:
        return {
            "Total RO": 0,
            "Normal RO": 0,
            "Commercial RO": 0,
            "Total Offer Value": 0.0,
            "Total Contract Value": 0.0,
            "Probable Value": 0.0,
            "Contracts Won": 0,
            "Success Rate %": 0.0,
            "Average Offer Value": 0.0,
            "Value Conversion %": 0.0,
            "Average Probability %": 0.0,
        }

    total_ro = len(df)
    commercial = int(df["commercial"].sum())
    total_value = float(df["offer_value"].sum())
    total_contracts = float(df["contract_value"].sum())
    won = int(_won_mask(df).sum())
    probable = float((df["offer_value"] * df["completion_percent"] / 100).sum())

    return {
        "Total RO": total_ro,
        "Normal RO": total_ro - commercial,
        "Commercial RO": commercial,
        "Total Offer Value": round(total_value, 2),
        "Total Contract Value": round(total_contracts, 2),
        "Probable Value": round(probable, 2),
        "Contracts Won": won,
        "Success Rate %": _pct(won, total_ro),
        "Average Offer Value": round(total_value / total_ro, 2),
        "Value Conversion %": _pct(total_contracts, total_value),
        "Average Probability %": round(float(df["completion_percent"].mean()), 2),
    }


def probability_distribution(records: Iterable[Record]) -> dict[str, int]:
    """Count records per completion-probability band (highest band first)."""
    counts = {label: 0 for _lower, label in PROBABILITY_BANDS}
    for record in records:
        counts[probability_band(record.completion_percent)] += 1
    return counts


# ── Breakdowns ───────────────────────────────────────────────────


def top_categories(records: Iterable[Record], n: int = 5) -> pd.DataFrame:
    """Return the top N categories by offer value."""
    df = records_to_frame(records)
    if df.empty:
        return pd.DataFrame(columns=["category", "value"])
    df["category"] = df["category"].fillna(NO_CATEGORY)
    return (
        df.groupby("category", as_index=False, sort=False)
        .agg(value=("offer_value", "sum"))
        .sort_values("value", ascending=False, kind="stable")
        .head(n)
        .reset_index(drop=True)
    )


def monthly_trend(records: Iterable[Record]) -> pd.DataFrame:
    """Aggregate dated records by ``YYYY-MM``."""
    df = records_to_frame(records)
    df = df[df["ro_date"].notna()]
    if df.empty:
        return pd.DataFrame(columns=MONTHLY_COLUMNS)
    df = df.assign(month=df["ro_date"].str.slice(0, 7))
    monthly = (
        df.groupby("month", as_index=False)
        .agg(
            count=("ro_num", "size"),
            value=("offer_value", "sum"),
            avg_probability=("completion_percent", "mean"),
        )
        .sort_values("month")
        .reset_index(drop=True)
    )
    monthly["avg_value"] = (monthly["value"] / monthly["count"]).round(2)
    monthly["avg_probability"] = monthly["avg_probability"].round(2)
    return monthly[MONTHLY_COLUMNS]


def agent_analysis(records: Iterable[Record]) -> pd.DataFrame:
    """Per-agent performance, sorted by total offer value (desc)."""
    df = records_to_frame(records)
    df = df[df["agent_name"] != NO_AGENT]
    if df.empty:
        return pd.DataFrame(columns=AGENT_COLUMNS)
    df = df.assign(won=_won_mask(df).astype(int))
    agents = df.groupby("agent_name", as_index=False, sort=False).agg(
        count=("ro_num", "size"),
        total_value=("offer_value", "sum"),
        total_contracts=("contract_value", "sum"),
        won=("won", "sum"),
        avg_probability=("completion_percent", "mean"),
    )
    agents = agents.rename(columns={"agent_name": "agent"})
    agents["success_rate"] = (agents["won"] / agents["count"] * 100).round(2)
    agents["avg_value"] = (agents["total_value"] / agents["count"]).round(2)
    agents["conversion_rate"] = [
        _pct(contracts, value)
        for contracts, value in zip(agents["total_contracts"], agents["total_value"])
    ]
    agents["avg_probability"] = agents["avg_probability"].round(2)
    return (
        agents.sort_values("total_value", ascending=False, kind="stable")
        .reset_index(drop=True)[AGENT_COLUMNS]
    )

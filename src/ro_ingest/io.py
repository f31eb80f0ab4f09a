"""I/O helpers — load the first sheet as a cell grid, write JSON artifacts."""

from __future__ import annotations

import hashlib
import json
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, Literal, cast

import pandas as pd

SUPPORTED_SUFFIXES: tuple[str, ...] = (".xlsx", ".xlsm", ".xls", ".csv")
MAX_FILE_SIZE = 50 * 1024 * 1024  # 50 MiB

Grid = list[list[Any]]

# ── Loading ──────────────────────────────────────────────────────


def validate_input_file(path: Path) -> Path:
    """Check that *path* is a readable, non-empty spreadsheet of sane size.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    ValueError
        If it is a directory, has an unsupported suffix, is empty or too large.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")
    if path.is_dir():
        raise ValueError(f"Input is a directory, not a file: {path}")

    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise ValueError(
            f"Unsupported file type: {suffix!r}. Use {', '.join(SUPPORTED_SUFFIXES)}"
        )

    size = path.stat().st_size
    if size == 0:
        raise ValueError(f"Input file is empty: {path}")
    if size > MAX_FILE_SIZE:
        raise ValueError(
            f"Input file is too large: {size / (1024 * 1024):.1f} MiB "
            f"(limit {MAX_FILE_SIZE // (1024 * 1024)} MiB)"
        )
    return path


def _frame_to_grid(df: pd.DataFrame) -> Grid:
    cells = df.astype(object).where(df.notna(), None)
    return cast(Grid, cells.values.tolist())


def _read_csv(path: Path, delimiter: str | None) -> pd.DataFrame:
    last_exc: Exception | None = None
    sep = delimiter if delimiter else None
    engine: Literal["c", "python"] = "c" if delimiter else "python"
    for encoding in ("utf-8-sig", "utf-8", "latin-1"):
        try:
            return pd.read_csv(
                path,
                header=None,
                dtype="string",
                sep=sep,
                engine=engine,
                encoding=encoding,
                encoding_errors="strict",
                skip_blank_lines=False,
            )
        except (UnicodeDecodeError, pd.errors.ParserError) as exc:
            last_exc = exc
    raise ValueError(f"Could not read CSV {path} (decode or parse failed)") from last_exc


def load_grid(path: Path, delimiter: str | None = None) -> Grid:
    """Read the first sheet of *path* as a list of rows (header row first).

    Cells keep their native type (str, int/float, datetime); empty cells
    are ``None``. CSV cells are always strings.
    """
    path = validate_input_file(path)
    suffix = path.suffix.lower()

    if suffix == ".csv":
        return _frame_to_grid(_read_csv(path, delimiter))

    read_excel = cast(Callable[..., pd.DataFrame], getattr(pd, "read_excel"))
    if suffix == ".xls":
        try:
            df = read_excel(path, sheet_name=0, header=None, dtype=object, engine="xlrd")
        except ImportError as exc:
            raise ValueError(
                "Unsupported .xls input unless 'xlrd' is installed. "
                "Either convert to .xlsx or add dependency: pip install xlrd"
            ) from exc
    else:
        df = read_excel(path, sheet_name=0, header=None, dtype=object, engine="openpyxl")
    return _frame_to_grid(df)


def sha256_file(path: Path) -> str:
    """Return the hex SHA-256 digest of *path*."""
    h = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(8192), b""):
            h.update(chunk)
    return h.hexdigest()


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ── Writing ──────────────────────────────────────────────────────


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    item = getattr(obj, "item", None)
    if callable(item):
        converted = item()
        if isinstance(converted, (str, int, float, bool)) or converted is None:
            return converted
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def write_json(path: Path, data: Any) -> Path:
    """Write *data* as pretty-printed JSON to *path* (atomic + deterministic)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    payload = json.dumps(
        data,
        indent=2,
        sort_keys=True,
        ensure_ascii=False,
        default=_json_default,
    ) + "\n"
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(payload, encoding="utf-8")
    tmp_path.replace(path)
    return path

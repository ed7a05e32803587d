"""Flat-file helpers shared by the three pipeline stages."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import pandas as pd


def _suffixes(path: Path) -> Sequence[str]:
    return [s.lower() for s in path.suffixes]


def load_table(path: str | Path) -> pd.DataFrame:
    """Read a CSV (optionally gzip-compressed) or TSV (``.txt``/``.tsv``) file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")
    suffixes = _suffixes(path)
    if ".csv" in suffixes:
        return pd.read_csv(path)
    if suffixes and suffixes[-1] in (".txt", ".tsv"):
        return pd.read_csv(path, sep="\t")
    raise ValueError(f"Unsupported extension: {''.join(path.suffixes)}")


def write_table(df: pd.DataFrame, path: str | Path, *, sep: str = ",") -> Path:
    """Write ``df`` without index; compression is inferred from the file name."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, sep=sep, index=False)
    return path


def section_columns(sections: Sequence[str]) -> list[str]:
    return [f"part_{section}" for section in sections]


__all__ = ["load_table", "section_columns", "write_table"]

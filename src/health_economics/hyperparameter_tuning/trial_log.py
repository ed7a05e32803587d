"""Append-only TSV log of Bayesian optimization trials.

The log is both the human-readable record of every trial and the resume
point: on restart the number of logged rows gives the iteration counter and
the best logged ``error`` the baseline that later trials must beat.
"""

from __future__ import annotations

import csv
import math
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Mapping, Tuple

import numpy as np
import pandas as pd

ERROR_COLUMN = "error"
TIMESTAMP_FORMAT = "%Y%m%d %H%M%S"


def _format_value(value: Any) -> str:
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float):
        return repr(value)
    if isinstance(value, (list, tuple)):
        return ",".join(_format_value(v) for v in value)
    return str(value)


class TrialLog:
    """One row per trial, preceded by a ``timestamp`` column."""

    def __init__(self, path: str | Path, *, verbose: bool = True):
        self.path = Path(path)
        self.verbose = verbose

    def exists(self) -> bool:
        return self.path.exists()

    def append(self, record: Mapping[str, Any]) -> str:
        """Append ``record``; the header is written when the file is created."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        new_file = not self.path.exists()
        row = [datetime.now().strftime(TIMESTAMP_FORMAT)] + [_format_value(v) for v in record.values()]
        with self.path.open("a", newline="", encoding="utf-8") as fh:
            writer = csv.writer(fh, delimiter="\t", lineterminator="\n")
            if new_file:
                writer.writerow(["timestamp", *record.keys()])
            writer.writerow(row)
        line = "\t".join(row)
        if self.verbose:
            print(line)
        return line

    def load(self) -> pd.DataFrame:
        if not self.path.exists():
            raise FileNotFoundError(f"Trial log not found: {self.path}")
        # A process killed mid-write may leave a truncated last line.
        return pd.read_csv(self.path, sep="\t", on_bad_lines="skip")

    def resume_state(self, *, minimize: bool = True) -> Tuple[int, float]:
        """Return ``(iterations_done, best_error)``; ``(0, inf)`` without a log."""
        worst = math.inf if minimize else -math.inf
        if not self.path.exists():
            return 0, worst
        table = self.load()
        iterations = len(table)
        if ERROR_COLUMN not in table.columns:
            return iterations, worst
        errors = pd.to_numeric(table[ERROR_COLUMN], errors="coerce").dropna()
        if errors.empty:
            return iterations, worst
        best = float(errors.min() if minimize else errors.max())
        return iterations, best

    def best_record(self, *, minimize: bool = True) -> Dict[str, Any]:
        table = self.load()
        if ERROR_COLUMN not in table.columns:
            raise KeyError(f"Column '{ERROR_COLUMN}' not found in {self.path}")
        errors = pd.to_numeric(table[ERROR_COLUMN], errors="coerce")
        if errors.notna().sum() == 0:
            raise ValueError(f"No completed trials in {self.path}")
        idx = errors.idxmin() if minimize else errors.idxmax()
        return table.loc[idx].to_dict()


__all__ = ["ERROR_COLUMN", "TrialLog"]

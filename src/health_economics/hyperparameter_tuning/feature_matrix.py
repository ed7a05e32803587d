"""Feature matrix preparation for LightGBM.

Text columns (country code / name) become pandas ``category`` columns whose
levels are shared by every frame built from the same :class:`CategoryLevels`,
so training, validation and prediction frames encode a country identically.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence

import numpy as np
import pandas as pd


def select_feature_columns(df: pd.DataFrame, exclude: Iterable[str]) -> List[str]:
    excluded = set(exclude)
    return [c for c in df.columns if c not in excluded and not str(c).startswith("part_")]


@dataclass
class CategoryLevels:
    levels: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def fit(cls, frames: Sequence[pd.DataFrame], columns: Sequence[str]) -> "CategoryLevels":
        levels: Dict[str, List[str]] = {}
        for col in columns:
            values: set[str] = set()
            is_text = False
            for frame in frames:
                if col not in frame.columns:
                    continue
                series = frame[col]
                if series.dtype == object or isinstance(series.dtype, pd.CategoricalDtype) or pd.api.types.is_string_dtype(series.dtype):
                    is_text = True
                    values.update(str(v) for v in series.dropna().unique())
            if is_text:
                levels[col] = sorted(values)
        return cls(levels=levels)

    def transform(self, df: pd.DataFrame, columns: Sequence[str]) -> pd.DataFrame:
        """Return ``df[columns]`` (missing columns filled with NaN) with shared categories."""
        out = df.reindex(columns=list(columns))
        for col in columns:
            if col in self.levels:
                out[col] = pd.Categorical(
                    out[col].where(out[col].isna(), out[col].astype(str)),
                    categories=self.levels[col],
                )
            elif out[col].dtype == object:
                out[col] = pd.to_numeric(out[col], errors="coerce")
            elif out[col].dtype == bool:
                out[col] = out[col].astype(np.int8)
        return out


__all__ = ["CategoryLevels", "select_feature_columns"]

"""Stratified random fold assignment."""

from __future__ import annotations

from typing import Sequence

import numpy as np
import pandas as pd


def assign_folds(
    df: pd.DataFrame,
    division: Sequence[int],
    group_cols: Sequence[str] = (),
    *,
    column: str = "fold",
    start: int = 1,
    seed: int | None = None,
) -> pd.DataFrame:
    """Add ``column`` with fold ids ``start..start+len(division)-1``.

    ``division`` gives the relative size of each fold (``[1, 1]`` = halves).
    Inside every group of ``group_cols`` the block of fold ids is repeated to
    cover the group and shuffled, so each group is split in the requested
    proportions.

    Examples
    --------
    >>> frame = pd.DataFrame({"g": [0, 0, 0, 0]})
    >>> sorted(assign_folds(frame, [1, 1], ["g"], seed=1)["fold"].tolist())
    [1, 1, 2, 2]
    """
    if not division or any(int(d) < 1 for d in division):
        raise ValueError("division must contain positive integers")

    rng = np.random.default_rng(seed)
    block = np.repeat(np.arange(start, start + len(division)), [int(d) for d in division])
    folds = np.zeros(len(df), dtype=np.int64)

    if group_cols:
        groups = df.groupby(list(group_cols), sort=True).indices.values()
    else:
        groups = [np.arange(len(df))]

    for positions in groups:
        n = len(positions)
        reps = int(np.ceil(n / len(block)))
        folds[positions] = rng.permutation(np.tile(block, reps))[:n]

    out = df.copy()
    out[column] = folds
    return out


__all__ = ["assign_folds"]

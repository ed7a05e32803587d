"""Year-based partition assignment.

Each section (``present``, ``train``, ``validate``, ``test``, ``train_final``)
becomes a 0/1 column ``part_<section>``. The rule for a section is, in order:

1. flag=1 when the year is in ``periodos``; only when ``periodos`` is empty,
   flag=1 when ``desde <= year <= hasta``;
2. flag=0 when the year is in ``excluir`` (exclusion always wins);
3. for each undersampling entry, flagged rows whose class equals the entry's
   value are dropped when their uniform draw is >= the keep probability.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping, Sequence, Tuple

import numpy as np
import pandas as pd

from health_economics.common.config import SectionRule
from health_economics.common.io_utils import section_columns

RANDOM_COLUMN = "part_azar"


@dataclass(frozen=True)
class PeriodCutoffs:
    """Year boundaries derived from the present year and the lead order."""

    present: int
    test: int
    validate: int
    train: Tuple[int, int]
    train_final: Tuple[int, int]


def compute_period_cutoffs(present_year: int, lead_order: int, min_year: int) -> PeriodCutoffs:
    """Derive section years.

    >>> c = compute_period_cutoffs(2021, 1, 2000)
    >>> (c.test, c.validate, c.train, c.train_final, c.present)
    (2020, 2019, (2000, 2018), (2000, 2020), 2021)
    """
    if lead_order < 1:
        raise ValueError(f"lead_order must be >= 1, got {lead_order}")
    test = present_year - lead_order
    return PeriodCutoffs(
        present=present_year,
        test=test,
        validate=test - 1,
        train=(min_year, test - 2),
        train_final=(min_year, test),
    )


def resolve_section_rules(
    rules: Mapping[str, SectionRule],
    cutoffs: PeriodCutoffs,
) -> Dict[str, SectionRule]:
    """Overwrite configured year selections with the derived cutoffs.

    Exclusion lists and undersampling entries of the configuration are kept.
    ``train``/``train_final`` keep their configured ``desde`` when present.
    """
    resolved: Dict[str, SectionRule] = {}
    for section, rule in rules.items():
        if section == "present":
            rule = rule.with_periods((cutoffs.present,))
        elif section == "test":
            rule = rule.with_periods((cutoffs.test,))
        elif section == "validate":
            rule = rule.with_periods((cutoffs.validate,))
        elif section == "train":
            start = rule.range_from if rule.range_from is not None else cutoffs.train[0]
            rule = rule.with_range(start, cutoffs.train[1])
        elif section == "train_final":
            start = rule.range_from if rule.range_from is not None else cutoffs.train_final[0]
            rule = rule.with_range(start, cutoffs.train_final[1])
        resolved[section] = rule
    return resolved


def partition_flags(
    df: pd.DataFrame,
    rule: SectionRule,
    *,
    period_column: str,
    class_column: str,
    random_column: str = RANDOM_COLUMN,
) -> pd.Series:
    """Compute the 0/1 membership of every row for one section."""
    periods = df[period_column]

    if rule.periods:
        selected = periods.isin(rule.periods)
    elif rule.range_from is not None and rule.range_to is not None:
        selected = (periods >= rule.range_from) & (periods <= rule.range_to)
    else:
        selected = pd.Series(False, index=df.index)

    if rule.exclude:
        selected &= ~periods.isin(rule.exclude)

    if rule.undersampling:
        if random_column not in df.columns:
            raise KeyError(f"Undersampling needs the uniform draw column '{random_column}'")
        if class_column not in df.columns:
            raise KeyError(f"Undersampling needs the class column '{class_column}'")
        for entry in rule.undersampling:
            drop = (df[class_column] == entry.class_value) & (
                df[random_column] >= entry.keep_probability
            )
            selected &= ~drop

    return selected.astype(np.int64)


def apply_partition(
    df: pd.DataFrame,
    section: str,
    rule: SectionRule,
    *,
    period_column: str,
    class_column: str,
    random_column: str = RANDOM_COLUMN,
) -> pd.DataFrame:
    """Add ``part_<section>`` to ``df`` in place and return it."""
    df[f"part_{section}"] = partition_flags(
        df,
        rule,
        period_column=period_column,
        class_column=class_column,
        random_column=random_column,
    )
    return df


def assign_partitions(
    df: pd.DataFrame,
    rules: Mapping[str, SectionRule],
    *,
    period_column: str,
    class_column: str,
    sort_columns: Sequence[str] = (),
    seed: int = 0,
) -> pd.DataFrame:
    """Sort, draw one U(0,1) per row, tag every section and drop the draw."""
    if period_column not in df.columns:
        raise KeyError(f"Period column '{period_column}' not found in dataset")

    out = df
    if sort_columns:
        out = out.sort_values(list(sort_columns), kind="mergesort").reset_index(drop=True)
    else:
        out = out.copy()

    rng = np.random.default_rng(seed)
    out[RANDOM_COLUMN] = rng.random(len(out))

    for section, rule in rules.items():
        apply_partition(
            out,
            section,
            rule,
            period_column=period_column,
            class_column=class_column,
        )

    return out.drop(columns=[RANDOM_COLUMN])


def drop_leaky_columns(df: pd.DataFrame, pattern: str | None, keep: Sequence[str] = ()) -> Tuple[pd.DataFrame, list[str]]:
    """Remove columns containing ``pattern`` (the source indicator family) except ``keep``."""
    if not pattern:
        return df, []
    leaky = [c for c in df.columns if pattern in str(c) and c not in keep]
    return df.drop(columns=leaky), leaky


def partition_control_table(df: pd.DataFrame, sections: Sequence[str]) -> pd.DataFrame:
    """Row count per observed combination of section flags."""
    cols = section_columns(sections)
    return df.groupby(cols, sort=False).size().reset_index(name="N")


__all__ = [
    "PeriodCutoffs",
    "RANDOM_COLUMN",
    "apply_partition",
    "assign_partitions",
    "compute_period_cutoffs",
    "drop_leaky_columns",
    "partition_control_table",
    "partition_flags",
    "resolve_section_rules",
]

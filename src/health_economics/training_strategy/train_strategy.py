#!/usr/bin/env python
"""Training strategy stage (02_TS).

Reads the feature-engineered panel, removes the source indicator family
(leak guard), tags rows with the five ``part_<section>`` flags and writes

* the control table (row counts per flag combination, TSV),
* ``present``: present-year rows without class and flags,
* ``train_strategy``: train/validate/test rows with their three flags,
* ``train_final``: every labelled historical row without flags.

Empty partitions only print a warning; the stage never aborts on them.
"""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Sequence

import pandas as pd

from health_economics.common.config import (
    DEFAULT_CONFIG_PATH,
    PipelineConfig,
    load_pipeline_config,
)
from health_economics.common.io_utils import load_table, section_columns, write_table
from health_economics.training_strategy.partition import (
    PeriodCutoffs,
    assign_partitions,
    compute_period_cutoffs,
    drop_leaky_columns,
    partition_control_table,
    resolve_section_rules,
)


@dataclass
class TrainingStrategyResult:
    cutoffs: PeriodCutoffs
    control: pd.DataFrame
    counts: Dict[str, int]
    outputs: Dict[str, Path] = field(default_factory=dict)


def _section_count(df: pd.DataFrame, section: str) -> int:
    col = f"part_{section}"
    return int((df[col] > 0).sum()) if col in df.columns else 0


def build_partitions(dataset: pd.DataFrame, config: PipelineConfig) -> tuple[pd.DataFrame, PeriodCutoffs]:
    """Apply leak guard, cutoffs and section flags to an in-memory dataset."""
    ts_cfg = config.training_strategy
    fe_cfg = config.feature_engineering

    dataset, removed = drop_leaky_columns(dataset, ts_cfg.leak_pattern, keep=[ts_cfg.class_column])
    if removed:
        print(f"[info] removed {len(removed)} '{ts_cfg.leak_pattern}' columns (class kept)")

    if ts_cfg.period_column not in dataset.columns:
        raise KeyError(f"Period column '{ts_cfg.period_column}' not found in dataset")
    min_year = int(dataset[ts_cfg.period_column].min())

    cutoffs = compute_period_cutoffs(fe_cfg.present_year, fe_cfg.lead_order, min_year)
    rules = resolve_section_rules(ts_cfg.rules, cutoffs)

    print("=== period configuration ===")
    print(f"[info] present year (no class): {cutoffs.present}")
    print(f"[info] last year with class    : {cutoffs.test}")
    for section in ts_cfg.sections:
        rule = rules[section]
        if rule.periods:
            print(f"[info] {section:<12} periods={list(rule.periods)} exclude={list(rule.exclude)}")
        else:
            print(
                f"[info] {section:<12} range=[{rule.range_from}, {rule.range_to}] "
                f"exclude={list(rule.exclude)}"
            )

    partitioned = assign_partitions(
        dataset,
        rules,
        period_column=ts_cfg.period_column,
        class_column=ts_cfg.class_column,
        sort_columns=[c for c in ts_cfg.sort_columns if c in dataset.columns],
        seed=ts_cfg.seed,
    )
    return partitioned, cutoffs


def write_partitions(
    dataset: pd.DataFrame,
    config: PipelineConfig,
    out_dir: Path,
) -> Dict[str, Path]:
    ts_cfg = config.training_strategy
    flags = section_columns(ts_cfg.sections)
    outputs: Dict[str, Path] = {}

    def _mask(*sections: str) -> pd.Series:
        mask = pd.Series(False, index=dataset.index)
        for section in sections:
            col = f"part_{section}"
            if col in dataset.columns:
                mask |= dataset[col] > 0
        return mask

    present_mask = _mask("present")
    if present_mask.any():
        cols = [c for c in dataset.columns if c not in flags and c != ts_cfg.class_column]
        outputs["present"] = write_table(dataset.loc[present_mask, cols], out_dir / ts_cfg.present_file)
        print(f"[ok] present data: {outputs['present']} [{int(present_mask.sum())} rows]")
    else:
        print("[warn] present data: no rows to write")

    strategy_mask = _mask("train", "validate", "test")
    if strategy_mask.any():
        cols = [c for c in dataset.columns if c not in ("part_present", "part_train_final")]
        outputs["train_strategy"] = write_table(
            dataset.loc[strategy_mask, cols], out_dir / ts_cfg.train_strategy_file
        )
        print(f"[ok] train strategy: {outputs['train_strategy']} [{int(strategy_mask.sum())} rows]")
    else:
        print("[warn] train strategy: no rows to write")

    final_mask = _mask("train_final")
    if final_mask.any():
        cols = [c for c in dataset.columns if c not in flags]
        outputs["train_final"] = write_table(dataset.loc[final_mask, cols], out_dir / ts_cfg.train_final_file)
        print(f"[ok] train final: {outputs['train_final']} [{int(final_mask.sum())} rows]")
    else:
        print("[warn] train final: no rows to write")

    return outputs


def run_training_strategy(config: PipelineConfig, *, input_path: Path | None = None) -> TrainingStrategyResult:
    ts_cfg = config.training_strategy
    source = input_path or config.paths.fe_output
    print(f"[info] loading dataset: {source}")
    dataset = load_table(source)
    print(f"[info] dataset: {dataset.shape[0]} rows x {dataset.shape[1]} columns")

    partitioned, cutoffs = build_partitions(dataset, config)

    control = partition_control_table(partitioned, ts_cfg.sections)
    print("=== partition summary ===")
    print(control.to_string(index=False))

    counts = {section: _section_count(partitioned, section) for section in ts_cfg.sections}
    for section, n in counts.items():
        print(f"[info] {section:<12}: {n} rows")
    for section in ("train", "validate", "test"):
        if section in counts and counts[section] == 0:
            print(f"[warn] partition '{section}' is empty")

    out_dir = config.paths.ts_dir
    out_dir.mkdir(parents=True, exist_ok=True)
    control_path = write_table(control, out_dir / ts_cfg.control_file, sep="\t")
    print(f"[ok] control table: {control_path} (review before tuning)")

    outputs = write_partitions(partitioned, config, out_dir)
    outputs["control"] = control_path
    return TrainingStrategyResult(cutoffs=cutoffs, control=control, counts=counts, outputs=outputs)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Tag train/validate/test/present partitions by year.")
    ap.add_argument("--config-path", type=str, default=DEFAULT_CONFIG_PATH)
    ap.add_argument("--base-dir", type=str, default=None, help="Override environment.base_dir")
    ap.add_argument("--input-file", type=str, default=None, help="Explicit feature-engineered dataset")
    return ap.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        config = load_pipeline_config(args.config_path, base_dir=args.base_dir)
        run_training_strategy(config, input_path=Path(args.input_file) if args.input_file else None)
    except (FileNotFoundError, KeyError, ValueError) as exc:
        print(f"[error] {exc}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

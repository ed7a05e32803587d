#!/usr/bin/env python
"""Feature engineering for the health out-of-pocket expenditure panel.

The raw dataset is a (country x year) panel with a few hundred World Bank
style indicators. This module derives

* the target ``clase``: the source indicator ``orden_lead`` years ahead,
* ``<col>_lag<k>`` / ``<col>_delta<k>``: past values and differences,
* ``<col>_rmean<w>``: trailing rolling means within each country,
* configured ratios between two indicators,

and writes the augmented table to ``01_FE/<label>_<code>_f<lead>.csv.gz``.
Lags, deltas and the target are keyed on the year value, never on row
position, so a missing year in the panel produces NaN instead of borrowing a
neighbour's value. Rolling means run over the rows present for the entity,
so a gap year widens their window.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any, Dict, List, Sequence

import numpy as np
import pandas as pd
from sklearn.base import BaseEstimator, TransformerMixin

from health_economics.common.config import (
	DEFAULT_CONFIG_PATH,
	FeatureEngineeringConfig,
	PipelineConfig,
	load_pipeline_config,
)
from health_economics.common.io_utils import load_table, write_table


def _shift_by_period(
	df: pd.DataFrame,
	entity_column: str,
	period_column: str,
	columns: Sequence[str],
	offset: int,
) -> pd.DataFrame:
	"""Return, for each row, the values of ``columns`` at ``period + offset`` of the same entity."""

	source = df[[entity_column, period_column, *columns]].copy()
	source[period_column] = source[period_column] - offset
	keys = df[[entity_column, period_column]]
	merged = keys.merge(source, on=[entity_column, period_column], how="left")
	return merged[list(columns)].set_axis(df.index, axis=0)


def _safe_ratio(numerator: pd.Series, denominator: pd.Series) -> pd.Series:
	denom = denominator.replace(0, np.nan)
	return (numerator / denom).astype(float)


class HealthFeatureGenerator(BaseEstimator, TransformerMixin):
	"""Derive target and history features from the raw panel."""

	def __init__(self, config: FeatureEngineeringConfig):
		self.config = config
		self.feature_columns_: List[str] | None = None
		self.dropped_columns_: List[str] | None = None

	def fit(self, X: pd.DataFrame, y: Any = None) -> "HealthFeatureGenerator":
		df = self._ensure_dataframe(X)
		self._check_keys(df)
		candidates = self._select_feature_columns(df)

		dropped: List[str] = []
		if self.config.max_missing_ratio is not None and candidates:
			missing = df[candidates].isna().mean()
			dropped = [
				c
				for c in candidates
				if missing[c] > self.config.max_missing_ratio and c != self.config.source_column
			]
			candidates = [c for c in candidates if c not in dropped]

		self.feature_columns_ = candidates
		self.dropped_columns_ = dropped
		return self

	def transform(self, X: pd.DataFrame) -> pd.DataFrame:
		if self.feature_columns_ is None or self.dropped_columns_ is None:
			raise RuntimeError("HealthFeatureGenerator must be fitted before transform().")

		cfg = self.config
		df = self._ensure_dataframe(X)
		self._check_keys(df)
		df = df.drop(columns=self.dropped_columns_, errors="ignore")
		df = df.sort_values([cfg.entity_column, cfg.period_column], kind="mergesort").reset_index(drop=True)

		new_columns: Dict[str, pd.Series] = {}
		columns = self.feature_columns_

		for lag in sorted(set(cfg.lags) | set(cfg.deltas)):
			lagged = _shift_by_period(df, cfg.entity_column, cfg.period_column, columns, -lag)
			if lag in cfg.lags:
				for col in columns:
					new_columns[f"{col}_lag{lag}"] = lagged[col]
			if lag in cfg.deltas:
				for col in columns:
					new_columns[f"{col}_delta{lag}"] = df[col] - lagged[col]

		if cfg.rolling_windows and columns:
			grouped = df.groupby(cfg.entity_column, sort=False)[columns]
			for window in cfg.rolling_windows:
				rolled = grouped.transform(lambda s, w=window: s.rolling(w, min_periods=1).mean())
				for col in columns:
					new_columns[f"{col}_rmean{window}"] = rolled[col]

		for ratio in cfg.ratios:
			absent = [c for c in (ratio.numerator, ratio.denominator) if c not in df.columns]
			if absent:
				# columns may have been removed by max_missing_ratio
				print(f"[warn] ratio '{ratio.name}' skipped: missing columns {absent}")
				continue
			new_columns[ratio.name] = _safe_ratio(df[ratio.numerator], df[ratio.denominator])

		target = _shift_by_period(
			df, cfg.entity_column, cfg.period_column, [cfg.source_column], cfg.lead_order
		)[cfg.source_column]
		new_columns[cfg.class_column] = target

		base = df.drop(columns=[cfg.class_column], errors="ignore")
		derived = pd.DataFrame(new_columns, index=base.index)
		return pd.concat([base, derived], axis=1)

	def _ensure_dataframe(self, X: pd.DataFrame) -> pd.DataFrame:
		if not isinstance(X, pd.DataFrame):
			raise TypeError("HealthFeatureGenerator expects a pandas.DataFrame input.")
		return X

	def _check_keys(self, df: pd.DataFrame) -> None:
		cfg = self.config
		for col in (cfg.entity_column, cfg.period_column, cfg.source_column):
			if col not in df.columns:
				raise KeyError(f"Column '{col}' not found in dataset")
		if df.duplicated([cfg.entity_column, cfg.period_column]).any():
			raise ValueError(
				f"Duplicate ({cfg.entity_column}, {cfg.period_column}) rows in dataset"
			)

	def _select_feature_columns(self, df: pd.DataFrame) -> List[str]:
		cfg = self.config
		keys = {cfg.entity_column, cfg.period_column, cfg.class_column}
		if cfg.columns:
			missing = [c for c in cfg.columns if c not in df.columns]
			if missing:
				raise KeyError(f"Configured feature columns not found: {missing}")
			return [c for c in cfg.columns if c not in keys]
		numeric = df.select_dtypes(include=[np.number]).columns
		return [c for c in numeric if c not in keys]


def run_feature_engineering(config: PipelineConfig, *, input_path: Path | None = None) -> Path:
	"""Read the raw dataset, derive features and write the ``01_FE`` output."""

	fe_cfg = config.feature_engineering
	source = input_path or config.environment.dataset_path
	print(f"[info] loading raw dataset: {source}")
	raw = load_table(source)
	print(f"[info] dataset: {raw.shape[0]} rows x {raw.shape[1]} columns")

	generator = HealthFeatureGenerator(fe_cfg)
	generator.fit(raw)
	if generator.dropped_columns_:
		print(
			f"[info] dropped {len(generator.dropped_columns_)} columns above "
			f"max_missing_ratio={fe_cfg.max_missing_ratio}"
		)
	features = generator.transform(raw)

	labelled = int(features[fe_cfg.class_column].notna().sum())
	print(
		f"[info] '{fe_cfg.class_column}' = {fe_cfg.source_column} at year + {fe_cfg.lead_order} "
		f"({labelled} labelled rows)"
	)

	out_path = write_table(features, config.paths.fe_output)
	print(f"[ok] wrote {out_path} [{features.shape[0]} rows x {features.shape[1]} columns]")
	return out_path


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
	ap = argparse.ArgumentParser(description="Feature engineering for the health expenditure panel.")
	ap.add_argument("--config-path", type=str, default=DEFAULT_CONFIG_PATH)
	ap.add_argument("--base-dir", type=str, default=None, help="Override environment.base_dir")
	ap.add_argument("--input-file", type=str, default=None, help="Explicit raw dataset path")
	return ap.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
	args = parse_args(argv)
	try:
		config = load_pipeline_config(args.config_path, base_dir=args.base_dir)
		run_feature_engineering(
			config, input_path=Path(args.input_file) if args.input_file else None
		)
	except (FileNotFoundError, KeyError, ValueError) as exc:
		print(f"[error] {exc}")
		return 1
	return 0


if __name__ == "__main__":
	sys.exit(main())

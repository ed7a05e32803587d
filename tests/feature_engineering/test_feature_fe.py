"""Unit tests for the 01_FE feature generator."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from health_economics.common.config import FeatureEngineeringConfig
from health_economics.feature_engineering.feature_fe import HealthFeatureGenerator, main


def _build_config(**param) -> FeatureEngineeringConfig:
	mapping = {
		"const": {
			"presente": 2021,
			"orden_lead": 1,
			"origen_clase": "hf3",
			"clase": "clase",
			"entity": "code",
			"periodo": "year",
		},
		"param": param,
	}
	return FeatureEngineeringConfig.from_mapping(mapping)


def _panel() -> pd.DataFrame:
	# AAA has no 2003 row
	return pd.DataFrame(
		{
			"code": ["AAA", "AAA", "AAA", "AAA", "BBB", "BBB", "BBB"],
			"year": [2000, 2001, 2002, 2004, 2000, 2001, 2002],
			"hf3": [1.0, 2.0, 3.0, 5.0, 10.0, 20.0, 30.0],
			"gdp": [100.0, 110.0, 120.0, 140.0, 200.0, 0.0, 220.0],
		}
	)


def _row(df: pd.DataFrame, code: str, year: int) -> pd.Series:
	hit = df[(df["code"] == code) & (df["year"] == year)]
	assert len(hit) == 1
	return hit.iloc[0]


def test_target_is_source_at_year_plus_lead() -> None:
	gen = HealthFeatureGenerator(_build_config())
	out = gen.fit_transform(_panel())

	assert _row(out, "AAA", 2000)["clase"] == 2.0
	assert _row(out, "AAA", 2001)["clase"] == 3.0
	assert _row(out, "BBB", 2001)["clase"] == 30.0
	# 2003 is missing for AAA: no borrowing from 2004
	assert np.isnan(_row(out, "AAA", 2002)["clase"])
	assert np.isnan(_row(out, "AAA", 2004)["clase"])
	assert np.isnan(_row(out, "BBB", 2002)["clase"])


def test_lag_and_delta_are_keyed_on_year() -> None:
	gen = HealthFeatureGenerator(_build_config(lags=[1], deltas=[1]))
	out = gen.fit_transform(_panel())

	assert _row(out, "AAA", 2001)["gdp_lag1"] == 100.0
	assert _row(out, "AAA", 2001)["gdp_delta1"] == pytest.approx(10.0)
	assert np.isnan(_row(out, "AAA", 2000)["gdp_lag1"])
	assert np.isnan(_row(out, "AAA", 2004)["gdp_lag1"])
	assert np.isnan(_row(out, "BBB", 2000)["hf3_lag1"])


def test_rolling_mean_within_entity() -> None:
	gen = HealthFeatureGenerator(_build_config(rolling_windows=[2]))
	out = gen.fit_transform(_panel())

	assert _row(out, "AAA", 2000)["hf3_rmean2"] == pytest.approx(1.0)
	assert _row(out, "AAA", 2001)["hf3_rmean2"] == pytest.approx(1.5)
	assert _row(out, "BBB", 2000)["hf3_rmean2"] == pytest.approx(10.0)


def test_rolling_mean_spans_gap_year() -> None:
	gen = HealthFeatureGenerator(_build_config(rolling_windows=[2]))
	out = gen.fit_transform(_panel())

	# AAA 2003 is absent: the 2004 window holds the 2002 and 2004 rows
	assert _row(out, "AAA", 2004)["hf3_rmean2"] == pytest.approx(4.0)


def test_ratio_zero_denominator_is_nan() -> None:
	gen = HealthFeatureGenerator(
		_build_config(ratios=[{"name": "hf3_per_gdp", "numerator": "hf3", "denominator": "gdp"}])
	)
	out = gen.fit_transform(_panel())

	assert _row(out, "BBB", 2000)["hf3_per_gdp"] == pytest.approx(0.05)
	assert np.isnan(_row(out, "BBB", 2001)["hf3_per_gdp"])


def test_max_missing_ratio_drops_columns() -> None:
	panel = _panel()
	panel["sparse"] = [np.nan] * 6 + [1.0]
	gen = HealthFeatureGenerator(_build_config(lags=[1], max_missing_ratio=0.5))
	out = gen.fit_transform(panel)

	assert gen.dropped_columns_ == ["sparse"]
	assert "sparse" not in out.columns
	assert "sparse_lag1" not in out.columns
	assert "gdp_lag1" in out.columns


def test_duplicate_keys_raise() -> None:
	panel = pd.concat([_panel(), _panel().iloc[[0]]], ignore_index=True)
	gen = HealthFeatureGenerator(_build_config())
	with pytest.raises(ValueError):
		gen.fit(panel)


def test_transform_before_fit_raises() -> None:
	gen = HealthFeatureGenerator(_build_config())
	with pytest.raises(RuntimeError):
		gen.transform(_panel())


def test_main_writes_fe_output(tmp_path: Path) -> None:
	import importlib.util

	harness_path = Path(__file__).resolve().parents[1] / "common" / "pipeline_harness.py"
	spec = importlib.util.spec_from_file_location("pipeline_harness", str(harness_path))
	assert spec and spec.loader
	harness = importlib.util.module_from_spec(spec)
	spec.loader.exec_module(harness)  # type: ignore[attr-defined]

	harness.write_dummy_dataset(tmp_path)
	config_path = harness.write_config(tmp_path)

	rc = main(["--config-path", str(config_path), "--base-dir", str(tmp_path)])
	assert rc == 0

	out_path = tmp_path / "exp" / "hf3_test" / "hf3_test_f1" / "01_FE" / "hf3_test_f1.csv.gz"
	assert out_path.exists()
	out = pd.read_csv(out_path)
	assert "clase" in out.columns
	assert "hf3_ppp_pc_lag1" in out.columns
	assert out.loc[out["year"] == 2021, "clase"].isna().all()
	assert out.loc[out["year"] < 2021, "clase"].notna().all()


def test_main_missing_dataset_returns_error(tmp_path: Path) -> None:
	config_path = tmp_path / "cfg.yaml"
	config_path.write_text(
		"environment: {dataset: nothing.csv}\n"
		"experiment: {experiment_label: a, experiment_code: b}\n"
		"feature_engineering: {const: {presente: 2021, orden_lead: 1}}\n",
		encoding="utf-8",
	)
	assert main(["--config-path", str(config_path)]) == 1

"""Unit tests for the LightGBM objective evaluated by the optimizer."""

import math
from pathlib import Path

import lightgbm as lgb
import numpy as np
import pandas as pd
import pytest

from health_economics.hyperparameter_tuning.objective import (
    LightGBMObjective,
    early_stopping_rounds,
    feature_importance_table,
    resolve_num_threads,
    with_thread_limit,
)
from health_economics.hyperparameter_tuning.search_space import split_hyperparameters
from health_economics.hyperparameter_tuning.trial_log import TrialLog

FIXED = {
    "objective": "regression",
    "metric": "rmse",
    "verbosity": -1,
    "feature_pre_filter": False,
    "min_data_in_leaf": 5,
    "num_threads": 1,
    "seed": 1,
}


def _datasets(n: int = 200):
    np.random.seed(42)
    X = pd.DataFrame({"a": np.random.randn(n), "b": np.random.randn(n), "noise": np.random.randn(n)})
    y = 3.0 * X["a"] - 2.0 * X["b"] + 0.1 * np.random.randn(n)
    cut = int(n * 0.7)
    dtrain = lgb.Dataset(X.iloc[:cut], label=y.iloc[:cut], free_raw_data=False)
    dvalid = lgb.Dataset(X.iloc[cut:], label=y.iloc[cut:], reference=dtrain, free_raw_data=False)
    return dtrain, dvalid, X.iloc[cut:], y.iloc[cut:].to_numpy()


def _objective(tmp_path: Path, **kwargs) -> LightGBMObjective:
    fixed, space = split_hyperparameters({**FIXED, "learning_rate": [0.05, 0.3], "num_leaves": [4, 16, 1]})
    dtrain, dvalid, X_test, y_test = _datasets()
    return LightGBMObjective(
        space,
        fixed,
        dtrain,
        dvalid,
        TrialLog(tmp_path / "BO_log.txt", verbose=False),
        X_test=X_test,
        y_test=y_test,
        out_dir=tmp_path,
        max_boost_rounds=40,
        **kwargs,
    )


class TestHelpers:
    def test_resolve_num_threads(self):
        assert resolve_num_threads(65, cpu_count=8) == 5
        assert resolve_num_threads(100, cpu_count=8) == 8
        assert resolve_num_threads(10, cpu_count=2) == 1

    def test_with_thread_limit_keeps_explicit_value(self):
        assert with_thread_limit({"nthread": 3}, 50) == {"nthread": 3}
        limited = with_thread_limit({"metric": "rmse"}, 50)
        assert limited["num_threads"] >= 1

    def test_early_stopping_rounds(self):
        assert early_stopping_rounds(0.01) == 600
        assert early_stopping_rounds(0.2) == 220


class TestLightGBMObjective:
    def test_single_trial_is_logged(self, tmp_path: Path):
        objective = _objective(tmp_path)
        error = objective([0.1, 8])

        assert math.isfinite(error) and error > 0
        assert objective.iteration == 1
        assert objective.best_error == pytest.approx(error)

        table = objective.trial_log.load()
        assert len(table) == 1
        row = table.iloc[0]
        assert row["bo_iteration"] == 1
        assert row["num_leaves"] == 8
        assert row["cols"] == 3
        assert row["rows"] == 140
        assert 1 <= row["num_iterations"] <= 40
        assert row["error"] == pytest.approx(error)
        assert math.isfinite(row["error_test"])
        assert (tmp_path / "impo_1.txt").exists()

    def test_iteration_continues_from_resume_state(self, tmp_path: Path):
        objective = _objective(tmp_path, iteration=7, best_error=0.0)
        objective([0.2, 4])

        assert objective.trial_log.load()["bo_iteration"].tolist() == [8]
        # no improvement over the resumed best: no importance file
        assert not list(tmp_path.glob("impo_*.txt"))

    def test_maximize_negates(self, tmp_path: Path):
        objective = _objective(tmp_path, minimize=False)
        value = objective([0.1, 8])
        logged = objective.trial_log.load()["error"].iloc[0]
        assert value == pytest.approx(-logged)


def test_feature_importance_table_is_normalised():
    dtrain, _, _, _ = _datasets()
    booster = lgb.train({**FIXED, "learning_rate": 0.1}, dtrain, num_boost_round=20)
    table = feature_importance_table(booster)

    assert table.columns.tolist() == ["Feature", "Gain", "Frequency"]
    assert table["Gain"].sum() == pytest.approx(1.0)
    assert table["Gain"].is_monotonic_decreasing
    assert table["Feature"].iloc[0] in ("a", "b")

"""Objective evaluated by the Bayesian optimizer: one LightGBM model per trial.

Each call merges the fixed hyperparameters with the proposed ones, trains on
the train partition with early stopping on the validation partition, and
returns the validation metric at the best boosting iteration. Every trial is
appended to the :class:`~health_economics.hyperparameter_tuning.trial_log.TrialLog`;
the feature importance of each new best model is written to
``<importance_prefix><iteration>.txt``.
"""

from __future__ import annotations

import gc
import math
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence

import lightgbm as lgb
import numpy as np
import pandas as pd
from sklearn.metrics import mean_squared_error

from health_economics.common.io_utils import write_table
from health_economics.hyperparameter_tuning.search_space import SearchSpace
from health_economics.hyperparameter_tuning.trial_log import TrialLog

THREAD_PARAM_ALIASES = ("num_threads", "num_thread", "nthread", "nthreads", "n_jobs")
DART_NUM_ITERATIONS = 999


def resolve_num_threads(percent: float, cpu_count: int | None = None) -> int:
    """Number of LightGBM threads for ``percent`` of the available cores (at least one)."""
    cores = cpu_count if cpu_count is not None else (os.cpu_count() or 1)
    return max(1, int(math.floor(cores * percent / 100.0)))


def with_thread_limit(params: Mapping[str, Any], percent: float) -> Dict[str, Any]:
    out = dict(params)
    if not any(alias in out for alias in THREAD_PARAM_ALIASES):
        out["num_threads"] = resolve_num_threads(percent)
    return out


def early_stopping_rounds(learning_rate: float) -> int:
    """Patience grows as the learning rate shrinks: ``200 + 4 / learning_rate``."""
    return int(200 + 4 / float(learning_rate))


def feature_importance_table(booster: lgb.Booster) -> pd.DataFrame:
    """Gain / split importance normalised to sum to one, sorted by gain."""
    names = booster.feature_name()
    gain = booster.feature_importance(importance_type="gain").astype(float)
    split = booster.feature_importance(importance_type="split").astype(float)
    table = pd.DataFrame(
        {
            "Feature": names,
            "Gain": gain / gain.sum() if gain.sum() > 0 else gain,
            "Frequency": split / split.sum() if split.sum() > 0 else split,
        }
    )
    table = table[(table["Gain"] > 0) | (table["Frequency"] > 0)]
    return table.sort_values("Gain", ascending=False).reset_index(drop=True)


def _metric_history(evals: Mapping[str, Mapping[str, List[float]]], metric: str) -> List[float]:
    valid = evals.get("valid", {})
    if metric in valid:
        return list(valid[metric])
    if not valid:
        raise RuntimeError("LightGBM did not record any validation metric")
    return list(next(iter(valid.values())))


class LightGBMObjective:
    """Callable ``f(point) -> error`` for :func:`skopt.gp_minimize`."""

    def __init__(
        self,
        space: SearchSpace,
        fixed_params: Mapping[str, Any],
        dtrain: lgb.Dataset,
        dvalid: lgb.Dataset,
        trial_log: TrialLog,
        *,
        X_test: pd.DataFrame | None = None,
        y_test: np.ndarray | None = None,
        out_dir: str | Path = ".",
        importance_prefix: str = "impo_",
        max_boost_rounds: int = 99999,
        minimize: bool = True,
        iteration: int = 0,
        best_error: float | None = None,
    ):
        self.space = space
        self.fixed_params = dict(fixed_params)
        self.dtrain = dtrain
        self.dvalid = dvalid
        self.trial_log = trial_log
        self.X_test = X_test
        self.y_test = y_test
        self.out_dir = Path(out_dir)
        self.importance_prefix = importance_prefix
        self.max_boost_rounds = int(max_boost_rounds)
        self.minimize = minimize
        self.iteration = int(iteration)
        if best_error is None:
            best_error = math.inf if minimize else -math.inf
        self.best_error = float(best_error)
        self.metric = str(self.fixed_params.get("metric", "rmse"))

    def _is_better(self, error: float) -> bool:
        return error < self.best_error if self.minimize else error > self.best_error

    def build_params(self, values: Sequence[Any]) -> Dict[str, Any]:
        params = dict(self.fixed_params)
        params.update(self.space.to_params(values))
        params.setdefault("verbosity", -1)
        return params

    def __call__(self, values: Sequence[Any]) -> float:
        gc.collect()
        self.iteration += 1

        params = self.build_params(values)
        is_dart = params.get("boosting", params.get("boosting_type")) == "dart"
        num_rounds = DART_NUM_ITERATIONS if is_dart else self.max_boost_rounds
        params.pop("num_iterations", None)
        params.pop("early_stopping_rounds", None)

        evals: Dict[str, Dict[str, List[float]]] = {}
        callbacks: List[Any] = [lgb.record_evaluation(evals)]
        if not is_dart:
            patience = early_stopping_rounds(params.get("learning_rate", 0.1))
            callbacks.append(lgb.early_stopping(patience, first_metric_only=True, verbose=False))

        booster = lgb.train(
            params,
            self.dtrain,
            num_boost_round=num_rounds,
            valid_sets=[self.dvalid],
            valid_names=["valid"],
            callbacks=callbacks,
        )

        best_iter = booster.best_iteration if booster.best_iteration > 0 else booster.current_iteration()
        history = _metric_history(evals, self.metric)
        error = float(history[best_iter - 1])

        error_test = float("nan")
        if self.X_test is not None and self.y_test is not None and len(self.X_test) > 0:
            pred = booster.predict(self.X_test, num_iteration=best_iter)
            error_test = float(math.sqrt(mean_squared_error(self.y_test, pred)))

        if self._is_better(error):
            self.best_error = error
            impo_path = self.out_dir / f"{self.importance_prefix}{self.iteration}.txt"
            write_table(feature_importance_table(booster), impo_path, sep="\t")

        record: Dict[str, Any] = {
            "cols": self.dtrain.num_feature(),
            "rows": self.dtrain.num_data(),
        }
        record.update(params)
        record["num_iterations"] = int(best_iter)
        record["error"] = error
        record["error_test"] = error_test
        record["bo_iteration"] = self.iteration
        self.trial_log.append(record)

        del booster
        gc.collect()
        return error if self.minimize else -error


__all__ = [
    "LightGBMObjective",
    "early_stopping_rounds",
    "feature_importance_table",
    "resolve_num_threads",
    "with_thread_limit",
]

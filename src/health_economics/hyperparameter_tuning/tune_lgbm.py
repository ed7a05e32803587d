#!/usr/bin/env python
"""Hyperparameter tuning stage (03_HT): Bayesian optimization over LightGBM.

Steps
-----
1. Load the ``train_strategy`` partition file written by 02_TS.
2. Build LightGBM datasets: train on ``part_train``, early-stop on
   ``part_validate`` and evaluate on ``part_test`` (``validate: true``), or
   split the test year in two stratified halves (``validate: false``).
3. Split the hyperparameters into fixed values and ranges.
4. Run ``skopt.gp_minimize`` (Matérn 3/2 Gaussian process, expected
   improvement). Every trial is appended to the trial log; the optimizer state
   is dumped to the binary checkpoint so an interrupted run resumes.
5. Retrain on ``train_final`` with the best logged trial and predict the
   present-year rows.
"""

from __future__ import annotations

import argparse
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Sequence

import joblib
import lightgbm as lgb
import numpy as np
import pandas as pd
import skopt
from skopt.learning import GaussianProcessRegressor
from skopt.learning.gaussian_process.kernels import ConstantKernel, Matern
from skopt.utils import create_result

from health_economics.common.config import (
    DEFAULT_CONFIG_PATH,
    BOConfig,
    HyperparameterTuningConfig,
    PipelineConfig,
    load_pipeline_config,
)
from health_economics.common.io_utils import load_table, write_table
from health_economics.hyperparameter_tuning.feature_matrix import (
    CategoryLevels,
    select_feature_columns,
)
from health_economics.hyperparameter_tuning.folds import assign_folds
from health_economics.hyperparameter_tuning.objective import (
    LightGBMObjective,
    feature_importance_table,
    with_thread_limit,
)
from health_economics.hyperparameter_tuning.search_space import SearchSpace, split_hyperparameters
from health_economics.hyperparameter_tuning.trial_log import TrialLog

PREDICTION_COLUMN = "prediccion_clase"
STRATEGY_FLAGS = ("part_train", "part_validate", "part_test")


@dataclass
class TuningData:
    features: List[str]
    levels: CategoryLevels
    X_train: pd.DataFrame
    y_train: np.ndarray
    X_valid: pd.DataFrame
    y_valid: np.ndarray
    X_test: pd.DataFrame
    y_test: np.ndarray


@dataclass
class TuningResult:
    best_record: Dict[str, Any]
    best_params: Dict[str, Any]
    outputs: Dict[str, Path] = field(default_factory=dict)
    predictions: pd.DataFrame | None = None


class TimedCheckpointSaver:
    """skopt callback dumping the optimizer result at most every ``every`` seconds."""

    def __init__(self, path: str | Path, every: float = 600.0):
        self.path = Path(path)
        self.every = float(every)
        self._last = time.monotonic()

    def __call__(self, res: Any) -> bool:
        if time.monotonic() - self._last >= self.every:
            self.flush(res)
        return False

    def flush(self, res: Any) -> None:
        # The result's ``specs`` carry the objective (LightGBM datasets); keep the state only.
        snapshot = create_result(
            res.x_iters, res.func_vals, res.space, rng=None, specs=None, models=res.models
        )
        self.path.parent.mkdir(parents=True, exist_ok=True)
        skopt.dump(snapshot, str(self.path))
        self._last = time.monotonic()


def make_surrogate(n_dims: int, *, noisy: bool, seed: int | None) -> GaussianProcessRegressor:
    """Gaussian process with a Matérn 3/2 kernel."""
    kernel = ConstantKernel(1.0, (0.01, 1000.0)) * Matern(
        length_scale=np.ones(n_dims),
        length_scale_bounds=[(0.01, 100.0)] * n_dims,
        nu=1.5,
    )
    return GaussianProcessRegressor(
        kernel=kernel,
        normalize_y=True,
        noise="gaussian" if noisy else None,
        n_restarts_optimizer=2,
        random_state=seed,
    )


def run_bayesian_optimization(
    objective: Callable[[Sequence[Any]], float],
    space: SearchSpace,
    bo: BOConfig,
    checkpoint_path: Path,
    *,
    seed: int | None = None,
) -> Any:
    """Run (or resume) ``gp_minimize`` until ``bo.iterations`` points are evaluated."""
    x0 = None
    y0 = None
    done = 0
    if checkpoint_path.exists():
        previous = skopt.load(str(checkpoint_path))
        x0 = [list(x) for x in previous.x_iters]
        y0 = [float(y) for y in previous.func_vals]
        done = len(y0)
        print(f"[info] resuming optimizer from {checkpoint_path} ({done} evaluated points)")

    remaining = bo.iterations - done
    if remaining <= 0:
        print(f"[info] optimizer already ran {done} of {bo.iterations} iterations")
        return previous

    n_initial = max(0, min(bo.initial_points - done, remaining))
    if n_initial == 0 and not x0:
        n_initial = 1

    saver = TimedCheckpointSaver(checkpoint_path, every=bo.save_on_disk_at_time)
    result = skopt.gp_minimize(
        objective,
        space.dimensions,
        base_estimator=make_surrogate(len(space), noisy=bo.noisy, seed=seed),
        n_calls=remaining,
        n_initial_points=n_initial,
        initial_point_generator="random",
        acq_func="EI",
        x0=x0,
        y0=y0,
        random_state=seed,
        callback=[saver],
    )
    saver.flush(result)
    return result


def _labels(df: pd.DataFrame, class_column: str) -> np.ndarray:
    return df[class_column].to_numpy(dtype=float)


def prepare_tuning_data(dataset: pd.DataFrame, ht_cfg: HyperparameterTuningConfig) -> TuningData:
    """Select the train / validation / test frames from the 02_TS partition file."""
    if ht_cfg.crossvalidation:
        raise ValueError("crossvalidation: true is not supported; use validate: true or false")
    missing = [c for c in (ht_cfg.class_column, *STRATEGY_FLAGS) if c not in dataset.columns]
    if missing:
        raise KeyError(f"Columns not found in training strategy file: {missing}")

    features = select_feature_columns(dataset, exclude=[ht_cfg.class_column])
    levels = CategoryLevels.fit([dataset], features)

    # rows whose entity has no value at year + lead carry no target
    unlabelled = dataset[ht_cfg.class_column].isna()
    if unlabelled.any():
        print(f"[info] dropping {int(unlabelled.sum())} rows without '{ht_cfg.class_column}'")
        dataset = dataset[~unlabelled]

    train = dataset[dataset["part_train"] == 1]
    if ht_cfg.validate:
        valid = dataset[dataset["part_validate"] == 1]
        test = dataset[dataset["part_test"] == 1]
    else:
        print("[info] splitting the test partition into validation and test halves")
        group_cols = ["part_test"]
        if ht_cfg.period_column in dataset.columns:
            group_cols.append(ht_cfg.period_column)
        folded = assign_folds(
            dataset, [1, 1], group_cols, column="fold_test", seed=ht_cfg.seed
        )
        valid = folded[(folded["part_test"] == 1) & (folded["fold_test"] == 1)]
        test = folded[(folded["part_test"] == 1) & (folded["fold_test"] == 2)]

    print(f"[info] predictors: {len(features)}")
    print(f"[info] train   : {len(train)} rows")
    print(f"[info] validate: {len(valid)} rows")
    print(f"[info] test    : {len(test)} rows")
    if train.empty:
        raise ValueError("train partition is empty")
    if valid.empty:
        raise ValueError("validation partition is empty")
    if test.empty:
        print("[warn] test partition is empty; error_test will be NaN")

    return TuningData(
        features=features,
        levels=levels,
        X_train=levels.transform(train, features),
        y_train=_labels(train, ht_cfg.class_column),
        X_valid=levels.transform(valid, features),
        y_valid=_labels(valid, ht_cfg.class_column),
        X_test=levels.transform(test, features),
        y_test=_labels(test, ht_cfg.class_column),
    )


def train_final_model(
    train_final: pd.DataFrame,
    present: pd.DataFrame | None,
    best_params: Dict[str, Any],
    num_iterations: int,
    class_column: str,
) -> Dict[str, Any]:
    """Train on every labelled historical row; no early stopping."""
    features = select_feature_columns(train_final, exclude=[class_column])
    frames = [train_final] if present is None else [train_final, present]
    levels = CategoryLevels.fit(frames, features)
    labelled = train_final[train_final[class_column].notna()]
    dtrain = lgb.Dataset(
        levels.transform(labelled, features),
        label=_labels(labelled, class_column),
        free_raw_data=False,
    )
    params = dict(best_params)
    params.pop("num_iterations", None)
    params.pop("early_stopping_rounds", None)
    params.setdefault("verbosity", -1)
    booster = lgb.train(
        params,
        dtrain,
        num_boost_round=max(1, int(num_iterations)),
        callbacks=[lgb.log_evaluation(period=100)],
    )
    return {
        "booster": booster,
        "features": features,
        "category_levels": levels.levels,
        "params": params,
        "num_iterations": int(num_iterations),
    }


def predict_present(bundle: Dict[str, Any], present: pd.DataFrame) -> pd.DataFrame:
    features: List[str] = bundle["features"]
    absent = [c for c in features if c not in present.columns]
    if absent:
        print(f"[warn] {len(absent)} model features missing in present data; filled with NaN")
    levels = CategoryLevels(levels=dict(bundle["category_levels"]))
    X = levels.transform(present, features)
    out = present.copy()
    out[PREDICTION_COLUMN] = bundle["booster"].predict(X)
    return out


def _print_prediction_stats(pred: pd.Series) -> None:
    print("[info] prediction statistics:")
    print(f"  - mean  : {pred.mean():.6f}")
    print(f"  - median: {pred.median():.6f}")
    print(f"  - min   : {pred.min():.6f}")
    print(f"  - max   : {pred.max():.6f}")
    print(f"  - std   : {pred.std():.6f}")


def run_hyperparameter_tuning(config: PipelineConfig) -> TuningResult:
    ht_cfg = config.hyperparameter_tuning
    ts_cfg = config.training_strategy
    paths = config.paths
    out_dir = paths.ht_dir
    out_dir.mkdir(parents=True, exist_ok=True)
    np.random.seed(ht_cfg.seed)

    print("=== hyperparameter tuning ===")
    input_path = paths.ts_dir / ht_cfg.input_file
    print(f"[info] loading dataset: {input_path}")
    dataset = load_table(input_path)
    print(f"[info] dataset: {dataset.shape[0]} rows x {dataset.shape[1]} columns")
    data = prepare_tuning_data(dataset, ht_cfg)
    del dataset

    fixed, space = split_hyperparameters(ht_cfg.hyperparameters)
    if len(space) == 0:
        raise ValueError(f"hyperparameter_tuning.param.{ht_cfg.algorithm} defines no ranges to optimize")
    fixed = with_thread_limit(fixed, ht_cfg.threads_percent)
    print(f"[info] fixed hyperparameters: {len(fixed)}")
    print(f"[info] hyperparameters to optimize: {len(space)}")
    for row in space.describe().itertuples(index=False):
        print(f"  - {row.name} ({row.type}): [{row.lower}, {row.upper}]")

    trial_log = TrialLog(out_dir / ht_cfg.log_file)
    iteration, best_error = trial_log.resume_state(minimize=ht_cfg.bo.minimize)
    if trial_log.exists():
        print(f"[info] previous trial log found: iteration={iteration}, best error={best_error}")
    else:
        print("[info] starting optimization from scratch")

    dtrain = lgb.Dataset(data.X_train, label=data.y_train, free_raw_data=False)
    dvalid = lgb.Dataset(data.X_valid, label=data.y_valid, reference=dtrain, free_raw_data=False)

    objective = LightGBMObjective(
        space,
        fixed,
        dtrain,
        dvalid,
        trial_log,
        X_test=data.X_test,
        y_test=data.y_test,
        out_dir=out_dir,
        importance_prefix=ht_cfg.importance_prefix,
        max_boost_rounds=ht_cfg.bo.max_boost_rounds,
        minimize=ht_cfg.bo.minimize,
        iteration=iteration,
        best_error=best_error,
    )

    checkpoint_path = out_dir / ht_cfg.checkpoint_file
    print(f"[info] iterations: {ht_cfg.bo.iterations} (log: {trial_log.path})")
    run_bayesian_optimization(objective, space, ht_cfg.bo, checkpoint_path, seed=ht_cfg.seed)
    print("=== bayesian optimization finished ===")

    best = trial_log.best_record(minimize=ht_cfg.bo.minimize)
    best_params = dict(fixed)
    best_params.update(space.from_record(best))
    num_iterations = int(best["num_iterations"])
    print(f"[info] best error      : {best['error']}")
    print(f"[info] best iteration  : {best.get('bo_iteration')}")
    print(f"[info] boosting rounds : {num_iterations}")
    for name in space.names:
        print(f"  - {name} = {best_params.get(name)}")

    outputs: Dict[str, Path] = {"log": trial_log.path, "checkpoint": checkpoint_path}

    train_final_path = paths.ts_dir / ts_cfg.train_final_file
    present_path = paths.ts_dir / ts_cfg.present_file
    train_final = load_table(train_final_path)
    present = load_table(present_path) if present_path.exists() else None
    print(f"[info] train_final: {train_final.shape[0]} rows x {train_final.shape[1]} columns")

    bundle = train_final_model(train_final, present, best_params, num_iterations, ht_cfg.class_column)
    model_path = out_dir / ht_cfg.model_file
    joblib.dump(bundle, model_path)
    outputs["model"] = model_path
    print(f"[ok] saved final model to {model_path}")

    importance = feature_importance_table(bundle["booster"])
    outputs["importance"] = write_table(importance, out_dir / ht_cfg.importance_file, sep="\t")
    print(f"[ok] saved variable importance to {outputs['importance']}")
    print("=== top 10 variables ===")
    print(importance.head(10).to_string(index=False))

    predictions = None
    if present is None:
        print(f"[warn] present data not found: {present_path}")
    elif present.empty:
        print("[warn] present data has no rows to predict")
    else:
        print(f"[info] predicting {len(present)} present rows")
        predictions = predict_present(bundle, present)
        outputs["predictions"] = write_table(predictions, out_dir / ht_cfg.predictions_file)
        print(f"[ok] wrote {outputs['predictions']} [{len(predictions)} rows]")
        _print_prediction_stats(predictions[PREDICTION_COLUMN])

    return TuningResult(best_record=best, best_params=best_params, outputs=outputs, predictions=predictions)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Bayesian optimization of LightGBM hyperparameters.")
    ap.add_argument("--config-path", type=str, default=DEFAULT_CONFIG_PATH)
    ap.add_argument("--base-dir", type=str, default=None, help="Override environment.base_dir")
    return ap.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        config = load_pipeline_config(args.config_path, base_dir=args.base_dir)
        run_hyperparameter_tuning(config)
    except (FileNotFoundError, KeyError, ValueError) as exc:
        print(f"[error] {exc}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

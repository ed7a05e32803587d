"""Hyperparameter tuning stage (03_HT)."""

from health_economics.hyperparameter_tuning.feature_matrix import CategoryLevels, select_feature_columns
from health_economics.hyperparameter_tuning.folds import assign_folds
from health_economics.hyperparameter_tuning.objective import (
    LightGBMObjective,
    early_stopping_rounds,
    feature_importance_table,
    resolve_num_threads,
    with_thread_limit,
)
from health_economics.hyperparameter_tuning.search_space import SearchSpace, split_hyperparameters
from health_economics.hyperparameter_tuning.trial_log import TrialLog
from health_economics.hyperparameter_tuning.tune_lgbm import (
    TimedCheckpointSaver,
    predict_present,
    prepare_tuning_data,
    run_bayesian_optimization,
    run_hyperparameter_tuning,
    train_final_model,
)

__all__ = [
    # feature_matrix
    "CategoryLevels",
    "select_feature_columns",
    # folds
    "assign_folds",
    # objective
    "LightGBMObjective",
    "early_stopping_rounds",
    "feature_importance_table",
    "resolve_num_threads",
    "with_thread_limit",
    # search_space
    "SearchSpace",
    "split_hyperparameters",
    # trial_log
    "TrialLog",
    # tune_lgbm
    "TimedCheckpointSaver",
    "predict_present",
    "prepare_tuning_data",
    "run_bayesian_optimization",
    "run_hyperparameter_tuning",
    "train_final_model",
]

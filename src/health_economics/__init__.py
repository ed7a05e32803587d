"""Health out-of-pocket expenditure forecasting pipeline.

Stages: ``feature_engineering`` -> ``training_strategy`` -> ``hyperparameter_tuning``.
"""

__version__ = "0.1.0"

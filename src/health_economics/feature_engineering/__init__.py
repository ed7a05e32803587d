"""Feature engineering stage (01_FE)."""

from health_economics.feature_engineering.feature_fe import (
	HealthFeatureGenerator,
	run_feature_engineering,
)

__all__ = ["HealthFeatureGenerator", "run_feature_engineering"]

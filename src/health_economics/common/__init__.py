"""Configuration and I/O shared by the pipeline stages."""

from health_economics.common.config import (
    BOConfig,
    ExperimentPaths,
    FeatureEngineeringConfig,
    HyperparameterTuningConfig,
    PipelineConfig,
    SectionRule,
    TrainingStrategyConfig,
    UndersamplingRule,
    load_pipeline_config,
)
from health_economics.common.io_utils import load_table, section_columns, write_table

__all__ = [
    # config
    "BOConfig",
    "ExperimentPaths",
    "FeatureEngineeringConfig",
    "HyperparameterTuningConfig",
    "PipelineConfig",
    "SectionRule",
    "TrainingStrategyConfig",
    "UndersamplingRule",
    "load_pipeline_config",
    # io_utils
    "load_table",
    "section_columns",
    "write_table",
]

"""Training strategy stage (02_TS)."""

from health_economics.training_strategy.partition import (
    PeriodCutoffs,
    apply_partition,
    assign_partitions,
    compute_period_cutoffs,
    drop_leaky_columns,
    partition_control_table,
    partition_flags,
    resolve_section_rules,
)
from health_economics.training_strategy.train_strategy import (
    TrainingStrategyResult,
    build_partitions,
    run_training_strategy,
)

__all__ = [
    "PeriodCutoffs",
    "TrainingStrategyResult",
    "apply_partition",
    "assign_partitions",
    "build_partitions",
    "compute_period_cutoffs",
    "drop_leaky_columns",
    "partition_control_table",
    "partition_flags",
    "resolve_section_rules",
    "run_training_strategy",
]

"""Pipeline configuration loaded from a single YAML document.

The YAML mirrors the coursework ``PARAMS`` layout: ``environment``,
``experiment``, ``feature_engineering``, ``training_strategy`` and
``hyperparameter_tuning``. Each stage section is parsed into a frozen
dataclass through ``from_mapping`` so that the stage code never touches raw
dictionaries.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Tuple

import yaml

DEFAULT_CONFIG_PATH = "configs/health.yaml"
DEFAULT_SECTIONS: Tuple[str, ...] = ("present", "train", "validate", "test", "train_final")


def _path_from_config(base_dir: Path, value: str | Path) -> Path:
    """Resolve a path given in the YAML relative to the YAML directory."""
    raw_path = Path(value)
    return raw_path if raw_path.is_absolute() else (base_dir / raw_path).resolve()


def _require(mapping: Mapping[str, Any], key: str, where: str) -> Any:
    try:
        return mapping[key]
    except KeyError as exc:
        raise KeyError(f"'{key}' is required in the '{where}' section") from exc


def _as_int_list(values: Any) -> Tuple[int, ...]:
    if values is None:
        return ()
    if isinstance(values, (int, float)):
        return (int(values),)
    return tuple(int(v) for v in values)


@dataclass(frozen=True)
class EnvironmentConfig:
    base_dir: Path
    data_dir: Path
    dataset: str

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any], *, base_dir: Path) -> "EnvironmentConfig":
        root = _path_from_config(base_dir, mapping.get("base_dir", "."))
        data_dir = _path_from_config(root, mapping.get("data_dir", "data"))
        dataset = str(_require(mapping, "dataset", "environment"))
        return cls(base_dir=root, data_dir=data_dir, dataset=dataset)

    @property
    def dataset_path(self) -> Path:
        return (self.data_dir / self.dataset).resolve()


@dataclass(frozen=True)
class ExperimentConfig:
    experiment_label: str
    experiment_code: str

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "ExperimentConfig":
        return cls(
            experiment_label=str(_require(mapping, "experiment_label", "experiment")),
            experiment_code=str(_require(mapping, "experiment_code", "experiment")),
        )


@dataclass(frozen=True)
class RatioSpec:
    name: str
    numerator: str
    denominator: str


@dataclass(frozen=True)
class FeatureEngineeringConfig:
    """Constants and derivation switches of the feature engineering stage."""

    present_year: int
    lead_order: int
    source_column: str
    class_column: str
    entity_column: str
    period_column: str
    columns: Tuple[str, ...]
    lags: Tuple[int, ...]
    deltas: Tuple[int, ...]
    rolling_windows: Tuple[int, ...]
    ratios: Tuple[RatioSpec, ...]
    max_missing_ratio: float | None

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "FeatureEngineeringConfig":
        const = _require(mapping, "const", "feature_engineering")
        param = mapping.get("param", {}) or {}

        lead_order = int(_require(const, "orden_lead", "feature_engineering.const"))
        if lead_order < 1:
            raise ValueError(f"orden_lead must be >= 1, got {lead_order}")

        for key in ("lags", "deltas", "rolling_windows"):
            if any(v < 1 for v in _as_int_list(param.get(key))):
                raise ValueError(f"feature_engineering.param.{key} must contain positive integers")

        ratios = tuple(
            RatioSpec(
                name=str(_require(item, "name", "feature_engineering.param.ratios")),
                numerator=str(_require(item, "numerator", "feature_engineering.param.ratios")),
                denominator=str(_require(item, "denominator", "feature_engineering.param.ratios")),
            )
            for item in (param.get("ratios") or [])
        )

        max_missing = param.get("max_missing_ratio")
        if max_missing is not None:
            max_missing = float(max_missing)
            if not 0.0 <= max_missing <= 1.0:
                raise ValueError("max_missing_ratio must lie in [0, 1]")

        return cls(
            present_year=int(_require(const, "presente", "feature_engineering.const")),
            lead_order=lead_order,
            source_column=str(const.get("origen_clase", "hf3_ppp_pc")),
            class_column=str(const.get("clase", "clase")),
            entity_column=str(const.get("entity", "Country Code")),
            period_column=str(const.get("periodo", "year")),
            columns=tuple(str(c) for c in (param.get("columns") or [])),
            lags=_as_int_list(param.get("lags")),
            deltas=_as_int_list(param.get("deltas")),
            rolling_windows=_as_int_list(param.get("rolling_windows")),
            ratios=ratios,
            max_missing_ratio=max_missing,
        )


@dataclass(frozen=True)
class UndersamplingRule:
    class_value: float
    keep_probability: float


@dataclass(frozen=True)
class SectionRule:
    """Year selection rule of one training-strategy section.

    ``periods`` wins over ``range_from``/``range_to``; ``exclude`` always wins
    over both.
    """

    periods: Tuple[int, ...] = ()
    range_from: int | None = None
    range_to: int | None = None
    exclude: Tuple[int, ...] = ()
    undersampling: Tuple[UndersamplingRule, ...] = ()

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any] | None) -> "SectionRule":
        mapping = mapping or {}
        rango = mapping.get("rango") or {}
        rules: List[UndersamplingRule] = []
        for item in mapping.get("undersampling") or []:
            value = item.get("class_value", item.get("clase"))
            prob = item.get("keep_probability", item.get("prob"))
            if value is None or prob is None:
                raise ValueError("undersampling entries need a class value and a keep probability")
            prob = float(prob)
            if not 0.0 <= prob <= 1.0:
                raise ValueError(f"keep probability must lie in [0, 1], got {prob}")
            rules.append(UndersamplingRule(class_value=float(value), keep_probability=prob))

        desde = rango.get("desde")
        hasta = rango.get("hasta")
        return cls(
            periods=_as_int_list(mapping.get("periodos")),
            range_from=None if desde is None else int(desde),
            range_to=None if hasta is None else int(hasta),
            exclude=_as_int_list(mapping.get("excluir")),
            undersampling=tuple(rules),
        )

    def with_periods(self, periods: Tuple[int, ...]) -> "SectionRule":
        return SectionRule(periods, self.range_from, self.range_to, self.exclude, self.undersampling)

    def with_range(self, range_from: int | None, range_to: int | None) -> "SectionRule":
        return SectionRule(self.periods, range_from, range_to, self.exclude, self.undersampling)


@dataclass(frozen=True)
class TrainingStrategyConfig:
    period_column: str
    class_column: str
    sort_columns: Tuple[str, ...]
    sections: Tuple[str, ...]
    leak_pattern: str | None
    seed: int
    rules: Dict[str, SectionRule]
    control_file: str
    present_file: str
    train_strategy_file: str
    train_final_file: str

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "TrainingStrategyConfig":
        const = mapping.get("const", {}) or {}
        param = mapping.get("param", {}) or {}
        output = ((mapping.get("files") or {}).get("output")) or {}

        sections = tuple(const.get("secciones", DEFAULT_SECTIONS))
        unknown = set(sections).difference(DEFAULT_SECTIONS)
        if unknown:
            raise ValueError(f"Unknown training strategy sections: {sorted(unknown)}")

        rules = {section: SectionRule.from_mapping(param.get(section)) for section in sections}
        period_column = str(const.get("periodo", "year"))
        sort_columns = tuple(const.get("campos_sort", ("Country Code", period_column)))
        leak = const.get("leak_pattern", "hf3")

        return cls(
            period_column=period_column,
            class_column=str(const.get("clase", "clase")),
            sort_columns=sort_columns,
            sections=sections,
            leak_pattern=None if leak in (None, "") else str(leak),
            seed=int(param.get("semilla", 102191)),
            rules=rules,
            control_file=str(output.get("control", "control.txt")),
            present_file=str(output.get("present_data", "present_data.csv.gz")),
            train_strategy_file=str(output.get("train_strategy", "train_strategy.csv.gz")),
            train_final_file=str(output.get("train_final", "train_final.csv.gz")),
        )


@dataclass(frozen=True)
class BOConfig:
    iterations: int = 100
    initial_points: int = 10
    minimize: bool = True
    noisy: bool = True
    save_on_disk_at_time: float = 600.0
    max_boost_rounds: int = 99999

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any] | None) -> "BOConfig":
        mapping = mapping or {}
        iterations = int(mapping.get("iterations", cls.iterations))
        if iterations < 1:
            raise ValueError("BO.iterations must be >= 1")
        return cls(
            iterations=iterations,
            initial_points=max(1, int(mapping.get("initial_points", cls.initial_points))),
            minimize=bool(mapping.get("minimize", cls.minimize)),
            noisy=bool(mapping.get("noisy", cls.noisy)),
            save_on_disk_at_time=float(mapping.get("save_on_disk_at_time", cls.save_on_disk_at_time)),
            max_boost_rounds=int(mapping.get("max_boost_rounds", cls.max_boost_rounds)),
        )


@dataclass(frozen=True)
class HyperparameterTuningConfig:
    class_column: str
    period_column: str
    seed: int
    algorithm: str
    crossvalidation: bool
    validate: bool
    threads_percent: float
    hyperparameters: Dict[str, Any]
    bo: BOConfig
    input_file: str
    log_file: str
    checkpoint_file: str
    importance_prefix: str
    importance_file: str
    model_file: str
    predictions_file: str

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "HyperparameterTuningConfig":
        const = mapping.get("const", {}) or {}
        param = _require(mapping, "param", "hyperparameter_tuning")
        files = mapping.get("files") or {}
        inputs = files.get("input") or {}
        output = files.get("output") or {}

        algorithm = str(param.get("algoritmo", "lightgbm"))
        hyperparameters = param.get(algorithm)
        if not isinstance(hyperparameters, Mapping) or not hyperparameters:
            raise KeyError(f"hyperparameter_tuning.param.{algorithm} must define the hyperparameters")

        threads_percent = float(param.get("threads_percent", 65))
        if not 0 < threads_percent <= 100:
            raise ValueError("threads_percent must lie in (0, 100]")

        return cls(
            class_column=str(const.get("campo_clase", "clase")),
            period_column=str(const.get("campo_periodo", "year")),
            seed=int(param.get("semilla", 102191)),
            algorithm=algorithm,
            crossvalidation=bool(param.get("crossvalidation", False)),
            validate=bool(param.get("validate", True)),
            threads_percent=threads_percent,
            hyperparameters=copy.deepcopy(dict(hyperparameters)),
            bo=BOConfig.from_mapping(param.get("BO")),
            input_file=str(inputs.get("dentrada", "train_strategy.csv.gz")),
            log_file=str(output.get("BOlog", "BO_log.txt")),
            checkpoint_file=str(output.get("BObin", "BO_bin.pkl")),
            importance_prefix=str(output.get("importancia", "impo_")),
            importance_file=str(output.get("tb_importancia", "tb_importancia.txt")),
            model_file=str(output.get("final_model", "modelo_final_lgb.pkl")),
            predictions_file=str(output.get("predictions", "predicciones_presente.csv")),
        )


@dataclass(frozen=True)
class ExperimentPaths:
    """Folder convention ``exp/<label>_<code>/<label>_<code>_f<lead>/<stage>``."""

    base_dir: Path
    experiment_label: str
    experiment_code: str
    lead_order: int

    @property
    def experiment_name(self) -> str:
        return f"{self.experiment_label}_{self.experiment_code}"

    @property
    def subexperiment_name(self) -> str:
        return f"{self.experiment_name}_f{self.lead_order}"

    @property
    def root(self) -> Path:
        return self.base_dir / "exp" / self.experiment_name / self.subexperiment_name

    @property
    def fe_dir(self) -> Path:
        return self.root / "01_FE"

    @property
    def ts_dir(self) -> Path:
        return self.root / "02_TS"

    @property
    def ht_dir(self) -> Path:
        return self.root / "03_HT"

    @property
    def fe_output(self) -> Path:
        return self.fe_dir / f"{self.subexperiment_name}.csv.gz"


@dataclass(frozen=True)
class PipelineConfig:
    environment: EnvironmentConfig
    experiment: ExperimentConfig
    feature_engineering: FeatureEngineeringConfig
    training_strategy: TrainingStrategyConfig
    hyperparameter_tuning: HyperparameterTuningConfig

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any], *, base_dir: Path) -> "PipelineConfig":
        for section in ("environment", "experiment", "feature_engineering"):
            if section not in mapping:
                raise KeyError(f"'{section}' section is required in the pipeline configuration")
        return cls(
            environment=EnvironmentConfig.from_mapping(mapping["environment"], base_dir=base_dir),
            experiment=ExperimentConfig.from_mapping(mapping["experiment"]),
            feature_engineering=FeatureEngineeringConfig.from_mapping(mapping["feature_engineering"]),
            training_strategy=TrainingStrategyConfig.from_mapping(mapping.get("training_strategy") or {}),
            hyperparameter_tuning=HyperparameterTuningConfig.from_mapping(
                mapping.get("hyperparameter_tuning") or {}
            ),
        )

    @property
    def paths(self) -> ExperimentPaths:
        return ExperimentPaths(
            base_dir=self.environment.base_dir,
            experiment_label=self.experiment.experiment_label,
            experiment_code=self.experiment.experiment_code,
            lead_order=self.feature_engineering.lead_order,
        )


def load_pipeline_config(config_path: str | Path, *, base_dir: str | Path | None = None) -> PipelineConfig:
    """Read the pipeline YAML and build :class:`PipelineConfig`.

    ``base_dir`` overrides ``environment.base_dir`` (used by the CLIs).
    """
    path = Path(config_path).resolve()
    if not path.exists():
        raise FileNotFoundError(f"Pipeline config not found: {path}")
    with path.open("r", encoding="utf-8") as fh:
        full_cfg: Dict[str, Any] = yaml.safe_load(fh) or {}

    if base_dir is not None:
        full_cfg.setdefault("environment", {})
        full_cfg["environment"]["base_dir"] = str(Path(base_dir).resolve())

    return PipelineConfig.from_mapping(full_cfg, base_dir=path.parent)


__all__ = [
    "BOConfig",
    "DEFAULT_CONFIG_PATH",
    "DEFAULT_SECTIONS",
    "EnvironmentConfig",
    "ExperimentConfig",
    "ExperimentPaths",
    "FeatureEngineeringConfig",
    "HyperparameterTuningConfig",
    "PipelineConfig",
    "RatioSpec",
    "SectionRule",
    "TrainingStrategyConfig",
    "UndersamplingRule",
    "load_pipeline_config",
]

import importlib.util
from pathlib import Path

import pandas as pd

from health_economics.common.config import load_pipeline_config
from health_economics.feature_engineering.feature_fe import main as fe_main
from health_economics.training_strategy.train_strategy import build_partitions, main


def _load_harness():
    path = Path(__file__).resolve().parents[1] / "common" / "pipeline_harness.py"
    spec = importlib.util.spec_from_file_location("pipeline_harness", str(path))
    assert spec and spec.loader
    mod = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(mod)  # type: ignore[attr-defined]
    return mod


def _prepare(tmp_path: Path, overrides=None) -> Path:
    harness = _load_harness()
    harness.write_dummy_dataset(tmp_path)
    config_path = harness.write_config(tmp_path, overrides)
    assert fe_main(["--config-path", str(config_path), "--base-dir", str(tmp_path)]) == 0
    return config_path


def test_training_strategy_cli_writes_outputs(tmp_path: Path):
    config_path = _prepare(tmp_path)
    rc = main(["--config-path", str(config_path), "--base-dir", str(tmp_path)])
    assert rc == 0

    ts_dir = tmp_path / "exp" / "hf3_test" / "hf3_test_f1" / "02_TS"
    for name in ("control.txt", "present_data.csv.gz", "train_strategy.csv.gz", "train_final.csv.gz"):
        assert (ts_dir / name).exists(), name

    present = pd.read_csv(ts_dir / "present_data.csv.gz")
    assert present["year"].unique().tolist() == [2021]
    assert "clase" not in present.columns
    assert not [c for c in present.columns if c.startswith("part_")]

    strategy = pd.read_csv(ts_dir / "train_strategy.csv.gz")
    assert sorted(c for c in strategy.columns if c.startswith("part_")) == [
        "part_test",
        "part_train",
        "part_validate",
    ]
    assert strategy["year"].max() == 2020
    assert not [c for c in strategy.columns if "hf3" in c]
    # complete panel: every train/validate/test year has its year + 1 row
    assert strategy["clase"].notna().all()

    final = pd.read_csv(ts_dir / "train_final.csv.gz")
    assert final["year"].min() == 2000
    assert final["year"].max() == 2020
    assert not [c for c in final.columns if c.startswith("part_")]

    control = pd.read_csv(ts_dir / "control.txt", sep="\t")
    assert control["N"].sum() == 6 * 22


def test_build_partitions_respects_exclusion(tmp_path: Path):
    config_path = _prepare(
        tmp_path,
        {"training_strategy": {"param": {"train": {"rango": {"desde": 2005}, "excluir": [2010]}}}},
    )
    config = load_pipeline_config(config_path, base_dir=tmp_path)
    dataset = pd.read_csv(config.paths.fe_output)

    partitioned, cutoffs = build_partitions(dataset, config)

    assert cutoffs.test == 2020
    train_years = set(partitioned.loc[partitioned["part_train"] == 1, "year"])
    assert min(train_years) == 2005
    assert max(train_years) == 2018
    assert 2010 not in train_years


def test_missing_input_returns_error(tmp_path: Path):
    harness = _load_harness()
    config_path = harness.write_config(tmp_path)
    assert main(["--config-path", str(config_path), "--base-dir", str(tmp_path)]) == 1

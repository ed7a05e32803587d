#!/usr/bin/env python
"""Run the three stages in sequence: 01_FE -> 02_TS -> 03_HT."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Sequence

THIS_DIR = Path(__file__).resolve().parent
SRC_ROOT = THIS_DIR.parent / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.append(str(SRC_ROOT))

from health_economics.feature_engineering import feature_fe  # noqa: E402
from health_economics.hyperparameter_tuning import tune_lgbm  # noqa: E402
from health_economics.training_strategy import train_strategy  # noqa: E402

STAGES = {
    "fe": feature_fe.main,
    "ts": train_strategy.main,
    "ht": tune_lgbm.main,
}


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Run the health expenditure pipeline.")
    ap.add_argument("--config-path", type=str, default="configs/health.yaml")
    ap.add_argument("--base-dir", type=str, default=None)
    ap.add_argument(
        "--stages",
        type=str,
        default="fe,ts,ht",
        help="Comma separated subset of fe,ts,ht",
    )
    return ap.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    stages = [s.strip() for s in args.stages.split(",") if s.strip()]
    unknown = [s for s in stages if s not in STAGES]
    if unknown:
        print(f"[error] unknown stages: {unknown}")
        return 2

    stage_args = ["--config-path", args.config_path]
    if args.base_dir:
        stage_args += ["--base-dir", args.base_dir]

    for stage in stages:
        print(f"\n{'=' * 60}\n[stage] {stage}\n{'=' * 60}")
        rc = STAGES[stage](stage_args)
        if rc != 0:
            print(f"[error] stage '{stage}' failed with exit code {rc}")
            return rc
    print("[ok] pipeline finished")
    return 0


if __name__ == "__main__":
    sys.exit(main())

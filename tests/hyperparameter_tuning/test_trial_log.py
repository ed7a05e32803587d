"""Unit tests for the append-only trial log."""

import math
from pathlib import Path

import pandas as pd
import pytest

from health_economics.hyperparameter_tuning.trial_log import TrialLog


def _record(error: float, iteration: int) -> dict:
    return {"cols": 10, "rows": 100, "learning_rate": 0.05, "num_leaves": 31, "error": error, "bo_iteration": iteration}


class TestTrialLog:
    def test_absent_log_resume_state(self, tmp_path: Path):
        log = TrialLog(tmp_path / "BO_log.txt", verbose=False)
        assert not log.exists()
        assert log.resume_state() == (0, math.inf)
        assert log.resume_state(minimize=False) == (0, -math.inf)

    def test_header_written_once(self, tmp_path: Path):
        log = TrialLog(tmp_path / "out" / "BO_log.txt", verbose=False)
        log.append(_record(3.0, 1))
        log.append(_record(2.0, 2))

        lines = log.path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 3
        assert lines[0].split("\t") == ["timestamp", "cols", "rows", "learning_rate", "num_leaves", "error", "bo_iteration"]

        table = log.load()
        assert table["bo_iteration"].tolist() == [1, 2]

    def test_resume_state_uses_best_error(self, tmp_path: Path):
        log = TrialLog(tmp_path / "BO_log.txt", verbose=False)
        for i, err in enumerate([5.0, 2.5, 4.0], start=1):
            log.append(_record(err, i))

        assert log.resume_state() == (3, 2.5)
        assert log.resume_state(minimize=False) == (3, 5.0)

    def test_best_record(self, tmp_path: Path):
        log = TrialLog(tmp_path / "BO_log.txt", verbose=False)
        log.append(_record(5.0, 1))
        log.append(_record(1.5, 2))

        best = log.best_record()
        assert best["bo_iteration"] == 2
        assert best["error"] == pytest.approx(1.5)

    def test_truncated_line_is_skipped(self, tmp_path: Path):
        log = TrialLog(tmp_path / "BO_log.txt", verbose=False)
        log.append(_record(5.0, 1))
        with log.path.open("a", encoding="utf-8") as fh:
            fh.write("20240101 000000\t10\t100\t0.05\t31\t1.0\t2\textra\tjunk\n")

        iterations, best = log.resume_state()
        assert iterations == 1
        assert best == 5.0

    def test_load_missing_raises(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            TrialLog(tmp_path / "none.txt").load()

    def test_verbose_prints_line(self, tmp_path: Path, capsys):
        log = TrialLog(tmp_path / "BO_log.txt")
        line = log.append(_record(1.0, 1))
        assert line in capsys.readouterr().out
        assert isinstance(pd.read_csv(log.path, sep="\t"), pd.DataFrame)

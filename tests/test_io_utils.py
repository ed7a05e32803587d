from pathlib import Path

import pandas as pd
import pytest

from health_economics.common.io_utils import load_table, section_columns, write_table


def test_csv_gz_and_tsv_round_trip(tmp_path: Path):
    df = pd.DataFrame({"year": [2000, 2001], "value": [1.5, 2.5]})

    gz = write_table(df, tmp_path / "nested" / "table.csv.gz")
    tsv = write_table(df, tmp_path / "table.txt", sep="\t")

    pd.testing.assert_frame_equal(load_table(gz), df)
    pd.testing.assert_frame_equal(load_table(tsv), df)


def test_unsupported_extension(tmp_path: Path):
    path = tmp_path / "table.parquet"
    path.write_bytes(b"")
    with pytest.raises(ValueError):
        load_table(path)


def test_missing_file(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_table(tmp_path / "absent.csv")


def test_section_columns():
    assert section_columns(["train", "test"]) == ["part_train", "part_test"]

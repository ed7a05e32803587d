"""Unit tests for splitting YAML hyperparameters into fixed values and ranges."""

import numpy as np
import pytest
from skopt.space import Integer, Real

from health_economics.hyperparameter_tuning.search_space import split_hyperparameters


class TestSplitHyperparameters:
    def test_scalars_are_fixed(self):
        fixed, space = split_hyperparameters({"boosting": "gbdt", "max_bin": 31, "extra": [7]})
        assert fixed == {"boosting": "gbdt", "max_bin": 31, "extra": 7}
        assert len(space) == 0

    def test_ranges(self):
        fixed, space = split_hyperparameters(
            {"learning_rate": [0.01, 0.2], "metric": "rmse", "num_leaves": [8, 1024, 1]}
        )
        assert fixed == {"metric": "rmse"}
        assert space.names == ["learning_rate", "num_leaves"]
        assert isinstance(space.dimensions[0], Real)
        assert isinstance(space.dimensions[1], Integer)
        assert space.integer_names == ["num_leaves"]
        assert (space.dimensions[1].low, space.dimensions[1].high) == (8, 1024)

    def test_integer_bounds_are_rounded_inward(self):
        _, space = split_hyperparameters({"min_data_in_leaf": [4.5, 200.7, 1]})
        assert (space.dimensions[0].low, space.dimensions[0].high) == (5, 200)

    @pytest.mark.parametrize(
        "value",
        [[], [1, 2, 3, 4], [0.5, 0.1], [3, 3, 1]],
    )
    def test_invalid_ranges(self, value):
        with pytest.raises(ValueError):
            split_hyperparameters({"p": value})


class TestSearchSpace:
    def test_to_params_casts_integers(self):
        _, space = split_hyperparameters({"learning_rate": [0.01, 0.2], "num_leaves": [8, 64, 1]})
        params = space.to_params([np.float64(0.05), np.int64(17)])
        assert params == {"learning_rate": 0.05, "num_leaves": 17}
        assert type(params["num_leaves"]) is int
        assert type(params["learning_rate"]) is float

    def test_to_params_length_mismatch(self):
        _, space = split_hyperparameters({"learning_rate": [0.01, 0.2]})
        with pytest.raises(ValueError):
            space.to_params([0.1, 2])

    def test_from_record(self):
        _, space = split_hyperparameters({"learning_rate": [0.01, 0.2], "num_leaves": [8, 64, 1]})
        record = {"learning_rate": 0.1, "num_leaves": 12.0, "error": 3.2}
        assert space.from_record(record) == {"learning_rate": 0.1, "num_leaves": 12}

    def test_describe(self):
        _, space = split_hyperparameters({"learning_rate": [0.01, 0.2], "num_leaves": [8, 64, 1]})
        table = space.describe()
        assert table["name"].tolist() == ["learning_rate", "num_leaves"]
        assert table["type"].tolist() == ["real", "integer"]

"""Split YAML hyperparameters into fixed values and a search space.

In the YAML a hyperparameter is

* a scalar -> fixed value,
* ``[lower, upper]`` -> continuous range,
* ``[lower, upper, step]`` -> integer range (the third element only marks the
  dimension as integer).
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence, Tuple

import numpy as np
import pandas as pd
from skopt.space import Dimension, Integer, Real


@dataclass
class SearchSpace:
    dimensions: List[Dimension] = field(default_factory=list)

    @property
    def names(self) -> List[str]:
        return [str(dim.name) for dim in self.dimensions]

    @property
    def integer_names(self) -> List[str]:
        return [str(dim.name) for dim in self.dimensions if isinstance(dim, Integer)]

    def __len__(self) -> int:
        return len(self.dimensions)

    def to_params(self, values: Sequence[Any]) -> Dict[str, Any]:
        """Map a point proposed by the optimizer to plain Python values."""
        if len(values) != len(self.dimensions):
            raise ValueError(f"Expected {len(self.dimensions)} values, got {len(values)}")
        params: Dict[str, Any] = {}
        for dim, value in zip(self.dimensions, values):
            if isinstance(dim, Integer):
                params[str(dim.name)] = int(round(float(value)))
            else:
                params[str(dim.name)] = float(value)
        return params

    def from_record(self, record: Mapping[str, Any]) -> Dict[str, Any]:
        """Extract the dimension values of a logged trial (missing names are skipped)."""
        params: Dict[str, Any] = {}
        for dim in self.dimensions:
            name = str(dim.name)
            if name not in record:
                continue
            value = record[name]
            if isinstance(value, (np.generic,)):
                value = value.item()
            if value is None or (isinstance(value, float) and math.isnan(value)):
                continue
            params[name] = int(round(float(value))) if isinstance(dim, Integer) else float(value)
        return params

    def describe(self) -> pd.DataFrame:
        rows = [
            {
                "name": str(dim.name),
                "type": "integer" if isinstance(dim, Integer) else "real",
                "lower": dim.low,
                "upper": dim.high,
            }
            for dim in self.dimensions
        ]
        return pd.DataFrame(rows, columns=["name", "type", "lower", "upper"])


def _dimension(name: str, values: Sequence[Any]) -> Dimension:
    lower = float(values[0])
    upper = float(values[1])
    if not lower < upper:
        raise ValueError(f"Hyperparameter '{name}': lower bound {lower} must be < upper bound {upper}")
    if len(values) == 2:
        return Real(lower, upper, name=name)
    return Integer(int(math.ceil(lower)), int(math.floor(upper)), name=name)


def split_hyperparameters(mapping: Mapping[str, Any]) -> Tuple[Dict[str, Any], SearchSpace]:
    """Return ``(fixed_params, search_space)`` keeping the YAML order."""
    fixed: Dict[str, Any] = {}
    space = SearchSpace()
    for name, value in mapping.items():
        if isinstance(value, (list, tuple)):
            if len(value) == 0:
                raise ValueError(f"Hyperparameter '{name}' has an empty value list")
            if len(value) == 1:
                fixed[name] = value[0]
                continue
            if len(value) > 3:
                raise ValueError(
                    f"Hyperparameter '{name}' must be a scalar, [lower, upper] or [lower, upper, step]"
                )
            space.dimensions.append(_dimension(str(name), value))
        else:
            fixed[name] = value
    return fixed, space


__all__ = ["SearchSpace", "split_hyperparameters"]

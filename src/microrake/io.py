"""
Loading targets and respondent data from files.

Targets can be stored as YAML or JSON (nested ``{variable: {category:
value}}``) or as a long CSV table with ``variable``, ``category`` and
``proportion`` (or ``value``) columns. Respondents are read from CSV or
parquet.
"""

import json
from pathlib import Path
from typing import Hashable, Mapping, Optional, Union

import pandas as pd
import yaml

from microrake.dataset import RespondentDataset
from microrake.targets import TargetSpecification, as_targets


PathLike = Union[str, Path]


def _require_file(path: PathLike) -> Path:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    return path


def load_targets(path: PathLike, normalize: bool = False) -> TargetSpecification:
    """
    Load a target specification from YAML, JSON or CSV.

    Args:
        path: Target file
        normalize: Values are population counts; divide by each
            variable's total

    Returns:
        TargetSpecification

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the extension is unsupported or the content is
            not a nested mapping
    """
    path = _require_file(path)
    suffix = path.suffix.lower()

    if suffix == ".csv":
        frame = pd.read_csv(path)
        value_col = "proportion" if "proportion" in frame.columns else "value"
        return TargetSpecification.from_frame(
            frame, value_col=value_col, normalize=normalize
        )

    if suffix in (".yaml", ".yml"):
        with open(path) as f:
            data = yaml.safe_load(f)
    elif suffix == ".json":
        with open(path) as f:
            data = json.load(f)
    else:
        raise ValueError(
            f"Unsupported target file type: '{suffix}'. Use .yaml, .yml, .json or .csv"
        )

    if not isinstance(data, dict) or not all(isinstance(v, dict) for v in data.values()):
        raise ValueError(f"Targets in {path} must be a mapping of variable -> {{category: value}}")

    if normalize:
        return TargetSpecification.from_counts(data)
    return TargetSpecification(data)


def save_targets(
    targets: Union[TargetSpecification, Mapping[str, Mapping[Hashable, float]]],
    path: PathLike,
) -> Path:
    """Write targets as YAML or JSON (chosen by extension)."""
    path = Path(path)
    data = as_targets(targets).to_dict()
    suffix = path.suffix.lower()

    if suffix in (".yaml", ".yml"):
        with open(path, "w") as f:
            yaml.safe_dump(data, f, sort_keys=False)
    elif suffix == ".json":
        with open(path, "w") as f:
            json.dump(data, f, indent=2)
    else:
        raise ValueError(f"Unsupported target file type: '{suffix}'. Use .yaml, .yml or .json")

    return path


def load_respondents(
    path: PathLike,
    targets: Union[TargetSpecification, Mapping[str, Mapping[Hashable, float]]],
    id_col: str = "id",
    weight_col: Optional[str] = None,
) -> RespondentDataset:
    """
    Load respondents from CSV or parquet and validate them against targets.

    Raked columns are read as strings from CSV only when the matching
    target labels are strings, so numeric codes still line up.
    """
    path = _require_file(path)
    targets = as_targets(targets)
    suffix = path.suffix.lower()

    if suffix == ".csv":
        header = pd.read_csv(path, nrows=0).columns
        dtypes = {
            v: str
            for v in targets.variables
            if v in header and all(isinstance(c, str) for c in targets.categories(v))
        }
        frame = pd.read_csv(path, dtype=dtypes)
    elif suffix == ".parquet":
        frame = pd.read_parquet(path)
    else:
        raise ValueError(
            f"Unsupported respondent file type: '{suffix}'. Use .csv or .parquet"
        )

    return RespondentDataset(frame, targets, id_col=id_col, weights=weight_col)

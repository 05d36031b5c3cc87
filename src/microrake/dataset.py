"""
Respondent dataset: survey records with categories and mutable weights.

Each raked variable is stored as a ``pd.Categorical`` whose categories are
exactly the target labels for that variable, so a respondent can only ever
hold a category that has a target. Weights live in a single float array
that the raking engine updates in place.

Example:
    >>> from microrake import RespondentDataset, TargetSpecification
    >>> targets = TargetSpecification({"gender": {"female": 0.5, "male": 0.5}})
    >>> ds = RespondentDataset.from_records(
    ...     [{"id": 1, "gender": "female"}, {"id": 2, "gender": "male"}],
    ...     targets,
    ... )
    >>> float(ds.weighted_proportions("gender")["female"])
    0.5
"""

from typing import Any, Dict, Hashable, Iterable, Iterator, Mapping, NamedTuple, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from microrake.errors import UnknownCategoryError
from microrake.targets import TargetSpecification, as_targets


WeightsLike = Union[str, Sequence[float], np.ndarray, pd.Series]


class Respondent(NamedTuple):
    """One survey respondent."""
    id: Any
    categories: Dict[str, Any]
    weight: float


def _check_weights(weights: np.ndarray, n: int) -> np.ndarray:
    weights = np.asarray(weights, dtype=float)
    if weights.shape != (n,):
        raise ValueError(
            f"Expected {n} weights, got array of shape {weights.shape}"
        )
    if not np.all(np.isfinite(weights)):
        raise ValueError("Weights must be finite")
    if np.any(weights <= 0):
        raise ValueError("Weights must be strictly positive")
    return weights


class RespondentDataset:
    """
    Survey respondents validated against a target specification.

    Category values are fixed at construction. Only weights change.
    """

    def __init__(
        self,
        frame: pd.DataFrame,
        targets: Union[TargetSpecification, Mapping[str, Mapping[Hashable, float]]],
        id_col: str = "id",
        weights: Optional[WeightsLike] = None,
    ):
        """
        Validate respondents and build categorical columns.

        Args:
            frame: One row per respondent
            targets: Target specification (or plain nested mapping)
            id_col: Column with unique respondent ids
            weights: Starting weights, as an array or a column name.
                Defaults to 1.0 for everyone.

        Raises:
            UnknownCategoryError: If a raked variable is missing from the
                frame, or a respondent's value has no target
            ValueError: If ids are missing/duplicated or weights invalid
        """
        self.targets = as_targets(targets)
        self.id_col = id_col

        if len(frame) == 0:
            raise ValueError("Respondent data is empty")
        if id_col not in frame.columns:
            raise ValueError(f"Id column '{id_col}' not in respondent data")

        ids = frame[id_col].reset_index(drop=True)
        if ids.isna().any():
            raise ValueError(f"Id column '{id_col}' contains missing values")
        duplicated = ids[ids.duplicated()]
        if len(duplicated) > 0:
            raise ValueError(
                f"Duplicate respondent ids: {list(duplicated.unique()[:5])}"
            )
        self._ids = pd.Index(ids.to_numpy(), name=id_col)

        columns = {id_col: ids}
        self._codes: Dict[str, np.ndarray] = {}

        for variable in self.targets.variables:
            if variable not in frame.columns:
                raise UnknownCategoryError(
                    variable, reason="column missing from respondent data"
                )
            values = frame[variable].reset_index(drop=True)
            categorical = pd.Categorical(
                values, categories=list(self.targets.categories(variable))
            )
            codes = np.asarray(categorical.codes)

            # Code -1 means the value is not one of the target labels (or NaN)
            unknown = np.flatnonzero(codes < 0)
            if len(unknown) > 0:
                i = unknown[0]
                raise UnknownCategoryError(
                    variable, values.iloc[i], respondent_id=ids.iloc[i]
                )

            columns[variable] = categorical
            self._codes[variable] = codes.astype(np.intp)

        self._frame = pd.DataFrame(columns)
        self._weights = np.ones(len(frame), dtype=float)

        if weights is not None:
            self.set_weights(self._resolve_weights(frame, weights))

    @classmethod
    def from_records(
        cls,
        records: Iterable[Mapping[str, Any]],
        targets: Union[TargetSpecification, Mapping[str, Mapping[Hashable, float]]],
        id_key: str = "id",
        weight_key: Optional[str] = None,
    ) -> "RespondentDataset":
        """Build a dataset from an iterable of dict-like records."""
        frame = pd.DataFrame(list(records))
        return cls(frame, targets, id_col=id_key, weights=weight_key)

    def _resolve_weights(self, frame: pd.DataFrame, weights: WeightsLike) -> np.ndarray:
        if isinstance(weights, str):
            if weights not in frame.columns:
                raise ValueError(f"Weight column '{weights}' not in respondent data")
            return frame[weights].to_numpy(dtype=float)
        return np.asarray(weights, dtype=float)

    # Structure

    def __len__(self) -> int:
        return len(self._weights)

    def __iter__(self) -> Iterator[Respondent]:
        variables = self.variables
        for i, respondent_id in enumerate(self._ids):
            yield Respondent(
                id=respondent_id,
                categories={v: self._frame[v].iat[i] for v in variables},
                weight=float(self._weights[i]),
            )

    def __repr__(self) -> str:
        return (
            f"RespondentDataset(n={len(self)}, "
            f"variables={list(self.variables)})"
        )

    @property
    def ids(self) -> pd.Index:
        """Respondent ids in row order."""
        return self._ids

    @property
    def variables(self) -> Tuple[str, ...]:
        """Raked variables, in raking order."""
        return self.targets.variables

    @property
    def weights(self) -> np.ndarray:
        """Read-only view of the current weights."""
        view = self._weights.view()
        view.flags.writeable = False
        return view

    def codes(self, variable: str) -> np.ndarray:
        """Integer category codes (positions in target order) for a variable."""
        try:
            return self._codes[variable]
        except KeyError:
            raise UnknownCategoryError(
                variable, reason="variable is not raked in this dataset"
            ) from None

    # Proportions

    def _category_index(self, variable: str) -> pd.Index:
        return pd.Index(list(self.targets.categories(variable)), name="category")

    def category_counts(self, variable: str) -> pd.Series:
        """Number of respondents per category (zero-count categories included)."""
        codes = self.codes(variable)
        index = self._category_index(variable)
        counts = np.bincount(codes, minlength=len(index))
        return pd.Series(counts, index=index, name=variable)

    def weighted_proportions(
        self,
        variable: str,
        weights: Optional[np.ndarray] = None,
    ) -> pd.Series:
        """
        Weighted share of each category for a variable.

        Args:
            variable: Raked variable name
            weights: Weights to use instead of the dataset's current ones

        Returns:
            Series indexed by category label, summing to 1
        """
        w = self._weights if weights is None else np.asarray(weights, dtype=float)
        codes = self.codes(variable)
        index = self._category_index(variable)
        sums = np.bincount(codes, weights=w, minlength=len(index))
        return pd.Series(sums / sums.sum(), index=index, name=variable)

    def unweighted_proportions(self, variable: str) -> pd.Series:
        """Sample share of each category for a variable."""
        counts = self.category_counts(variable)
        return (counts / counts.sum()).astype(float)

    # Weight mutation

    def get_weight(self, respondent_id: Any) -> float:
        """Current weight of one respondent (KeyError if unknown)."""
        return float(self._weights[self._ids.get_loc(respondent_id)])

    def set_weight(self, respondent_id: Any, weight: float) -> None:
        """
        Set one respondent's weight.

        Raises:
            KeyError: If no respondent has this id
            ValueError: If weight is not finite and positive
        """
        position = self._ids.get_loc(respondent_id)
        weight = float(weight)
        if not np.isfinite(weight) or weight <= 0:
            raise ValueError(
                f"Weight for respondent {respondent_id!r} must be finite and positive, got {weight!r}"
            )
        self._weights[position] = weight

    def set_weights(self, weights: Union[Sequence[float], np.ndarray]) -> None:
        """Replace all weights (in place, so existing views see the update)."""
        self._weights[:] = _check_weights(weights, len(self))

    def reset_weights(self) -> None:
        """Set every weight back to 1.0."""
        self._weights[:] = 1.0

    def to_frame(self, weight_col: str = "weight") -> pd.DataFrame:
        """Respondents with their categories and current weights."""
        result = self._frame.copy()
        result[weight_col] = self._weights.copy()
        return result

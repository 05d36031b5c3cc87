"""
Target specification: population proportions to rake toward.

Targets are given per demographic variable as a mapping from category
label to the proportion of the population in that category. Each
variable's proportions must sum to 1.

Example:
    >>> from microrake.targets import TargetSpecification
    >>> targets = TargetSpecification({
    ...     "gender": {"female": 0.51, "male": 0.49},
    ...     "education": {"hs_or_less": 0.38, "some_college": 0.28, "ba_plus": 0.34},
    ... })
    >>> targets.lookup("gender", "female")
    0.51
"""

import math
from typing import Any, Dict, Hashable, Iterable, Iterator, Mapping, Optional, Tuple, Union

import pandas as pd

from microrake.errors import MalformedTargetError, UnknownCategoryError


# Allowed slack when checking that a variable's proportions sum to 1
DEFAULT_SUM_TOLERANCE = 1e-6


class TargetSpecification:
    """
    Validated, immutable set of target proportions.

    Variables keep their insertion order, which is also the order the
    raking engine adjusts them in.
    """

    def __init__(
        self,
        targets: Mapping[str, Mapping[Hashable, float]],
        tol: float = DEFAULT_SUM_TOLERANCE,
    ):
        """
        Validate and store targets.

        Args:
            targets: Nested mapping {variable: {category: proportion}}
            tol: Allowed deviation of each variable's sum from 1.0

        Raises:
            MalformedTargetError: If a variable is empty, has a proportion
                outside [0, 1], or its proportions don't sum to 1
        """
        if not targets:
            raise ValueError("At least one target variable is required")

        self.tol = tol
        self._targets: Dict[str, Dict[Hashable, float]] = {}

        for variable, mapping in targets.items():
            self._targets[variable] = self._validate_variable(variable, mapping, tol)

    @staticmethod
    def _validate_variable(
        variable: str,
        mapping: Mapping[Hashable, float],
        tol: float,
    ) -> Dict[Hashable, float]:
        if not mapping:
            raise MalformedTargetError(variable, reason="no categories given")

        clean = {}
        for category, value in mapping.items():
            value = float(value)
            if not math.isfinite(value) or value < 0 or value > 1:
                raise MalformedTargetError(
                    variable,
                    reason=f"proportion for {category!r} is {value!r}, must be in [0, 1]",
                )
            clean[category] = value

        total = math.fsum(clean.values())
        if abs(total - 1.0) > tol:
            raise MalformedTargetError(variable, observed_sum=total)

        return clean

    @classmethod
    def from_counts(
        cls,
        counts: Mapping[str, Mapping[Hashable, float]],
        tol: float = DEFAULT_SUM_TOLERANCE,
    ) -> "TargetSpecification":
        """
        Build targets from population counts (e.g. Census totals).

        Each variable's counts are divided by that variable's total.
        """
        targets = {}
        for variable, mapping in counts.items():
            total = math.fsum(float(v) for v in mapping.values())
            if total <= 0:
                raise MalformedTargetError(
                    variable, observed_sum=total, reason=f"counts sum to {total!r}"
                )
            targets[variable] = {k: float(v) / total for k, v in mapping.items()}
        return cls(targets, tol=tol)

    @classmethod
    def from_frame(
        cls,
        frame: pd.DataFrame,
        variable_col: str = "variable",
        category_col: str = "category",
        value_col: str = "proportion",
        normalize: bool = False,
        tol: float = DEFAULT_SUM_TOLERANCE,
    ) -> "TargetSpecification":
        """
        Build targets from a long table with one row per (variable, category).

        Args:
            frame: Table of targets
            variable_col: Column holding variable names
            category_col: Column holding category labels
            value_col: Column holding proportions (or counts)
            normalize: Treat values as counts and normalise per variable
        """
        for col in (variable_col, category_col, value_col):
            if col not in frame.columns:
                raise ValueError(f"Target table is missing column '{col}'")

        nested: Dict[str, Dict[Hashable, float]] = {}
        for variable, category, value in zip(
            frame[variable_col], frame[category_col], frame[value_col]
        ):
            variable = str(variable)
            nested.setdefault(variable, {})
            if category in nested[variable]:
                raise MalformedTargetError(
                    variable, reason=f"category {category!r} listed twice"
                )
            nested[variable][category] = float(value)

        if normalize:
            return cls.from_counts(nested, tol=tol)
        return cls(nested, tol=tol)

    @property
    def variables(self) -> Tuple[str, ...]:
        """Variable names in raking order."""
        return tuple(self._targets)

    def _mapping(self, variable: str) -> Dict[Hashable, float]:
        try:
            return self._targets[variable]
        except KeyError:
            raise UnknownCategoryError(
                variable, reason="variable has no targets"
            ) from None

    def categories(self, variable: str) -> Tuple[Hashable, ...]:
        """Category labels for a variable, in target order."""
        return tuple(self._mapping(variable))

    def proportions(self, variable: str) -> pd.Series:
        """Target proportions for a variable as a Series indexed by category."""
        mapping = self._mapping(variable)
        return pd.Series(
            list(mapping.values()),
            index=pd.Index(list(mapping.keys()), name="category"),
            name=variable,
            dtype=float,
        )

    def lookup(self, variable: str, category: Any) -> float:
        """
        Target proportion for one (variable, category) pair.

        Raises:
            UnknownCategoryError: If the variable or category has no target
        """
        mapping = self._mapping(variable)
        try:
            return mapping[category]
        except (KeyError, TypeError):
            raise UnknownCategoryError(variable, category) from None

    def subset(self, variables: Iterable[str]) -> "TargetSpecification":
        """Targets restricted to the given variables (in the given order)."""
        return TargetSpecification(
            {v: self._mapping(v) for v in variables}, tol=self.tol
        )

    def to_dict(self) -> Dict[str, Dict[Hashable, float]]:
        """Plain nested-dict copy of the targets."""
        return {v: dict(m) for v, m in self._targets.items()}

    def __contains__(self, variable: object) -> bool:
        return variable in self._targets

    def __iter__(self) -> Iterator[str]:
        return iter(self._targets)

    def __len__(self) -> int:
        return len(self._targets)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TargetSpecification):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        parts = ", ".join(f"{v}[{len(m)}]" for v, m in self._targets.items())
        return f"TargetSpecification({parts})"


def as_targets(
    targets: Union["TargetSpecification", Mapping[str, Mapping[Hashable, float]]],
    tol: Optional[float] = None,
) -> TargetSpecification:
    """Coerce a plain nested mapping to a TargetSpecification."""
    if isinstance(targets, TargetSpecification):
        return targets
    return TargetSpecification(targets, tol=DEFAULT_SUM_TOLERANCE if tol is None else tol)

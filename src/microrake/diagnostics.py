"""
Diagnostics for raked weights.

Compares weighted proportions against targets, and measures the cost of
unequal weighting (Kish design effect, effective sample size).
Mismatches against targets are reported as data. Only the weight
invariants (mean 1, sum n) raise, since breaking them means the weights
themselves are wrong.

Example:
    >>> from microrake.diagnostics import diagnose
    >>> report = diagnose(dataset, targets, result)
    >>> report.design_effect
    1.18...
    >>> print(report.summary())
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, Mapping, Optional, Union

import numpy as np
import pandas as pd

from microrake.config import DEFAULT_MATCH_DECIMALS
from microrake.dataset import RespondentDataset
from microrake.engine import RakeResult
from microrake.errors import InvariantViolationError, UnknownCategoryError
from microrake.targets import TargetSpecification, as_targets


INVARIANT_ATOL = 1e-9


def design_effect(weights: np.ndarray) -> float:
    """
    Kish design effect from unequal weighting.

        deff = n * sum(w^2) / (sum(w))^2

    Equals 1 for equal weights and grows as weights spread out.
    """
    w = np.asarray(weights, dtype=float)
    total = w.sum()
    if len(w) == 0 or total == 0:
        return float("nan")
    return float(len(w) * np.sum(w ** 2) / total ** 2)


def effective_sample_size(weights: np.ndarray) -> float:
    """Sample size an equally weighted sample would need for the same precision."""
    w = np.asarray(weights, dtype=float)
    return float(len(w) / design_effect(w))


def weight_stats(weights: np.ndarray) -> Dict[str, float]:
    """Min, max, mean, sum, coefficient of variation and max/min ratio."""
    w = np.asarray(weights, dtype=float)
    mean_w = w.mean()
    return {
        "min_weight": float(w.min()),
        "max_weight": float(w.max()),
        "mean_weight": float(mean_w),
        "sum_weight": float(w.sum()),
        "cv": float(w.std() / mean_w) if mean_w > 0 else 0.0,
        "ratio": float(w.max() / w.min()) if w.min() > 0 else float("inf"),
    }


@dataclass
class DiagnosticsReport:
    """Weighted-vs-target comparison and weight quality measures."""
    comparison: pd.DataFrame
    n: int
    design_effect: float
    weight_stats: Dict[str, float]
    decimals: int = DEFAULT_MATCH_DECIMALS
    converged: Optional[bool] = None
    iterations: Optional[int] = None
    deviations: Dict[str, float] = field(default_factory=dict)

    @property
    def effective_sample_size(self) -> float:
        return self.n / self.design_effect

    @property
    def weighting_efficiency(self) -> float:
        """Effective sample size as a percentage of n."""
        return 100.0 / self.design_effect

    @property
    def mean_weight(self) -> float:
        return self.weight_stats["mean_weight"]

    @property
    def sum_weight(self) -> float:
        return self.weight_stats["sum_weight"]

    @property
    def all_match(self) -> bool:
        return bool(self.comparison["match"].all())

    def mismatches(self) -> pd.DataFrame:
        """Rows whose rounded weighted proportion differs from the target."""
        return self.comparison[~self.comparison["match"]].reset_index(drop=True)

    def check_invariants(self, atol: float = INVARIANT_ATOL) -> None:
        """
        Verify mean weight == 1 and sum of weights == n.

        Raises:
            InvariantViolationError: If either check fails
        """
        if abs(self.mean_weight - 1.0) > atol:
            raise InvariantViolationError(
                f"Mean weight is {self.mean_weight!r}, expected 1.0 (atol={atol:g})"
            )
        if abs(self.sum_weight - self.n) > atol:
            raise InvariantViolationError(
                f"Sum of weights is {self.sum_weight!r}, expected {self.n} (atol={atol:g})"
            )

    def summary(self) -> str:
        """Generate summary string."""
        if self.converged is None:
            status = "unknown"
        else:
            status = "converged" if self.converged else "NOT converged"
            if self.iterations is not None:
                status += f" ({self.iterations} iterations)"

        lines = [
            "Weighting Diagnostics:",
            f"  Respondents: {self.n:,}",
            f"  Status: {status}",
            f"  Design effect: {self.design_effect:.3f}",
            f"  Effective N: {self.effective_sample_size:,.1f} "
            f"({self.weighting_efficiency:.1f}% efficiency)",
            f"  Weight range: [{self.weight_stats['min_weight']:.4f}, "
            f"{self.weight_stats['max_weight']:.4f}]",
            f"  Targets matched ({self.decimals} dp): "
            f"{int(self.comparison['match'].sum())}/{len(self.comparison)}",
        ]

        for variable, rows in self.comparison.groupby("variable", sort=False):
            lines.append(f"  {variable}:")
            for row in rows.itertuples(index=False):
                mark = "ok" if row.match else "MISMATCH"
                lines.append(
                    f"    {str(row.category):20s} raw={row.unweighted:.4f}  "
                    f"wtd={row.weighted:.4f}  tgt={row.target:.4f}  {mark}"
                )

        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """Plain-python representation (e.g. for JSON output)."""
        return {
            "n": self.n,
            "converged": self.converged,
            "iterations": self.iterations,
            "design_effect": self.design_effect,
            "effective_sample_size": self.effective_sample_size,
            "weighting_efficiency": self.weighting_efficiency,
            "weight_stats": dict(self.weight_stats),
            "all_match": self.all_match,
            "deviations": dict(self.deviations),
            "comparison": [
                {
                    "variable": row.variable,
                    "category": row.category,
                    "target": float(row.target),
                    "unweighted": float(row.unweighted),
                    "weighted": float(row.weighted),
                    "difference": float(row.difference),
                    "match": bool(row.match),
                }
                for row in self.comparison.itertuples(index=False)
            ],
        }


def _check_categories(dataset: RespondentDataset, variable: str, categories: pd.Index) -> None:
    known = dataset.weighted_proportions(variable).index
    for category in categories:
        if category not in known:
            raise UnknownCategoryError(
                variable, category, reason=f"target category {category!r} is not in the dataset"
            )
    for category in known:
        if category not in categories:
            raise UnknownCategoryError(
                variable, category, reason=f"dataset category {category!r} has no target"
            )


def diagnose(
    dataset: RespondentDataset,
    targets: Optional[Union[TargetSpecification, Mapping[str, Mapping[Hashable, float]]]] = None,
    result: Optional[RakeResult] = None,
    decimals: int = DEFAULT_MATCH_DECIMALS,
    check: bool = True,
) -> DiagnosticsReport:
    """
    Build a diagnostics report for a dataset's current weights.

    Args:
        dataset: Raked respondents
        targets: Targets to compare against (default: the dataset's own)
        result: Raking result, for convergence status and iteration count
        decimals: Rounding precision for the match flags
        check: Run the mean/sum invariant checks

    Returns:
        DiagnosticsReport

    Raises:
        InvariantViolationError: If ``check`` and the invariants fail
        UnknownCategoryError: If a target variable or category is not raked
            in the dataset, or a dataset category has no target
    """
    targets = dataset.targets if targets is None else as_targets(targets)
    weights = np.asarray(dataset.weights, dtype=float)

    rows = []
    deviations = {}
    for variable in targets.variables:
        target = targets.proportions(variable)
        _check_categories(dataset, variable, target.index)
        weighted = dataset.weighted_proportions(variable).reindex(target.index)
        unweighted = dataset.unweighted_proportions(variable).reindex(target.index)

        difference = weighted - target
        deviations[variable] = float(difference.abs().max())

        for category in target.index:
            rows.append({
                "variable": variable,
                "category": category,
                "target": float(target[category]),
                "unweighted": float(unweighted[category]),
                "weighted": float(weighted[category]),
                "difference": float(difference[category]),
                "match": bool(
                    round(float(weighted[category]), decimals)
                    == round(float(target[category]), decimals)
                ),
            })

    comparison = pd.DataFrame(
        rows,
        columns=["variable", "category", "target", "unweighted", "weighted", "difference", "match"],
    )

    report = DiagnosticsReport(
        comparison=comparison,
        n=len(dataset),
        design_effect=design_effect(weights),
        weight_stats=weight_stats(weights),
        decimals=decimals,
        converged=None if result is None else result.converged,
        iterations=None if result is None else result.iterations,
        deviations=deviations,
    )

    if check:
        report.check_invariants()

    return report

"""
Raking (iterative proportional fitting) of survey weights.

Adjusts per-respondent weights so the weighted distribution of every
demographic variable matches its target distribution.

Algorithm:
    1. Start from weights normalised to mean 1.
    2. For each pass, for each variable in target order:
       - Compute each category's current weighted proportion
       - Multiply every respondent's weight by target / current for
         their category (this variable now matches exactly)
    3. Optionally trim weights to the configured bounds.
    4. Measure the max absolute deviation across all variables and
       categories; stop when every variable is below tolerance or the
       iteration cap is hit.
    5. Normalise final weights to mean exactly 1.

Example:
    >>> from microrake import RakingEngine, RespondentDataset
    >>> dataset = RespondentDataset(survey, targets)
    >>> engine = RakingEngine(tolerance=0.0005, max_iterations=50)
    >>> result = engine.rake(dataset)
    >>> print(result.summary())
"""

import warnings
from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, List, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd

from microrake.config import RakingConfig
from microrake.dataset import RespondentDataset, _check_weights
from microrake.errors import (
    DegenerateTargetError,
    NonConvergenceError,
    NonConvergenceWarning,
    UnknownCategoryError,
)
from microrake.targets import TargetSpecification


@dataclass
class RakingState:
    """Weighted proportions and deviations measured after one pass.

    Iteration 0 is the state before any adjustment.
    """
    iteration: int
    proportions: Dict[str, pd.Series]
    deviations: Dict[str, float]
    tolerance: float

    @property
    def variable_converged(self) -> Dict[str, bool]:
        return {v: d < self.tolerance for v, d in self.deviations.items()}

    @property
    def converged(self) -> bool:
        return all(self.variable_converged.values())

    @property
    def max_deviation(self) -> float:
        return max(self.deviations.values())

    @property
    def worst_variable(self) -> str:
        return max(self.deviations, key=self.deviations.get)


@dataclass
class RakeResult:
    """Outcome of a raking run."""
    weights: np.ndarray
    ids: pd.Index
    converged: bool
    iterations: int
    tolerance: float
    history: List[RakingState] = field(default_factory=list)
    trim: str = "no limit"

    @property
    def final_state(self) -> RakingState:
        return self.history[-1]

    def weight_series(self, name: str = "weight") -> pd.Series:
        """Weights indexed by respondent id."""
        return pd.Series(self.weights, index=self.ids, name=name)

    def summary(self) -> str:
        """Generate summary string."""
        state = self.final_state
        status = "converged" if self.converged else "NOT converged"
        lines = [
            "Raking Result:",
            f"  Status: {status} ({self.iterations} iterations)",
            f"  Tolerance: {self.tolerance:g}",
            f"  Max deviation: {state.max_deviation:.6f} ({state.worst_variable})",
            f"  Trimming: {self.trim}",
            f"  Weight range: [{self.weights.min():.4f}, {self.weights.max():.4f}]",
        ]
        return "\n".join(lines)


class RakingEngine:
    """
    Rake respondent weights to target proportions.

    Settings come from a ``RakingConfig``; keyword arguments override
    individual fields.

    Example:
        >>> engine = RakingEngine(max_iterations=100, trim=TrimPolicy(upper=5.0))
        >>> result = engine.rake(dataset)
        >>> result.converged
        True
    """

    def __init__(self, config: Optional[RakingConfig] = None, **overrides: Any):
        if config is None:
            config = RakingConfig()
        self.config = config.with_overrides(**overrides)

        # Set by rake()
        self.result_: Optional[RakeResult] = None

    def rake(
        self,
        dataset: RespondentDataset,
        starting_weights: Optional[Union[Sequence[float], np.ndarray]] = None,
    ) -> RakeResult:
        """
        Rake a dataset's weights in place.

        Args:
            dataset: Respondents to weight
            starting_weights: Initial weights; defaults to the dataset's
                current weights. Normalised to mean 1 (and trimmed, if
                the trim policy is enabled) before raking.

        Returns:
            RakeResult with final weights, convergence status and per-pass
            history

        Raises:
            DegenerateTargetError: If a zero target has respondents
            UnknownCategoryError: If a positive target has no respondents
            NonConvergenceError: If not converged and the config asks to raise
        """
        config = self.config
        targets = dataset.targets
        variables = targets.variables

        self._validate(dataset)

        if starting_weights is None:
            weights = np.array(dataset.weights, dtype=float)
        else:
            weights = _check_weights(starting_weights, len(dataset)).copy()
        weights = weights / weights.mean()
        if config.trim.enabled:
            # Starting weights that already meet the targets skip the loop
            weights = config.trim.apply(weights)

        target_arrays = {v: targets.proportions(v).to_numpy() for v in variables}
        codes = {v: dataset.codes(v) for v in variables}

        state = self._measure(targets, codes, target_arrays, weights, 0)
        history = [state]

        iteration = 0
        while not state.converged and iteration < config.max_iterations:
            iteration += 1

            for variable in variables:
                weights = self._adjust(weights, codes[variable], target_arrays[variable])

            if config.trim.enabled:
                weights = config.trim.apply(weights)

            state = self._measure(targets, codes, target_arrays, weights, iteration)
            history.append(state)

        weights = weights / weights.mean()
        dataset.set_weights(weights)

        result = RakeResult(
            weights=weights,
            ids=dataset.ids,
            converged=state.converged,
            iterations=iteration,
            tolerance=config.tolerance,
            history=history,
            trim=config.trim.describe(),
        )
        self.result_ = result

        if not result.converged:
            self._report_nonconvergence(result)

        return result

    def rake_frame(
        self,
        frame: pd.DataFrame,
        targets: Union[TargetSpecification, Mapping[str, Mapping[Hashable, float]]],
        id_col: str = "id",
        weight_col: Optional[str] = None,
        output_col: str = "weight",
    ) -> pd.DataFrame:
        """
        Rake a DataFrame and return a copy with a weight column.

        Args:
            frame: One row per respondent
            targets: Target proportions
            id_col: Respondent id column
            weight_col: Optional column with starting weights
            output_col: Name of the output weight column

        Returns:
            Copy of ``frame`` with raked weights in ``output_col``
        """
        dataset = RespondentDataset(frame, targets, id_col=id_col, weights=weight_col)
        result = self.rake(dataset)

        out = frame.copy()
        out[output_col] = result.weights
        return out

    def _validate(self, dataset: RespondentDataset) -> None:
        """Check every target category is reachable before touching weights."""
        targets = dataset.targets
        for variable in targets.variables:
            counts = dataset.category_counts(variable)
            for category, proportion in targets.proportions(variable).items():
                n = int(counts[category])
                if proportion == 0 and n > 0:
                    raise DegenerateTargetError(variable, category, n)
                if proportion > 0 and n == 0:
                    raise UnknownCategoryError(
                        variable,
                        category,
                        reason=(
                            f"target {proportion:g} for category {category!r} "
                            "has no respondents"
                        ),
                    )

    @staticmethod
    def _adjust(
        weights: np.ndarray,
        codes: np.ndarray,
        target: np.ndarray,
    ) -> np.ndarray:
        """One raking step: make this variable's weighted shares hit target."""
        sums = np.bincount(codes, weights=weights, minlength=len(target))
        current = sums / sums.sum()

        # Empty categories have a zero target (checked in _validate)
        factors = np.ones_like(target)
        present = current > 0
        factors[present] = target[present] / current[present]

        return weights * factors[codes]

    def _measure(
        self,
        targets: TargetSpecification,
        codes: Dict[str, np.ndarray],
        target_arrays: Dict[str, np.ndarray],
        weights: np.ndarray,
        iteration: int,
    ) -> RakingState:
        proportions = {}
        deviations = {}
        for variable, target in target_arrays.items():
            sums = np.bincount(codes[variable], weights=weights, minlength=len(target))
            current = sums / sums.sum()
            proportions[variable] = pd.Series(
                current,
                index=pd.Index(list(targets.categories(variable)), name="category"),
                name=variable,
            )
            deviations[variable] = float(np.max(np.abs(current - target)))

        return RakingState(
            iteration=iteration,
            proportions=proportions,
            deviations=deviations,
            tolerance=self.config.tolerance,
        )

    def _report_nonconvergence(self, result: RakeResult) -> None:
        if self.config.raise_on_nonconvergence:
            raise NonConvergenceError(result)

        state = result.final_state
        warnings.warn(
            f"Raking did not converge after {result.iterations} iteration(s); "
            f"max deviation {state.max_deviation:.6g} on '{state.worst_variable}' "
            f"(tolerance {result.tolerance:g})",
            NonConvergenceWarning,
            stacklevel=3,
        )


def rake(
    frame: pd.DataFrame,
    targets: Union[TargetSpecification, Mapping[str, Mapping[Hashable, float]]],
    id_col: str = "id",
    weight_col: Optional[str] = None,
    output_col: str = "weight",
    **config: Any,
) -> pd.DataFrame:
    """
    Rake a DataFrame in one call.

    Keyword arguments beyond the column names are ``RakingConfig`` fields.

    Example:
        >>> weighted = rake(survey, {"gender": {"f": 0.52, "m": 0.48}})
        >>> weighted["weight"].mean()
        1.0
    """
    engine = RakingEngine(**config)
    return engine.rake_frame(
        frame, targets, id_col=id_col, weight_col=weight_col, output_col=output_col
    )

"""
Errors and warnings raised while raking survey weights.

Every error derives from ``RakingError``, which is itself a ``ValueError``
so callers that already guard bad inputs with ``except ValueError`` keep
working. Each error names the variable, category or respondent that
caused it.
"""

from typing import Any, Optional


class RakingError(ValueError):
    """Base class for all raking errors."""


class MalformedTargetError(RakingError):
    """A variable's target proportions are invalid (e.g. do not sum to 1)."""

    def __init__(
        self,
        variable: str,
        observed_sum: Optional[float] = None,
        reason: Optional[str] = None,
    ):
        self.variable = variable
        self.observed_sum = observed_sum
        if reason is None:
            reason = f"proportions sum to {observed_sum!r}, expected 1.0"
        super().__init__(f"Malformed targets for '{variable}': {reason}")


class UnknownCategoryError(RakingError):
    """A category (or variable) is present on one side but not the other."""

    def __init__(
        self,
        variable: str,
        category: Any = None,
        respondent_id: Any = None,
        reason: Optional[str] = None,
    ):
        self.variable = variable
        self.category = category
        self.respondent_id = respondent_id

        if reason is None:
            reason = f"category {category!r} has no target"
        if respondent_id is not None:
            msg = f"Respondent {respondent_id!r}, variable '{variable}': {reason}"
        else:
            msg = f"Variable '{variable}': {reason}"
        super().__init__(msg)


class DegenerateTargetError(RakingError):
    """A zero target proportion would force present respondents to weight 0."""

    def __init__(self, variable: str, category: Any, n_respondents: int):
        self.variable = variable
        self.category = category
        self.n_respondents = n_respondents
        super().__init__(
            f"Target proportion for '{variable}'={category!r} is 0 but "
            f"{n_respondents} respondent(s) fall in that category"
        )


class NonConvergenceError(RakingError):
    """Iteration cap reached before every variable met tolerance.

    The best available result is kept on ``.result`` so callers can still
    inspect (or use) the partially raked weights.
    """

    def __init__(self, result: Any):
        self.result = result
        state = result.final_state
        super().__init__(
            f"Raking did not converge after {result.iterations} iteration(s): "
            f"max deviation {state.max_deviation:.6g} on "
            f"'{state.worst_variable}' (tolerance {result.tolerance:g})"
        )


class InvariantViolationError(RakingError):
    """Output weights break the mean/sum invariants."""


class NonConvergenceWarning(UserWarning):
    """Raking stopped at the iteration cap without meeting tolerance."""

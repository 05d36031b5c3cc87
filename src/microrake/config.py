"""Raking configuration: convergence settings and weight trimming policy."""

from __future__ import annotations

import numpy as np
from pydantic import BaseModel, Field
from scipy.optimize import brentq


# Max absolute deviation between a weighted and a target proportion
DEFAULT_TOLERANCE = 0.0005
DEFAULT_MAX_ITERATIONS = 50
DEFAULT_MATCH_DECIMALS = 4


class TrimPolicy(BaseModel):
    """Bounds on weights relative to the mean weight.

    ``upper`` caps each weight at that multiple of the mean, ``lower``
    floors it at that fraction of the mean. Either side can be ``None``;
    ``TrimPolicy.no_limit()`` disables trimming entirely.

    Examples:
        >>> TrimPolicy(upper=5.0, lower=0.2).describe()
        '[0.2, 5]x mean'
        >>> TrimPolicy.no_limit().enabled
        False
    """

    upper: float | None = Field(default=None, gt=1.0)
    lower: float | None = Field(default=None, gt=0.0, lt=1.0)

    model_config = {"frozen": True, "extra": "forbid"}

    @classmethod
    def no_limit(cls) -> TrimPolicy:
        """Policy that never trims."""
        return cls()

    @property
    def enabled(self) -> bool:
        return self.upper is not None or self.lower is not None

    def describe(self) -> str:
        if not self.enabled:
            return "no limit"
        lo = "0" if self.lower is None else f"{self.lower:g}"
        hi = "inf" if self.upper is None else f"{self.upper:g}"
        return f"[{lo}, {hi}]x mean"

    def apply(self, weights: np.ndarray) -> np.ndarray:
        """Trim weights to the bounds and renormalise to mean 1.

        Clipping and renormalising interact (clipping the top lowers the
        mean, rescaling pushes weights back over the cap), so instead of
        alternating the two we solve for the scale ``s`` with
        ``mean(clip(s * w, lower, upper)) == 1``. The left side is
        continuous and non-decreasing in ``s``, so a bracketing root
        finder gets it exactly.

        Returns:
            New array with mean 1 and every weight inside the bounds.
        """
        w = np.asarray(weights, dtype=float)
        w = w / w.mean()

        if not self.enabled:
            return w

        lo = 0.0 if self.lower is None else self.lower
        hi = np.inf if self.upper is None else self.upper

        if w.min() >= lo and w.max() <= hi:
            return w

        def excess(scale: float) -> float:
            return float(np.clip(scale * w, lo, hi).mean() - 1.0)

        # At s=0 every weight sits at lo (< 1); at s_max every weight is
        # at least 2 * max(hi, 1), so the clipped mean is above 1.
        bound = 1.0 if np.isinf(hi) else hi
        s_max = 2.0 * max(bound, 1.0) / w.min()
        scale = brentq(excess, 0.0, s_max, xtol=1e-15, maxiter=500)

        trimmed = np.clip(scale * w, lo, hi)
        return trimmed / trimmed.mean()


class RakingConfig(BaseModel):
    """Settings for one raking run.

    Examples:
        >>> RakingConfig(max_iterations=100).tolerance
        0.0005
    """

    tolerance: float = Field(default=DEFAULT_TOLERANCE, gt=0.0)
    max_iterations: int = Field(default=DEFAULT_MAX_ITERATIONS, ge=0)
    trim: TrimPolicy = Field(default_factory=TrimPolicy)
    raise_on_nonconvergence: bool = False
    match_decimals: int = Field(default=DEFAULT_MATCH_DECIMALS, ge=0)

    model_config = {"frozen": True, "extra": "forbid"}

    def with_overrides(self, **overrides) -> RakingConfig:
        """Validated copy with some fields replaced."""
        if not overrides:
            return self
        data = self.model_dump()
        data.update(overrides)
        return RakingConfig(**data)

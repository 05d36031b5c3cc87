"""
microrake: survey weighting by raking (iterative proportional fitting).

Adjusts respondent weights so the weighted sample matches known
population proportions on several demographic variables at once:
- Validated target proportions per variable
- Respondent data with explicit categorical variables
- Raking with convergence tracking and optional weight trimming
- Diagnostics: weighted vs. target shares, design effect, effective N

Example:
    >>> from microrake import RakingEngine, RespondentDataset, diagnose
    >>> targets = {
    ...     "gender": {"female": 0.51, "male": 0.49},
    ...     "education": {"hs_or_less": 0.38, "some_college": 0.28, "ba_plus": 0.34},
    ... }
    >>> dataset = RespondentDataset(survey, targets, id_col="id")
    >>> result = RakingEngine().rake(dataset)
    >>> print(diagnose(dataset, result=result).summary())
"""

from microrake.errors import (
    RakingError,
    MalformedTargetError,
    UnknownCategoryError,
    DegenerateTargetError,
    NonConvergenceError,
    InvariantViolationError,
    NonConvergenceWarning,
)
from microrake.targets import TargetSpecification
from microrake.dataset import Respondent, RespondentDataset
from microrake.config import (
    RakingConfig,
    TrimPolicy,
    DEFAULT_TOLERANCE,
    DEFAULT_MAX_ITERATIONS,
)
from microrake.engine import RakingEngine, RakingState, RakeResult, rake
from microrake.diagnostics import (
    DiagnosticsReport,
    diagnose,
    design_effect,
    effective_sample_size,
)
from microrake.io import load_targets, save_targets, load_respondents
from microrake.data import EXAMPLE_TARGETS, create_sample_survey

__version__ = "0.1.0"

__all__ = [
    # Errors
    "RakingError",
    "MalformedTargetError",
    "UnknownCategoryError",
    "DegenerateTargetError",
    "NonConvergenceError",
    "InvariantViolationError",
    "NonConvergenceWarning",
    # Inputs
    "TargetSpecification",
    "Respondent",
    "RespondentDataset",
    # Configuration
    "RakingConfig",
    "TrimPolicy",
    "DEFAULT_TOLERANCE",
    "DEFAULT_MAX_ITERATIONS",
    # Engine
    "RakingEngine",
    "RakingState",
    "RakeResult",
    "rake",
    # Diagnostics
    "DiagnosticsReport",
    "diagnose",
    "design_effect",
    "effective_sample_size",
    # I/O
    "load_targets",
    "save_targets",
    "load_respondents",
    # Sample data
    "EXAMPLE_TARGETS",
    "create_sample_survey",
]

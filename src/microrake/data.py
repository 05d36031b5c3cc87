"""
Sample survey data for examples and tests.

Example:
    >>> from microrake.data import EXAMPLE_TARGETS, create_sample_survey
    >>> survey = create_sample_survey(n=2000)
    >>> from microrake import rake
    >>> weighted = rake(survey, EXAMPLE_TARGETS)
"""

from typing import Dict

import numpy as np
import pandas as pd


# Illustrative U.S. adult population margins (rounded ACS-style shares)
EXAMPLE_TARGETS: Dict[str, Dict[str, float]] = {
    "gender": {"female": 0.51, "male": 0.49},
    "race": {"white": 0.72, "black": 0.13, "asian": 0.06, "other": 0.09},
    "hispanic": {"hispanic": 0.17, "not_hispanic": 0.83},
    "education": {
        "less_than_hs": 0.11,
        "hs_grad": 0.27,
        "some_college": 0.29,
        "ba_plus": 0.33,
    },
}

# Opt-in panel skew: more women, fewer Hispanic and non-college respondents
_SAMPLE_SHARES: Dict[str, Dict[str, float]] = {
    "gender": {"female": 0.58, "male": 0.42},
    "race": {"white": 0.78, "black": 0.08, "asian": 0.09, "other": 0.05},
    "hispanic": {"hispanic": 0.10, "not_hispanic": 0.90},
    "education": {
        "less_than_hs": 0.05,
        "hs_grad": 0.20,
        "some_college": 0.30,
        "ba_plus": 0.45,
    },
}


def create_sample_survey(n: int = 1000, seed: int = 42) -> pd.DataFrame:
    """
    Create a synthetic survey whose demographics are skewed away from
    ``EXAMPLE_TARGETS``.

    Args:
        n: Number of respondents
        seed: Random seed for reproducibility

    Returns:
        DataFrame with columns id, gender, race, hispanic, education
    """
    rng = np.random.default_rng(seed)

    columns = {"id": np.arange(1, n + 1)}
    for variable, shares in _SAMPLE_SHARES.items():
        columns[variable] = rng.choice(
            list(shares.keys()), size=n, p=list(shares.values())
        )

    return pd.DataFrame(columns)

"""
Raking a skewed survey to population margins.

Workflow:
1. Generate a synthetic opt-in survey that over-represents women and
   college graduates and under-represents Hispanic respondents
2. Rake to gender, race, hispanic and education margins
3. Compare weighted vs. target shares and the design effect
4. Repeat with weight trimming (cap 5x, floor 0.2x) and compare the
   efficiency / accuracy trade-off

Run with: python examples/raking_example.py
"""

import warnings

from microrake import (
    EXAMPLE_TARGETS,
    NonConvergenceWarning,
    RakingEngine,
    RespondentDataset,
    TrimPolicy,
    create_sample_survey,
    diagnose,
)


def run(survey, trim: TrimPolicy):
    dataset = RespondentDataset(survey, EXAMPLE_TARGETS)
    engine = RakingEngine(trim=trim, max_iterations=100)

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", NonConvergenceWarning)
        result = engine.rake(dataset)

    for w in caught:
        print(f"  warning: {w.message}")

    return result, diagnose(dataset, result=result)


def main():
    survey = create_sample_survey(n=2000, seed=42)
    print(f"Survey: {len(survey):,} respondents\n")

    print("=" * 60)
    print("No trimming")
    print("=" * 60)
    result, report = run(survey, TrimPolicy.no_limit())
    print(result.summary())
    print()
    print(report.summary())

    print()
    print("=" * 60)
    print("Trimmed to [0.2, 5]x mean")
    print("=" * 60)
    trimmed_result, trimmed_report = run(survey, TrimPolicy(upper=5.0, lower=0.2))
    print(trimmed_result.summary())

    print("\nComparison:")
    print(f"  {'':12s} {'deff':>8s} {'eff. N':>10s} {'max dev':>10s}")
    for label, res, rep in [
        ("untrimmed", result, report),
        ("trimmed", trimmed_result, trimmed_report),
    ]:
        print(
            f"  {label:12s} {rep.design_effect:8.3f} "
            f"{rep.effective_sample_size:10.1f} {res.final_state.max_deviation:10.6f}"
        )


if __name__ == "__main__":
    main()

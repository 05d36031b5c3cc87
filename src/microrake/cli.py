"""Command-line raking of a survey file to population targets.

Usage:
    microrake targets.yaml survey.csv -o weighted.csv
    microrake targets.csv survey.parquet --trim-upper 5 --trim-lower 0.2

Exit status is 0 when raking converges, 1 when it stops at the iteration
cap, and 2 when the inputs are invalid. With --strict, non-convergence
is reported on stderr and no output files are written.
"""

import argparse
import json
import sys
import warnings
from pathlib import Path
from typing import List, Optional

from microrake.config import (
    DEFAULT_MATCH_DECIMALS,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_TOLERANCE,
    RakingConfig,
    TrimPolicy,
)
from microrake.diagnostics import diagnose
from microrake.engine import RakingEngine
from microrake.errors import NonConvergenceError, NonConvergenceWarning, RakingError
from microrake.io import load_respondents, load_targets


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="microrake",
        description="Rake survey weights to population targets",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("targets", help="Target file (.yaml, .yml, .json or .csv)")
    parser.add_argument("respondents", help="Respondent file (.csv or .parquet)")
    parser.add_argument(
        "-o", "--output", default=None,
        help="Write respondents with raked weights to this CSV",
    )
    parser.add_argument("--id-col", default="id", help="Respondent id column (default: id)")
    parser.add_argument(
        "--weight-col", default=None,
        help="Column with starting weights (default: all 1.0)",
    )
    parser.add_argument(
        "--counts", action="store_true",
        help="Target values are population counts, not proportions",
    )
    parser.add_argument(
        "--tolerance", type=float, default=DEFAULT_TOLERANCE,
        help=f"Max absolute proportion deviation (default: {DEFAULT_TOLERANCE})",
    )
    parser.add_argument(
        "--max-iterations", type=int, default=DEFAULT_MAX_ITERATIONS,
        help=f"Iteration cap (default: {DEFAULT_MAX_ITERATIONS})",
    )
    parser.add_argument(
        "--trim-upper", type=float, default=None,
        help="Cap weights at this multiple of the mean (default: no limit)",
    )
    parser.add_argument(
        "--trim-lower", type=float, default=None,
        help="Floor weights at this fraction of the mean (default: no limit)",
    )
    parser.add_argument(
        "--decimals", type=int, default=DEFAULT_MATCH_DECIMALS,
        help=f"Rounding for target match flags (default: {DEFAULT_MATCH_DECIMALS})",
    )
    parser.add_argument(
        "--report", default=None,
        help="Write the diagnostics report as JSON to this path",
    )
    parser.add_argument(
        "--strict", action="store_true",
        help="Treat non-convergence as an error (no output files written)",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = RakingConfig(
            tolerance=args.tolerance,
            max_iterations=args.max_iterations,
            trim=TrimPolicy(upper=args.trim_upper, lower=args.trim_lower),
            match_decimals=args.decimals,
            raise_on_nonconvergence=args.strict,
        )
        targets = load_targets(args.targets, normalize=args.counts)
        dataset = load_respondents(
            args.respondents, targets, id_col=args.id_col, weight_col=args.weight_col
        )
    except (ValueError, FileNotFoundError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    print(f"Loaded {len(dataset):,} respondents, raking on: {', '.join(targets.variables)}")

    engine = RakingEngine(config)
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", NonConvergenceWarning)
            result = engine.rake(dataset)
    except NonConvergenceError as e:
        print()
        print(e.result.summary())
        print(f"error: {e}", file=sys.stderr)
        return 1
    except RakingError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    report = diagnose(dataset, result=result, decimals=config.match_decimals)

    print()
    print(result.summary())
    print()
    print(report.summary())

    if args.output:
        dataset.to_frame().to_csv(args.output, index=False)
        print(f"\nWrote {args.output}")

    if args.report:
        Path(args.report).write_text(json.dumps(report.to_dict(), indent=2, default=str))
        print(f"Wrote {args.report}")

    return 0 if result.converged else 1


if __name__ == "__main__":
    sys.exit(main())

"""
Tests for the microrake command line.
"""

import json

import pytest
import pandas as pd
import yaml

from microrake import EXAMPLE_TARGETS, create_sample_survey
from microrake.cli import build_parser, main


@pytest.fixture
def files(tmp_path):
    """Target and survey files on disk."""
    targets = tmp_path / "targets.yaml"
    targets.write_text(yaml.safe_dump(EXAMPLE_TARGETS, sort_keys=False))

    survey = tmp_path / "survey.csv"
    create_sample_survey(n=800, seed=5).to_csv(survey, index=False)

    return targets, survey


class TestParser:
    """Test argument parsing."""

    def test_defaults(self):
        """Defaults should mirror RakingConfig defaults."""
        args = build_parser().parse_args(["t.yaml", "s.csv"])

        assert args.tolerance == 0.0005
        assert args.max_iterations == 50
        assert args.trim_upper is None
        assert args.trim_lower is None
        assert args.id_col == "id"
        assert args.strict is False

    def test_strict_flag(self):
        """--strict should parse as a boolean switch."""
        args = build_parser().parse_args(["t.yaml", "s.csv", "--strict"])

        assert args.strict is True


class TestMain:
    """Test end-to-end runs."""

    def test_converged_run(self, files, tmp_path, capsys):
        """A converging run should exit 0 and print both summaries."""
        targets, survey = files
        out = tmp_path / "weighted.csv"

        code = main([str(targets), str(survey), "-o", str(out)])

        assert code == 0
        printed = capsys.readouterr().out
        assert "Loaded 800 respondents" in printed
        assert "Raking Result" in printed
        assert "Weighting Diagnostics" in printed

        weighted = pd.read_csv(out)
        assert "weight" in weighted.columns
        assert weighted["weight"].mean() == pytest.approx(1.0)

    def test_report_json(self, files, tmp_path):
        """--report should write diagnostics as JSON."""
        targets, survey = files
        report = tmp_path / "report.json"

        main([str(targets), str(survey), "--report", str(report)])

        data = json.loads(report.read_text())
        assert data["n"] == 800
        assert data["converged"] is True
        assert data["design_effect"] > 1.0

    def test_trimming_options(self, files, tmp_path):
        """Trim bounds should be applied to the written weights."""
        targets, survey = files
        out = tmp_path / "weighted.csv"

        code = main([
            str(targets), str(survey), "-o", str(out),
            "--trim-upper", "2.0", "--trim-lower", "0.5",
        ])

        assert code in (0, 1)
        weights = pd.read_csv(out)["weight"]
        assert weights.max() <= 2.0 + 1e-6
        assert weights.min() >= 0.5 - 1e-6

    def test_non_converged_exit_code(self, files, capsys):
        """Hitting the iteration cap should exit 1."""
        targets, survey = files

        code = main([str(targets), str(survey), "--max-iterations", "0"])

        assert code == 1
        assert "NOT converged" in capsys.readouterr().out

    def test_strict_non_converged(self, files, tmp_path, capsys):
        """--strict should report non-convergence as an error and write nothing."""
        targets, survey = files
        out = tmp_path / "weighted.csv"

        code = main([str(targets), str(survey), "-o", str(out), "--max-iterations", "0", "--strict"])

        assert code == 1
        captured = capsys.readouterr()
        assert "NOT converged" in captured.out
        assert "error" in captured.err
        assert not out.exists()

    def test_strict_converged(self, files):
        """--strict should not affect a converging run."""
        targets, survey = files

        assert main([str(targets), str(survey), "--strict"]) == 0

    def test_malformed_targets_exit_code(self, files, tmp_path, capsys):
        """Bad targets should exit 2 and name the variable."""
        _, survey = files
        bad = tmp_path / "bad.yaml"
        bad.write_text(yaml.safe_dump({"gender": {"female": 0.6, "male": 0.6}}))

        code = main([str(bad), str(survey)])

        assert code == 2
        assert "gender" in capsys.readouterr().err

    def test_missing_file_exit_code(self, files, tmp_path, capsys):
        """A missing respondent file should exit 2."""
        targets, _ = files

        code = main([str(targets), str(tmp_path / "missing.csv")])

        assert code == 2
        assert "missing.csv" in capsys.readouterr().err

    def test_invalid_trim_exit_code(self, files, capsys):
        """An invalid trim bound should exit 2."""
        targets, survey = files

        code = main([str(targets), str(survey), "--trim-upper", "0.5"])

        assert code == 2
        assert "error" in capsys.readouterr().err

    def test_counts_flag(self, tmp_path, files):
        """--counts should normalise population totals."""
        _, survey = files
        counts = tmp_path / "counts.yaml"
        counts.write_text(yaml.safe_dump({"gender": {"female": 510, "male": 490}}))

        code = main([str(counts), str(survey), "--counts"])

        assert code == 0

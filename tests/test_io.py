"""
Tests for loading targets and respondents from files.
"""

import json

import pytest
import numpy as np
import pandas as pd
import yaml

from microrake import EXAMPLE_TARGETS, TargetSpecification, create_sample_survey
from microrake.errors import MalformedTargetError, UnknownCategoryError
from microrake.io import load_respondents, load_targets, save_targets


class TestLoadTargets:
    """Test target file formats."""

    def test_yaml(self, tmp_path):
        """Nested YAML mapping should load."""
        path = tmp_path / "targets.yaml"
        path.write_text(yaml.safe_dump(EXAMPLE_TARGETS))

        targets = load_targets(path)

        assert targets == TargetSpecification(EXAMPLE_TARGETS)

    def test_json(self, tmp_path):
        """Nested JSON mapping should load."""
        path = tmp_path / "targets.json"
        path.write_text(json.dumps({"gender": {"female": 0.51, "male": 0.49}}))

        targets = load_targets(path)

        assert targets.lookup("gender", "male") == pytest.approx(0.49)

    def test_csv_proportions(self, tmp_path):
        """Long CSV with a proportion column should load."""
        path = tmp_path / "targets.csv"
        pd.DataFrame({
            "variable": ["gender", "gender", "hispanic", "hispanic"],
            "category": ["female", "male", "hispanic", "not_hispanic"],
            "proportion": [0.51, 0.49, 0.17, 0.83],
        }).to_csv(path, index=False)

        targets = load_targets(path)

        assert targets.variables == ("gender", "hispanic")
        assert targets.lookup("hispanic", "hispanic") == pytest.approx(0.17)

    def test_csv_counts(self, tmp_path):
        """Long CSV with population counts should normalise."""
        path = tmp_path / "counts.csv"
        pd.DataFrame({
            "variable": ["gender", "gender"],
            "category": ["female", "male"],
            "value": [130_050_000, 124_950_000],
        }).to_csv(path, index=False)

        targets = load_targets(path, normalize=True)

        assert targets.lookup("gender", "female") == pytest.approx(0.51)

    def test_yaml_counts(self, tmp_path):
        """YAML counts should normalise with normalize=True."""
        path = tmp_path / "counts.yml"
        path.write_text(yaml.safe_dump({"region": {"north": 300, "south": 700}}))

        targets = load_targets(path, normalize=True)

        assert targets.lookup("region", "south") == pytest.approx(0.7)

    def test_malformed_file_targets(self, tmp_path):
        """Targets that don't sum to 1 should still be rejected."""
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.safe_dump({"gender": {"female": 0.5, "male": 0.4}}))

        with pytest.raises(MalformedTargetError, match="gender"):
            load_targets(path)

    def test_not_a_mapping(self, tmp_path):
        """A YAML list is not a target specification."""
        path = tmp_path / "list.yaml"
        path.write_text(yaml.safe_dump([0.5, 0.5]))

        with pytest.raises(ValueError, match="mapping"):
            load_targets(path)

    def test_unsupported_extension(self, tmp_path):
        """Unknown file types should raise ValueError."""
        path = tmp_path / "targets.txt"
        path.write_text("gender: {}")

        with pytest.raises(ValueError, match="Unsupported"):
            load_targets(path)

    def test_missing_file(self, tmp_path):
        """Missing files should raise FileNotFoundError with the path."""
        with pytest.raises(FileNotFoundError, match="nope.yaml"):
            load_targets(tmp_path / "nope.yaml")


class TestSaveTargets:
    """Test writing targets."""

    @pytest.mark.parametrize("name", ["targets.yaml", "targets.json"])
    def test_round_trip(self, tmp_path, name):
        """Saved targets should load back equal."""
        path = save_targets(EXAMPLE_TARGETS, tmp_path / name)

        assert load_targets(path) == TargetSpecification(EXAMPLE_TARGETS)

    def test_unsupported_extension(self, tmp_path):
        """Only YAML and JSON can be written."""
        with pytest.raises(ValueError, match="Unsupported"):
            save_targets(EXAMPLE_TARGETS, tmp_path / "targets.csv")


class TestLoadRespondents:
    """Test respondent files."""

    def test_csv(self, tmp_path):
        """CSV respondents should load and validate."""
        path = tmp_path / "survey.csv"
        create_sample_survey(n=300).to_csv(path, index=False)

        dataset = load_respondents(path, EXAMPLE_TARGETS)

        assert len(dataset) == 300
        assert dataset.variables == tuple(EXAMPLE_TARGETS)

    def test_csv_weight_column(self, tmp_path):
        """A starting weight column should be read."""
        path = tmp_path / "survey.csv"
        survey = create_sample_survey(n=50)
        survey["base"] = np.linspace(1.0, 2.0, 50)
        survey.to_csv(path, index=False)

        dataset = load_respondents(path, EXAMPLE_TARGETS, weight_col="base")

        assert dataset.get_weight(1) == pytest.approx(1.0)
        assert dataset.get_weight(50) == pytest.approx(2.0)

    def test_csv_numeric_codes(self, tmp_path):
        """Numeric category codes should match numeric targets."""
        path = tmp_path / "coded.csv"
        pd.DataFrame({"id": [1, 2, 3, 4], "sex": [1, 2, 2, 1]}).to_csv(path, index=False)

        dataset = load_respondents(path, {"sex": {1: 0.49, 2: 0.51}})

        assert dataset.category_counts("sex")[1] == 2

    def test_csv_string_codes_kept_as_strings(self, tmp_path):
        """Digit-like labels with string targets should stay strings."""
        path = tmp_path / "coded.csv"
        pd.DataFrame({"id": [1, 2], "region": ["01", "02"]}).to_csv(path, index=False)

        dataset = load_respondents(path, {"region": {"01": 0.5, "02": 0.5}})

        assert dataset.category_counts("region")["01"] == 1

    def test_unknown_category_in_file(self, tmp_path):
        """A value with no target should raise with the respondent id."""
        path = tmp_path / "survey.csv"
        survey = create_sample_survey(n=20)
        survey.loc[4, "race"] = "martian"
        survey.to_csv(path, index=False)

        with pytest.raises(UnknownCategoryError, match="martian") as excinfo:
            load_respondents(path, EXAMPLE_TARGETS)

        assert excinfo.value.respondent_id == 5

    def test_parquet(self, tmp_path):
        """Parquet respondents should load."""
        pytest.importorskip("pyarrow")
        path = tmp_path / "survey.parquet"
        create_sample_survey(n=100).to_parquet(path, index=False)

        dataset = load_respondents(path, EXAMPLE_TARGETS)

        assert len(dataset) == 100

    def test_unsupported_extension(self, tmp_path):
        """Unknown respondent file types should raise."""
        path = tmp_path / "survey.xlsx"
        path.write_text("")

        with pytest.raises(ValueError, match="Unsupported"):
            load_respondents(path, EXAMPLE_TARGETS)

    def test_missing_file(self, tmp_path):
        """Missing respondent files should raise FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_respondents(tmp_path / "missing.csv", EXAMPLE_TARGETS)

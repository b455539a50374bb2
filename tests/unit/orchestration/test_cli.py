"""Tests for the command-line interface."""

import json

import pytest
from click.testing import CliRunner

from fhir_orchestration.cli import cli
from tests.conftest import PROFILE_URL


@pytest.fixture
def runner():
    """Click test runner."""
    return CliRunner()


@pytest.fixture
def bundle_file(tmp_path, valid_bundle):
    """Bundle written to a temporary file."""
    path = tmp_path / "bundle.json"
    path.write_text(json.dumps(valid_bundle), encoding="utf-8")
    return path


class TestValidateCommand:
    """Test the validate command."""

    def test_reports_results_as_json(self, runner, bundle_file):
        """Each file and engine pair gets a report entry."""
        result = runner.invoke(
            cli,
            [
                "validate",
                str(bundle_file),
                str(bundle_file),
                "--profile",
                PROFILE_URL,
                "--engine",
                "HL7-Official-Embedded",
            ],
        )

        assert result.exit_code == 0, result.output
        report = json.loads(result.stdout)
        assert len(report) == 2
        assert report[0]["file"] == str(bundle_file)
        assert report[0]["is_valid"] is True
        assert report[0]["profile_url"] == PROFILE_URL
        assert report[0]["issues"] == []

    def test_strategy_selects_engines(self, runner, bundle_file):
        """A strategy descriptor can be used instead of --engine."""
        result = runner.invoke(
            cli,
            [
                "validate",
                str(bundle_file),
                "-p",
                PROFILE_URL,
                "--strategy",
                '{"engines": ["HL7-Official-Embedded"]}',
            ],
        )

        assert result.exit_code == 0, result.output
        report = json.loads(result.stdout)
        assert [entry["observability"]["name"] for entry in report] == [
            "HL7 Official Embedded (reference baseline)"
        ]

    def test_empty_strategy_is_a_usage_error(self, runner, bundle_file):
        """At least one engine must be selected."""
        result = runner.invoke(
            cli,
            ["validate", str(bundle_file), "-p", PROFILE_URL, "--strategy", '{"engines": []}'],
        )

        assert result.exit_code == 2
        assert "No validation engine selected" in result.output

    def test_profile_is_required(self, runner, bundle_file):
        """The profile URL option is mandatory."""
        result = runner.invoke(cli, ["validate", str(bundle_file)])

        assert result.exit_code == 2

    def test_named_url_format(self, runner, bundle_file):
        """Reference resource options take NAME=URL."""
        result = runner.invoke(
            cli,
            [
                "validate",
                str(bundle_file),
                "-p",
                PROFILE_URL,
                "--engine",
                "HL7-Official-Embedded",
                "--code-system",
                "http://example.org/cs",
            ],
        )

        assert result.exit_code == 2
        assert "NAME=URL" in result.output

    def test_unknown_engine_is_rejected(self, runner, bundle_file):
        """Engine names are limited to the known identifiers."""
        result = runner.invoke(
            cli, ["validate", str(bundle_file), "-p", PROFILE_URL, "--engine", "BOGUS"]
        )

        assert result.exit_code == 2

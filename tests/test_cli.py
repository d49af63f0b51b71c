"""
Tests for the command-line interface.
"""

import json
import logging
import time

import pytest
import yaml
from click.testing import CliRunner

from csv_recon.cli import main
from csv_recon.services.collaborators import RuleBasedExplanationService

BANK_CSV = (
    "Date,Amount,Reference,Vendor\n"
    "2025-01-02,100.00,INV-001,Acme Corporation\n"
    "2025-01-03,250.50,INV-002,Globex\n"
    "2025-02-20,999.00,INV-099,Umbrella\n"
)

LEDGER_CSV = (
    "Posted,Value,Ref,Vendor\n"
    "01/03/2025,250.50,INV-002,Globex\n"
    "01/02/2025,100.00,INV-001,ACME Corp.\n"
    "01/09/2025,40.00,INV-050,Hooli\n"
)

RULES_YAML = {
    "matching": {
        "rules": [
            {
                "column_a": "Amount",
                "column_b": "Value",
                "match_type": "tolerance_numeric",
                "tolerance_numeric_mode": "fixed",
                "tolerance_value": 0.01,
                "weight": 0.5,
            },
            {
                "column_a": "Date",
                "column_b": "Posted",
                "match_type": "tolerance_date",
                "tolerance_value": 3,
                "weight": 0.2,
            },
            {"column_a": "Reference", "column_b": "Ref", "match_type": "exact", "weight": 0.3},
        ]
    },
    "logging": {"level": "WARNING"},
}


@pytest.fixture
def runner():
    yield CliRunner()
    # setup_logging binds handlers to the runner's temporary streams
    logging.getLogger("csv_recon").handlers = []


@pytest.fixture
def files(write_csv, tmp_path):
    bank = write_csv("bank.csv", BANK_CSV)
    ledger = write_csv("ledger.csv", LEDGER_CSV)
    config = tmp_path / "recon.yaml"
    config.write_text(yaml.dump(RULES_YAML))
    return bank, ledger, config


class TestReconcileCommand:
    """Tests for `reconcile`."""

    def test_dry_run(self, runner, files):
        bank, ledger, config = files

        result = runner.invoke(main, ["reconcile", str(bank), str(ledger), "-c", str(config), "--dry-run"])

        assert result.exit_code == 0, result.output
        assert "Reconciliation Summary" in result.output
        assert "Dry run" in result.output

    def test_json_output(self, runner, files, tmp_path):
        bank, ledger, config = files
        out = tmp_path / "out" / "result.json"

        result = runner.invoke(
            main, ["reconcile", str(bank), str(ledger), "-c", str(config), "--json", str(out)]
        )

        assert result.exit_code == 0, result.output
        body = json.loads(out.read_text())
        assert body["stats"]["matchedCount"] == 2
        assert [t["rowIndex"] for t in body["unmatchedA"]] == [2]
        assert "hints" in body
        assert "anomalyReport" in body

    def test_excel_output_and_explanations(self, runner, files, tmp_path):
        bank, ledger, config = files
        report = tmp_path / "report.xlsx"

        result = runner.invoke(
            main,
            ["reconcile", str(bank), str(ledger), "-c", str(config), "-o", str(report), "--explain", "2"],
        )

        assert result.exit_code == 0, result.output
        assert report.exists()
        assert "Unmatched Explanations" in result.output

    def test_invalid_rule_exits_with_error(self, runner, files, tmp_path):
        bank, ledger, _ = files
        bad = tmp_path / "bad.yaml"
        bad.write_text(
            yaml.dump({"matching": {"rules": [{"column_a": "Nope", "column_b": "Ref", "match_type": "exact"}]}})
        )

        result = runner.invoke(main, ["reconcile", str(bank), str(ledger), "-c", str(bad), "--dry-run"])

        assert result.exit_code == 1
        assert "Nope" in result.output


class TestOtherCommands:
    """Tests for the helper commands."""

    def test_validate_config_ok(self, runner, files):
        bank, ledger, config = files
        result = runner.invoke(main, ["validate-config", str(bank), str(ledger), "-c", str(config)])
        assert result.exit_code == 0, result.output
        assert "Configuration is valid" in result.output

    def test_validate_config_reports_issues(self, runner, files):
        # Default rules reference a "Reference" column the ledger lacks
        bank, ledger, _ = files
        result = runner.invoke(main, ["validate-config", str(bank), str(ledger)])
        assert result.exit_code == 1
        assert "column_b" in result.output

    def test_suggest_normalizations(self, runner, files):
        bank, ledger, config = files
        result = runner.invoke(
            main, ["suggest-normalizations", str(bank), str(ledger), "--column", "Vendor"]
        )
        assert result.exit_code == 0, result.output
        assert "ACME Corp." in result.output

    def test_scan_quality(self, runner, files):
        bank, ledger, _ = files
        result = runner.invoke(main, ["scan-quality", str(bank), str(ledger)])
        assert result.exit_code == 0, result.output
        assert "Total issues" in result.output

    def test_init_config(self, runner, tmp_path):
        output = tmp_path / "generated.yaml"
        result = runner.invoke(main, ["init-config", "-o", str(output)])
        assert result.exit_code == 0, result.output
        assert output.exists()


class TestExplanationFailures:
    """Explanation errors must not discard a finished run."""

    @pytest.fixture
    def slow_config(self, tmp_path):
        config = tmp_path / "slow.yaml"
        config.write_text(yaml.dump(dict(RULES_YAML, service={"explanation_timeout_seconds": 0.05})))
        return config

    def test_timeout_still_writes_outputs(self, runner, files, slow_config, tmp_path, monkeypatch):
        bank, ledger, _ = files

        def slow_explain(self, request):
            time.sleep(0.5)

        monkeypatch.setattr(RuleBasedExplanationService, "explain", slow_explain)
        report = tmp_path / "out.xlsx"
        out = tmp_path / "out.json"

        result = runner.invoke(
            main,
            [
                "reconcile", str(bank), str(ledger), "-c", str(slow_config),
                "-o", str(report), "--json", str(out), "--explain", "1",
            ],
        )

        assert result.exit_code == 0, result.output
        assert "Timed out" in result.output
        assert report.exists()
        assert json.loads(out.read_text())["stats"]["matchedCount"] == 2

    def test_failing_explainer_is_reported_per_record(self, runner, files, tmp_path, monkeypatch):
        bank, ledger, config = files

        def broken_explain(self, request):
            raise RuntimeError("model offline")

        monkeypatch.setattr(RuleBasedExplanationService, "explain", broken_explain)
        out = tmp_path / "out.json"

        result = runner.invoke(
            main,
            ["reconcile", str(bank), str(ledger), "-c", str(config), "--json", str(out), "--explain", "2"],
        )

        assert result.exit_code == 0, result.output
        assert "Failed" in result.output
        assert out.exists()


class TestRuleTemplateOption:
    """Tests for `reconcile --template`."""

    def test_template_replaces_rules(self, runner, files, tmp_path):
        bank, ledger, _ = files
        out = tmp_path / "out.json"

        result = runner.invoke(
            main, ["reconcile", str(bank), str(ledger), "-t", "ap-bank", "--json", str(out)]
        )

        assert result.exit_code == 0, result.output
        body = json.loads(out.read_text())
        assert body["config"]["minConfidenceThreshold"] == 0.6
        assert [(r["columnA"], r["columnB"]) for r in body["config"]["rules"]] == [
            ("Amount", "Value"),
            ("Date", "Posted"),
            ("Reference", "Ref"),
        ]
        assert body["stats"]["matchedCount"] == 2

    def test_unknown_template_is_rejected(self, runner, files):
        bank, ledger, _ = files
        result = runner.invoke(main, ["reconcile", str(bank), str(ledger), "-t", "nope"])
        assert result.exit_code == 2

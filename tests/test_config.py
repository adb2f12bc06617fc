"""Tests for configuration parsing and the command-line entry point."""

import json

import pytest

from invad.config import (
    DEFAULT_PRIVILEGED_GROUPS, InvadConfig, InventoryConfig, OutputConfig, ReportFormat, ReportScope,
)
from invad.main import build_config, build_parser, main


class TestReportFormat:
    def test_comma_list(self):
        assert ReportFormat.parse_list("xlsx, html,xlsx") == (ReportFormat.XLSX, ReportFormat.HTML)

    def test_both(self):
        assert ReportFormat.parse_list("both") == (ReportFormat.HTML, ReportFormat.XLSX)

    def test_enum_values(self):
        assert ReportFormat.parse_list([ReportFormat.CSV, "html"]) == (ReportFormat.CSV, ReportFormat.HTML)

    def test_unknown_format(self):
        with pytest.raises(ValueError):
            ReportFormat.parse_list("pdf")


class TestInventoryConfig:
    def test_defaults(self):
        config = InventoryConfig()
        assert config.privileged_groups == DEFAULT_PRIVILEGED_GROUPS
        assert config.stale_after_days == 90
        assert config.max_membership_depth == 10

    def test_lists_frozen(self):
        assert InventoryConfig(privileged_groups=["A", "B"]).privileged_groups == ("A", "B")

    def test_depth_must_be_positive(self):
        with pytest.raises(ValueError):
            InventoryConfig(max_membership_depth=0)

    def test_round_trip(self, tmp_path):
        config = InvadConfig.from_dict({
            "inventory": {"privileged_groups": ["Tier0"], "stale_after_days": 30},
            "output": {"output_dir": str(tmp_path)},
            "run": {"formats": "html,csv", "scope": "domain"},
        })
        data = config.to_dict()

        assert data["inventory"]["privileged_groups"] == ("Tier0",)
        assert data["run"]["formats"] == ["html", "csv"]
        assert data["run"]["scope"] == "domain"
        assert config.run.scope is ReportScope.DOMAIN


class TestCommandLine:
    def test_flags_override_config_file(self, tmp_path):
        config_file = tmp_path / "invad.json"
        config_file.write_text(json.dumps({
            "inventory": {"privileged_groups": ["From File"], "stale_after_days": 30},
        }), encoding="utf-8")

        args = build_parser().parse_args([
            "--load", "-o", str(tmp_path), "--config", str(config_file),
            "--stale-days", "45", "-f", "xlsx,csv", "--only-domain", "corp.local",
        ])
        config = build_config(args)

        assert config.inventory.privileged_groups == ("From File",)
        assert config.inventory.stale_after_days == 45
        assert config.run.formats == (ReportFormat.XLSX, ReportFormat.CSV)
        assert config.run.domains == ("corp.local",)
        assert isinstance(config.output, OutputConfig)

    def test_config_file_sections_used_when_flags_absent(self, tmp_path):
        config_file = tmp_path / "invad.json"
        config_file.write_text(json.dumps({
            "ldap": {"page_size": 250},
            "output": {"output_dir": str(tmp_path / "reports"), "name_prefix": "nightly"},
            "run": {"formats": "csv", "scope": "forest", "load_dataset": True, "max_workers": 2},
        }), encoding="utf-8")

        config = build_config(build_parser().parse_args(["--config", str(config_file)]))

        assert config.ldap.page_size == 250
        assert config.output.output_dir == str(tmp_path / "reports")
        assert config.output.name_prefix == "nightly"
        assert config.run.formats == (ReportFormat.CSV,)
        assert config.run.scope is ReportScope.FOREST
        assert config.run.load_dataset is True
        assert config.run.max_workers == 2

    def test_flags_override_file_output_and_page_size(self, tmp_path):
        config_file = tmp_path / "invad.json"
        config_file.write_text(json.dumps({
            "ldap": {"page_size": 250},
            "output": {"output_dir": str(tmp_path / "reports"), "name_prefix": "nightly"},
        }), encoding="utf-8")

        args = build_parser().parse_args([
            "--config", str(config_file), "--page-size", "500", "-o", str(tmp_path / "cli"),
        ])
        config = build_config(args)

        assert config.ldap.page_size == 500
        assert config.output.output_dir == str(tmp_path / "cli")
        assert config.output.name_prefix == "nightly"

    def test_requires_server_or_load(self, tmp_path):
        with pytest.raises(SystemExit):
            main(["-o", str(tmp_path)])

    def test_load_with_nothing_saved_exits_cleanly(self, tmp_path, capsys):
        assert main(["--load", "-o", str(tmp_path), "--prefix", "t"]) == 0
        assert "Skipped" in capsys.readouterr().out

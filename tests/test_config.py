# tests/test_config.py
"""
Tests for analyzer settings and the message resources.
"""

import json

import pytest

from psrules import strings
from psrules.config import AnalyzerConfig, load_config
from psrules.diagnostics import DiagnosticSeverity
from psrules.errors import ConfigError


@pytest.fixture(autouse=True)
def _reset_culture():
    yield
    strings.set_culture(None)


class TestAnalyzerConfig:

    def test_defaults(self):
        config = AnalyzerConfig()
        assert config.include_rules == []
        assert config.severity_levels() == frozenset()
        assert config.validate() == []

    def test_from_dict(self):
        config = AnalyzerConfig.from_dict({
            "include_rules": ["PSUseCmdletCorrectly"],
            "severity": "Warning",
            "culture": "en-US",
        })
        assert config.severity == ["Warning"]
        assert config.severity_levels() == frozenset({DiagnosticSeverity.WARNING})

    @pytest.mark.parametrize("data", [
        ["not", "an", "object"],
        {"rules": []},
        {"include_rules": [1]},
        {"inventory": 5},
        {"severity": ["Catastrophic"]},
    ])
    def test_bad_settings(self, data):
        with pytest.raises(ConfigError):
            AnalyzerConfig.from_dict(data)

    def test_validate_warnings(self):
        config = AnalyzerConfig(
            include_rules=["PSA"],
            exclude_rules=["psa"],
            culture="xx-XX",
            inventory="/definitely/not/here.json",
        )
        warnings = config.validate()
        assert len(warnings) == 3

    def test_merge_overrides_win(self):
        base = AnalyzerConfig(include_rules=["PSA"], severity=["Error"])
        merged = base.merge(include_rules=None, severity=["Warning"], inventory="inv.json")
        assert merged.include_rules == ["PSA"]
        assert merged.severity == ["Warning"]
        assert merged.inventory == "inv.json"
        assert base.severity == ["Error"]

    def test_merge_unknown_key(self):
        with pytest.raises(ConfigError):
            AnalyzerConfig().merge(colour="red")


class TestLoadConfig:

    def test_relative_inventory(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"inventory": "inv.json"}), encoding="utf-8")
        config = load_config(path)
        assert config.inventory == str(tmp_path / "inv.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("{", encoding="utf-8")
        with pytest.raises(ConfigError, match="invalid JSON"):
            load_config(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(tmp_path / "none.json")


class TestStrings:

    def test_lookup(self):
        assert strings.get_string("SourceName") == "PS"

    def test_unknown_culture_falls_back(self):
        strings.set_culture("de-DE")
        assert strings.current_culture() == "de-DE"
        assert strings.get_string("UseCmdletCorrectlyCommonName") == "Use Cmdlet Correctly"

    def test_format(self):
        assert strings.format_string("UseCmdletCorrectlyError", "cp").startswith("Cmdlet 'cp'")

    def test_unknown_key(self):
        with pytest.raises(KeyError):
            strings.get_string("NoSuchKey")

    def test_available_cultures(self):
        assert "en-US" in strings.available_cultures()

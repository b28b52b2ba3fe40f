"""Unit tests for configuration and the rules file."""

import re

import pytest


class TestSettings:
    """Tests for MonitorSettings."""

    def test_defaults(self, monkeypatch):
        """Test the documented defaults."""
        from cti_monitor.config import MonitorSettings, RetentionBasis

        for name in ("CTI_WORKERS", "CTI_PUBLISHER_MAX_ATTEMPTS", "CTI_RETENTION_RETENTION_WINDOW_SECONDS"):
            monkeypatch.delenv(name, raising=False)

        settings = MonitorSettings(_env_file=None)

        assert settings.workers == 5
        assert settings.publisher.max_attempts == 3
        assert settings.publisher.retry_base_delay_seconds == 1.0
        assert settings.publisher.heartbeat_interval_seconds == 30.0
        assert settings.publisher.call_id_attribute == "source_call_id"
        assert settings.retention.retention_window_seconds == 3600
        assert settings.retention.sweep_interval_seconds == 900
        assert settings.retention.measure_from == RetentionBasis.STARTED_AT
        assert settings.discovery.sample_length == 500

    def test_environment_overrides(self, monkeypatch):
        """Test group settings are read from prefixed variables."""
        from cti_monitor.config import MonitorSettings

        monkeypatch.setenv("CTI_WORKERS", "8")
        monkeypatch.setenv("CTI_PUBLISHER_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("CTI_PUBLISHER_ENDPOINT_URL", "https://contacts.example.com/events")
        monkeypatch.setenv("CTI_RETENTION_MEASURE_FROM", "last_updated")

        settings = MonitorSettings(_env_file=None)

        assert settings.workers == 8
        assert settings.publisher.max_attempts == 5
        assert settings.publisher.endpoint_url == "https://contacts.example.com/events"
        assert settings.retention.measure_from.value == "last_updated"

    def test_invalid_log_level(self):
        """Test log level validation."""
        from pydantic import ValidationError

        from cti_monitor.config import MonitorSettings

        with pytest.raises(ValidationError):
            MonitorSettings(log_level="chatty", _env_file=None)

    def test_log_format_normalized(self):
        """Test log format is lower-cased."""
        from cti_monitor.config import MonitorSettings

        assert MonitorSettings(log_format="JSON", _env_file=None).log_format == "json"


class TestRulesFile:
    """Tests for the YAML rules file."""

    def test_load(self, tmp_path):
        """Test a rules file is parsed into a mapping."""
        from cti_monitor.config import load_rules_file

        path = tmp_path / "rules.yaml"
        path.write_text(
            "categories:\n"
            "  - category: ringing\n"
            "    keywords: [offered]\n"
            "correlation_markers: [sessionid]\n"
        )

        rules = load_rules_file(path)

        assert rules["categories"][0]["keywords"] == ["offered"]
        assert rules["correlation_markers"] == ["sessionid"]

    def test_empty_file(self, tmp_path):
        """Test an empty file yields no overrides."""
        from cti_monitor.config import load_rules_file

        path = tmp_path / "rules.yaml"
        path.write_text("")

        assert load_rules_file(path) == {}

    def test_missing_file(self, tmp_path):
        """Test a missing file is a configuration error."""
        from cti_monitor.config import load_rules_file
        from cti_monitor.errors import ConfigurationError

        with pytest.raises(ConfigurationError):
            load_rules_file(tmp_path / "absent.yaml")

    def test_not_a_mapping(self, tmp_path):
        """Test a top-level list is rejected."""
        from cti_monitor.config import load_rules_file
        from cti_monitor.errors import ConfigurationError

        path = tmp_path / "rules.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigurationError):
            load_rules_file(path)

    def test_extraction_rules_from_config(self):
        """Test extraction rules keep file order and flags."""
        from cti_monitor.discovery import first_match, rules_from_config

        rules = rules_from_config(
            [
                {"name": "vendor_tag", "pattern": r"<vnd:(\w+)>"},
                {"pattern": r"kind=(\w+)", "ignore_case": True},
            ],
            "event_type_rules",
        )

        assert [r.name for r in rules] == ["vendor_tag", "event_type_rules_1"]
        assert rules[1].pattern.flags & re.IGNORECASE
        assert first_match(rules, "KIND=Offered <vnd:Ring>").value == "Ring"

    @pytest.mark.parametrize(
        "entry",
        [{"name": "x"}, {"pattern": "no group"}, {"pattern": "(unclosed"}, "plain string"],
    )
    def test_invalid_extraction_rules(self, entry):
        """Test invalid rule entries are rejected."""
        from cti_monitor.discovery import rules_from_config
        from cti_monitor.errors import ConfigurationError

        with pytest.raises(ConfigurationError):
            rules_from_config([entry], "call_id_rules")

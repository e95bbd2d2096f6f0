"""Unit tests for calendarbot_engine.config_loader."""

import logging
from zoneinfo import ZoneInfo

import pytest

from calendarbot_engine.config_loader import TIMEZONE_ENV_VAR, CalendarConfig, load_config
from calendarbot_engine.models import DEFAULT_UID_NAMESPACE

pytestmark = pytest.mark.unit


class TestCalendarConfigFromDict:
    """Coercion of raw configuration mappings."""

    def test_from_dict_when_empty_then_defaults(self):
        cfg = CalendarConfig.from_dict(None)

        assert cfg == CalendarConfig()
        assert cfg.timezone == "UTC"
        assert cfg.uid_namespace == DEFAULT_UID_NAMESPACE
        assert cfg.max_occurrences == 1000
        assert cfg.legacy_second_precision is False

    def test_from_dict_when_values_then_applied(self, test_timezone):
        cfg = CalendarConfig.from_dict(
            {
                "timezone": test_timezone,
                "locale": "de",
                "first_day_of_week": 1,
                "uid_namespace": "example.org",
                "max_occurrences": "250",
                "legacy_second_precision": "yes",
                "log_level": "debug",
            }
        )

        assert cfg.tzinfo == ZoneInfo(test_timezone)
        assert cfg.locale == "de"
        assert cfg.first_day_of_week == 1
        assert cfg.uid_namespace == "example.org"
        assert cfg.max_occurrences == 250
        assert cfg.legacy_second_precision is True
        assert cfg.log_level == "DEBUG"

    def test_from_dict_when_unknown_timezone_then_utc_with_warning(self, caplog):
        with caplog.at_level(logging.WARNING):
            cfg = CalendarConfig.from_dict({"timezone": "Mars/Olympus_Mons"})

        assert cfg.timezone == "UTC"
        assert "Unknown timezone" in caplog.text

    @pytest.mark.parametrize(("raw", "expected"), [(-2, 0), (9, 6), ("x", 0)])
    def test_from_dict_first_day_of_week_coerced(self, raw, expected):
        assert CalendarConfig.from_dict({"first_day_of_week": raw}).first_day_of_week == expected

    @pytest.mark.parametrize(("raw", "expected"), [(0, 1), (-5, 1), (None, 1000)])
    def test_from_dict_max_occurrences_coerced(self, raw, expected):
        assert CalendarConfig.from_dict({"max_occurrences": raw}).max_occurrences == expected


class TestLoadConfig:
    """YAML loading and environment overrides."""

    def test_load_config_when_file_missing_then_defaults(self, tmp_path):
        assert load_config(str(tmp_path / "missing.yaml")) == CalendarConfig()

    def test_load_config_when_yaml_then_values(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("timezone: Europe/Berlin\nmax_occurrences: 50\nlegacy_second_precision: true\n")

        cfg = load_config(str(path))

        assert cfg.timezone == "Europe/Berlin"
        assert cfg.max_occurrences == 50
        assert cfg.legacy_second_precision is True

    def test_load_config_when_empty_file_then_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")

        assert load_config(str(path)) == CalendarConfig()

    def test_load_config_when_top_level_not_mapping_then_value_error(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- timezone\n- UTC\n")

        with pytest.raises(ValueError, match="mapping"):
            load_config(str(path))

    def test_load_config_when_env_timezone_then_overrides_file(self, tmp_path, monkeypatch, test_timezone):
        path = tmp_path / "config.yaml"
        path.write_text("timezone: Europe/Berlin\n")
        monkeypatch.setenv(TIMEZONE_ENV_VAR, test_timezone)

        assert load_config(str(path)).timezone == test_timezone

    def test_load_config_default_path_relative_to_cwd(self, tmp_path, monkeypatch):
        (tmp_path / "calendarbot_engine").mkdir()
        (tmp_path / "calendarbot_engine" / "config.yaml").write_text("locale: fr\n")
        monkeypatch.chdir(tmp_path)

        assert load_config().locale == "fr"

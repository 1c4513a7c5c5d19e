"""
Configuration Tests

Layering of defaults, YAML files, runtime overrides and CERTAUTH_* environment
variables.
"""

import pytest

from certauth.config import (
    ConfigError,
    ConfigManager,
    ConfigValidationError,
    ConfigValue,
    get_config,
    get_config_manager,
)


class TestConfigValue:

    def test_default(self):
        value = ConfigValue(default=3)
        assert value.get() == 3

    def test_env_overrides_set_value(self, monkeypatch):
        value = ConfigValue(default=3, env_var="CERTAUTH_TEST_VALUE")
        value.set(5)
        monkeypatch.setenv("CERTAUTH_TEST_VALUE", "9")
        assert value.get() == 9

    def test_bool_coercion(self, monkeypatch):
        value = ConfigValue(default=True, env_var="CERTAUTH_TEST_FLAG")
        monkeypatch.setenv("CERTAUTH_TEST_FLAG", "off")
        assert value.get() is False

    def test_string_input_coerced_on_set(self):
        value = ConfigValue(default=10)
        value.set("12")
        assert value.get() == 12

    def test_validator_rejects(self):
        value = ConfigValue(default=1, validator=lambda x: x > 0)
        with pytest.raises(ConfigValidationError):
            value.set(0)

    def test_uncoercible_env(self, monkeypatch):
        value = ConfigValue(default=1, env_var="CERTAUTH_TEST_VALUE")
        monkeypatch.setenv("CERTAUTH_TEST_VALUE", "many")
        with pytest.raises(ConfigValidationError):
            value.get()

    def test_change_callback(self):
        seen = []
        value = ConfigValue(default=1)
        value.on_change(lambda old, new: seen.append((old, new)))
        value.set(2)
        assert seen == [(None, 2)]


class TestConfigManager:

    def test_singleton(self):
        assert ConfigManager() is ConfigManager()
        assert get_config() is get_config_manager().config

    def test_defaults(self):
        cfg = get_config().to_dict()
        assert cfg["host"]["enforce_monotonic_clock"] is True
        assert cfg["registry"]["authority_id_max_length"] == 128
        assert cfg["observability"]["log_format"] == "json"

    def test_load_yaml_file(self, tmp_path):
        path = tmp_path / "certauth.yaml"
        path.write_text(
            "host:\n  audit_enabled: false\nregistry:\n  name_max_length: 64\n",
            encoding="utf-8",
        )

        mgr = get_config_manager()
        mgr.load_from_file(path)

        assert mgr.get("host.audit_enabled") is False
        assert mgr.get("registry.name_max_length") == 64

    def test_load_defaults_from_cwd(self, tmp_path):
        (tmp_path / "certauth.yaml").write_text("host:\n  genesis_height: 7\n", encoding="utf-8")

        mgr = get_config_manager()
        mgr.load_defaults()

        assert mgr.get("host.genesis_height") == 7

    def test_env_beats_file(self, tmp_path, monkeypatch):
        path = tmp_path / "certauth.yaml"
        path.write_text("host:\n  genesis_height: 7\n", encoding="utf-8")
        monkeypatch.setenv("CERTAUTH_GENESIS_HEIGHT", "11")

        mgr = get_config_manager()
        mgr.load_from_file(path)

        assert mgr.get("host.genesis_height") == 11

    def test_unknown_key_rejected(self, tmp_path):
        path = tmp_path / "certauth.yaml"
        path.write_text("host:\n  no_such_key: 1\n", encoding="utf-8")

        with pytest.raises(ConfigError):
            get_config_manager().load_from_file(path)

    def test_invalid_value_rejected(self, tmp_path):
        path = tmp_path / "certauth.yaml"
        path.write_text("observability:\n  log_level: loud\n", encoding="utf-8")

        with pytest.raises(ConfigValidationError):
            get_config_manager().load_from_file(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            get_config_manager().load_from_file(tmp_path / "nope.yaml")

    def test_set_and_get_paths(self):
        mgr = get_config_manager()
        mgr.set("host.check_invariants", False)

        assert mgr.get("host.check_invariants") is False
        assert mgr.get("host")["check_invariants"] is False
        with pytest.raises(ConfigError):
            mgr.set("host", 1)
        with pytest.raises(ConfigError):
            mgr.get("host.nothing")

    def test_validate_reports_bad_env(self, monkeypatch):
        monkeypatch.setenv("CERTAUTH_LOG_LEVEL", "loud")
        errors = get_config_manager().validate()
        assert any(e.startswith("observability.log_level") for e in errors)

    def test_watchers_notified(self):
        seen = []
        mgr = get_config_manager()
        mgr.watch(lambda cfg: seen.append(cfg.host.audit_enabled.get()))
        mgr.set("host.audit_enabled", False)
        assert seen == [False]

    def test_reload_picks_up_edits(self, tmp_path):
        path = tmp_path / "certauth.yaml"
        path.write_text("host:\n  genesis_height: 1\n", encoding="utf-8")
        mgr = get_config_manager()
        mgr.load_from_file(path)

        path.write_text("host:\n  genesis_height: 2\n", encoding="utf-8")
        mgr.reload()

        assert mgr.get("host.genesis_height") == 2

    def test_export_schema(self):
        schema = get_config_manager().export_schema()
        prop = schema["properties"]["host"]["enforce_monotonic_clock"]
        assert prop["type"] == "bool"
        assert prop["env_var"] == "CERTAUTH_ENFORCE_MONOTONIC_CLOCK"

    def test_to_yaml(self):
        assert "audit_enabled: true" in get_config().to_yaml()

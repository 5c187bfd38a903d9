"""Unit tests for configuration loading."""

import json

import pytest

from llm_relay.config import loader
from llm_relay.config.loader import ConfigError, config_from_dict, default_config, load_config
from llm_relay.config.models import DEFAULT_MODEL_SPECS, create_model_spec
from llm_relay.config.settings import ProviderSettings, RelayConfig


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """No config variables and no home config file unless a test adds them."""
    monkeypatch.delenv(loader.CONFIG_JSON_ENV_VAR, raising=False)
    monkeypatch.delenv(loader.CONFIG_FILE_ENV_VAR, raising=False)
    monkeypatch.setattr(loader, "DEFAULT_CONFIG_PATH", tmp_path / "missing" / "config.json")
    monkeypatch.setattr(loader, "load_dotenv", lambda: False)


class TestLoadConfig:

    def test_defaults(self):
        config = load_config()
        assert config == default_config()
        assert len(config.models) == len(DEFAULT_MODEL_SPECS)

    def test_explicit_path_wins(self, tmp_path, monkeypatch):
        path = tmp_path / "relay.json"
        path.write_text(json.dumps({"providers": {"openai": {"tokens_per_second": 5}}}))
        monkeypatch.setenv(loader.CONFIG_JSON_ENV_VAR, json.dumps({"providers": {}}))

        config = load_config(path)

        assert config.providers["openai"].tokens_per_second == 5

    def test_json_env_var(self, monkeypatch):
        monkeypatch.setenv(
            loader.CONFIG_JSON_ENV_VAR,
            json.dumps({"retry": {"per_candidate_retry_cap": 1}}),
        )
        assert load_config().retry.per_candidate_retry_cap == 1

    def test_file_env_var(self, tmp_path, monkeypatch):
        path = tmp_path / "relay.json"
        path.write_text(json.dumps({"health": {"window_size": 10}}))
        monkeypatch.setenv(loader.CONFIG_FILE_ENV_VAR, str(path))

        assert load_config().health.window_size == 10

    def test_home_config(self, tmp_path, monkeypatch):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"routing": {"cost_weight": 10}}))
        monkeypatch.setattr(loader, "DEFAULT_CONFIG_PATH", path)

        assert load_config().routing.cost_weight == 10

    def test_bad_json_env_var(self, monkeypatch):
        monkeypatch.setenv(loader.CONFIG_JSON_ENV_VAR, "{not json")
        with pytest.raises(ConfigError):
            load_config()

    def test_unreadable_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(tmp_path / "nope.json")

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "relay.json"
        path.write_text(json.dumps({"providers": {"openai": {"failure_threshold": 0}}}))
        with pytest.raises(ConfigError):
            load_config(path)


class TestConfigFromDict:

    def test_models_default_to_table(self):
        config = config_from_dict({})
        assert [s.key for s in config.models] == [s.key for s in DEFAULT_MODEL_SPECS]

    def test_explicit_models(self):
        config = config_from_dict({"models": [{
            "provider": "local", "model": "tiny", "capabilities": {"chat": 3}, "max_context": 4096,
        }]})
        assert [s.key for s in config.models] == ["local/tiny"]

    def test_unknown_keys_rejected(self):
        with pytest.raises(ConfigError):
            config_from_dict({"providerz": {}})

    def test_capability_score_range(self):
        with pytest.raises(ConfigError):
            config_from_dict({"models": [{
                "provider": "p", "model": "m", "capabilities": {"chat": 11}, "max_context": 10,
            }]})


class TestSettings:

    def test_provider_settings_fallback(self):
        config = RelayConfig(providers={"openai": ProviderSettings(tokens_per_second=3)})
        assert config.provider_settings("openai").tokens_per_second == 3
        assert config.provider_settings("unknown") == ProviderSettings()

    def test_create_model_spec_uses_family_defaults(self):
        spec = create_model_spec("claude", "claude-test", {"capabilities": {"chat": 5}})
        assert spec.provider == "anthropic"
        assert spec.max_context == 200000

    def test_unknown_family(self):
        with pytest.raises(ValueError):
            create_model_spec("palm", "x", {})

"""Tests for configuration loading."""

from pathlib import Path

import pytest

from careflow.config import (
    DEFAULT_BASE_URL,
    ClientConfig,
    _expand_env_vars,
    load_config,
)
from careflow.errors.exceptions import ConfigurationError

CONFIG_YAML = """
careflow:
  base_url: ${CLINIC_API:-http://localhost:5000/api/v1}
  timeout_seconds: 15
  credential_file: ~/.careflow/test-auth.json
  csrf:
    header: X-XSRF-Token
    token: meta-token
  retry:
    max_retries: 5
    base_delay: 0.5
    max_delay: 4
  logging:
    level: DEBUG
    format: json
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in (
        "CAREFLOW_BASE_URL",
        "CAREFLOW_TIMEOUT_SECONDS",
        "CAREFLOW_CREDENTIAL_FILE",
        "CAREFLOW_CSRF_TOKEN",
        "CAREFLOW_LOG_LEVEL",
        "CAREFLOW_LOG_FORMAT",
        "CLINIC_API",
    ):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "careflow.yaml"
    path.write_text(CONFIG_YAML)
    return path


class TestExpandEnvVars:
    def test_default_used_when_unset(self):
        assert _expand_env_vars("${NOPE_UNSET:-fallback}") == "fallback"

    def test_env_value_used(self, monkeypatch):
        monkeypatch.setenv("CLINIC_API", "https://api.clinic.test")
        assert _expand_env_vars({"a": ["${CLINIC_API}"]}) == {"a": ["https://api.clinic.test"]}

    def test_unset_without_default_kept(self):
        assert _expand_env_vars("${NOPE_UNSET}") == "${NOPE_UNSET}"

    def test_non_strings_untouched(self):
        assert _expand_env_vars({"n": 3, "b": True}) == {"n": 3, "b": True}


class TestLoadConfig:
    def test_defaults_without_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        config = load_config()

        assert config.base_url == DEFAULT_BASE_URL
        assert config.timeout_seconds == 30.0
        assert config.retry.max_retries == 3
        assert config.credential_file is None

    def test_yaml_file(self, config_file):
        config = load_config(config_file)

        assert config.base_url == "http://localhost:5000/api/v1"
        assert config.timeout_seconds == 15.0
        assert config.csrf_header == "X-XSRF-Token"
        assert config.csrf_token == "meta-token"
        assert config.retry.max_retries == 5
        assert config.retry.base_delay == 0.5
        assert config.log_level == "DEBUG"
        assert config.log_format == "json"
        assert config.credential_path == Path("~/.careflow/test-auth.json").expanduser()

    def test_yaml_env_expansion(self, config_file, monkeypatch):
        monkeypatch.setenv("CLINIC_API", "https://api.clinic.test/api/v1")
        assert load_config(config_file).base_url == "https://api.clinic.test/api/v1"

    def test_env_overrides_file(self, config_file, monkeypatch):
        monkeypatch.setenv("CAREFLOW_TIMEOUT_SECONDS", "45")
        monkeypatch.setenv("CAREFLOW_LOG_LEVEL", "WARNING")

        config = load_config(config_file)

        assert config.timeout_seconds == 45.0
        assert config.log_level == "WARNING"

    def test_overrides_win(self, config_file, monkeypatch):
        monkeypatch.setenv("CAREFLOW_BASE_URL", "http://env.test")

        config = load_config(config_file, {"base_url": "http://override.test"})

        assert config.base_url == "http://override.test"

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_missing_section(self, tmp_path):
        path = tmp_path / "careflow.yaml"
        path.write_text("other:\n  key: value\n")

        with pytest.raises(ConfigurationError, match="careflow"):
            load_config(path)

    def test_unknown_key_rejected(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        with pytest.raises(ConfigurationError):
            load_config(overrides={"bogus": 1})


class TestValidate:
    def test_valid_defaults(self):
        ClientConfig().validate()

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"base_url": "localhost:5000"},
            {"base_url": "ftp://files.test"},
            {"timeout_seconds": 0},
            {"log_format": "xml"},
        ],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(ConfigurationError):
            ClientConfig(**kwargs).validate()

    def test_bad_retry_delays(self):
        with pytest.raises(ConfigurationError):
            ClientConfig(retry={"base_delay": 5, "max_delay": 1}).validate()

    def test_retry_dict_coerced(self):
        config = ClientConfig(retry={"max_retries": "2"})
        assert config.retry.max_retries == 2

    def test_unsafe_cookies_from_string(self):
        assert ClientConfig(unsafe_cookies="true").unsafe_cookies is True

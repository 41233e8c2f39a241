"""Client configuration from YAML file and environment.

Loads from a YAML file with all settings under a ``careflow:`` section:

    careflow:
      base_url: ${CAREFLOW_BASE_URL:-http://localhost:5000/api/v1}
      timeout_seconds: 30
      refresh_path: /auth/refresh
      credential_file: ~/.careflow/auth.json
      csrf:
        header: X-CSRF-Token
        cookie: csrf-token
      retry:
        max_retries: 3
        base_delay: 1.0
        max_delay: 10.0
      logging:
        level: INFO
        format: console

Environment variables ARE supported using ${VAR_NAME} and
${VAR_NAME:-default} syntax in YAML files. CAREFLOW_* variables override the
file.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import yaml

from careflow.errors.exceptions import ConfigurationError
from careflow.resilience.retry import RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:5000/api/v1"
DEFAULT_CONFIG_FILE = Path("careflow.yaml")

# Environment variable -> config key
ENV_OVERRIDES = {
    "CAREFLOW_BASE_URL": "base_url",
    "CAREFLOW_TIMEOUT_SECONDS": "timeout_seconds",
    "CAREFLOW_CREDENTIAL_FILE": "credential_file",
    "CAREFLOW_CSRF_TOKEN": "csrf_token",
    "CAREFLOW_LOG_LEVEL": "log_level",
    "CAREFLOW_LOG_FORMAT": "log_format",
}


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file and return dict."""
    if not path.exists():
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR_NAME} and ${VAR_NAME:-default} in config data."""
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        pattern = r"\$\{([^}:]+)(?::-(([^}]*))?)?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else match.group(0)
            return os.getenv(var_name, default_value)

        return re.sub(pattern, replacer, data)
    else:
        return data


@dataclass
class ClientConfig:
    """HTTP client configuration.

    All timing values in seconds.
    """

    base_url: str = DEFAULT_BASE_URL
    timeout_seconds: float = 30.0
    refresh_path: str = "/auth/refresh"

    # CSRF: static token (e.g. from a page meta tag) and/or cookie name
    csrf_header: str = "X-CSRF-Token"
    csrf_cookie: str = "csrf-token"
    csrf_token: Optional[str] = None

    # Persist the credential between runs when set
    credential_file: Optional[str] = None

    # Accept cookies from IP-address hosts (e.g. http://127.0.0.1)
    unsafe_cookies: bool = False

    retry: RetryPolicy = field(default_factory=RetryPolicy)

    log_level: str = "INFO"
    log_format: str = "console"
    log_file: Optional[str] = None

    def __post_init__(self):
        """Ensure proper types from YAML/env vars."""
        self.timeout_seconds = float(self.timeout_seconds)
        if isinstance(self.unsafe_cookies, str):
            self.unsafe_cookies = self.unsafe_cookies.lower() in ("1", "true", "yes")
        if isinstance(self.retry, dict):
            self.retry = RetryPolicy(**self.retry)

    def validate(self) -> None:
        """Validate configuration.

        Raises:
            ConfigurationError: If any setting is invalid
        """
        parsed = urlparse(self.base_url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigurationError(
                f"base_url must be an absolute http(s) URL, got: {self.base_url!r}"
            )
        if self.timeout_seconds <= 0:
            raise ConfigurationError(
                f"timeout_seconds must be > 0, got: {self.timeout_seconds}"
            )
        if self.retry.max_retries < 0:
            raise ConfigurationError("retry.max_retries must be >= 0")
        if self.retry.base_delay < 0 or self.retry.max_delay < self.retry.base_delay:
            raise ConfigurationError(
                "retry delays must satisfy 0 <= base_delay <= max_delay"
            )
        if self.log_format not in ("console", "json"):
            raise ConfigurationError(
                f"log_format must be 'console' or 'json', got: {self.log_format!r}"
            )

    @property
    def credential_path(self) -> Optional[Path]:
        if not self.credential_file:
            return None
        return Path(self.credential_file).expanduser()


def _flatten(section: Dict[str, Any]) -> Dict[str, Any]:
    """Map the nested YAML layout onto ClientConfig field names."""
    flat: Dict[str, Any] = {}
    for key in (
        "base_url",
        "timeout_seconds",
        "refresh_path",
        "credential_file",
        "unsafe_cookies",
    ):
        if key in section:
            flat[key] = section[key]

    csrf = section.get("csrf") or {}
    for yaml_key, config_key in (
        ("header", "csrf_header"),
        ("cookie", "csrf_cookie"),
        ("token", "csrf_token"),
    ):
        if yaml_key in csrf:
            flat[config_key] = csrf[yaml_key]

    if section.get("retry"):
        flat["retry"] = dict(section["retry"])

    log_section = section.get("logging") or {}
    for yaml_key, config_key in (
        ("level", "log_level"),
        ("format", "log_format"),
        ("file", "log_file"),
    ):
        if yaml_key in log_section:
            flat[config_key] = log_section[yaml_key]

    return flat


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> ClientConfig:
    """Load client configuration.

    Priority (highest first): overrides, CAREFLOW_* environment variables,
    YAML file, defaults. Without an explicit config_path, ./careflow.yaml is
    used if present.

    Raises:
        FileNotFoundError: An explicit config_path does not exist
        ConfigurationError: The resulting configuration is invalid
    """
    if config_path is not None:
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
    else:
        config_path = DEFAULT_CONFIG_FILE

    yaml_data = _expand_env_vars(load_yaml(config_path))
    if yaml_data:
        logger.info("Loading configuration from file: %s", config_path)

    if yaml_data and "careflow" not in yaml_data:
        raise ConfigurationError(
            f"Invalid config file {config_path}: missing 'careflow:' section"
        )

    values = _flatten(yaml_data.get("careflow") or {})

    for env_var, key in ENV_OVERRIDES.items():
        env_value = os.getenv(env_var)
        if env_value:
            values[key] = env_value

    if overrides:
        logger.debug("Applying overrides: %s", list(overrides.keys()))
        values.update(overrides)

    try:
        config = ClientConfig(**values)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    config.validate()
    return config


__all__ = [
    "DEFAULT_BASE_URL",
    "ClientConfig",
    "load_config",
    "load_yaml",
]

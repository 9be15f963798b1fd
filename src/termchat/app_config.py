from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from termchat.errors import ConfigError
from termchat.llm_client import DEFAULT_API_URL

API_KEY_ENV_VAR = "DEEPSEEK_API_KEY"
MODEL_ENV_VAR = "CHATGPT_CLI_MODEL"
TIMEOUT_ENV_VAR = "CHATGPT_CLI_REQUEST_TIMEOUT_SECS"

DEFAULT_MODEL = "deepseek-chat"
DEFAULT_TIMEOUT_SECS = 120
DEFAULT_CHATLOG_DIR = "~/.chatgpt"


@dataclass
class RuntimeEnv:
    api_key: str
    api_key_env_var: str


@dataclass
class AppConfig:
    model: str
    request_timeout_secs: int
    api_url: str
    chatlog_dir: str
    show_spinner: bool
    log_level: str
    log_consumers: list | None


def load_json_config() -> dict:
    config_path = Path.cwd() / "config.json"
    if config_path.exists():
        try:
            with open(config_path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as ex:
            raise ConfigError(f"Cannot read {config_path}: {ex}") from ex
        if not isinstance(data, dict):
            raise ConfigError(f"{config_path} must contain a JSON object")
        return data
    return {}


def _to_bool(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return bool(value)


def _to_positive_int(value: object, default: int) -> int:
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def parse_app_config(config: dict, environ: dict[str, str] | None = None) -> AppConfig:
    """Merge config.json values with environment overrides. Environment wins."""
    env = os.environ if environ is None else environ
    model = env.get(MODEL_ENV_VAR) or config.get("Model", DEFAULT_MODEL)
    timeout = env.get(TIMEOUT_ENV_VAR) or config.get("RequestTimeoutSecs", DEFAULT_TIMEOUT_SECS)
    return AppConfig(
        model=str(model).strip() or DEFAULT_MODEL,
        request_timeout_secs=_to_positive_int(timeout, DEFAULT_TIMEOUT_SECS),
        api_url=str(config.get("ApiUrl", DEFAULT_API_URL)),
        chatlog_dir=str(config.get("ChatlogDir", DEFAULT_CHATLOG_DIR)),
        show_spinner=_to_bool(config.get("ShowSpinner", True), default=True),
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )


def resolve_runtime_env(environ: dict[str, str] | None = None) -> RuntimeEnv:
    env = os.environ if environ is None else environ
    api_key = env.get(API_KEY_ENV_VAR, "").strip()
    if not api_key:
        raise ConfigError(f"{API_KEY_ENV_VAR} environment variable is required.")
    return RuntimeEnv(api_key=api_key, api_key_env_var=API_KEY_ENV_VAR)

"""Engine configuration (LLM connection, retry policy, timeouts).

get_config() returns the in-code defaults, overlaid with the stored
{data_dir}/config.json, overlaid with environment variables. The .env file
is loaded by the launcher and the app factory, so values from it arrive here
as ordinary environment variables.

Environment overrides:
  TALEFORGE_API_KEY (falls back to DEEPSEEK_API_KEY)
  TALEFORGE_PROVIDER_URL
  TALEFORGE_PROVIDER_FORMAT
  TALEFORGE_MODEL
"""

from __future__ import annotations

import copy
import json
import os
from pathlib import Path
from typing import Any

_CONFIG_DEFAULTS: dict[str, Any] = {
    "llm": {
        "provider_url": "https://api.deepseek.com",
        "provider_format": "openai",
        "model": "deepseek-chat",
        "api_key": "",
        "timeout": 120.0,
    },
    "generation_timeout": 120.0,
    "max_attempts": 3,
}

_ENV_OVERRIDES = {
    "TALEFORGE_PROVIDER_URL": "provider_url",
    "TALEFORGE_PROVIDER_FORMAT": "provider_format",
    "TALEFORGE_MODEL": "model",
}


def _config_path(data_dir: Path) -> Path:
    return data_dir / "config.json"


def _read_stored(data_dir: Path) -> dict[str, Any]:
    path = _config_path(data_dir)
    if not path.is_file():
        return {}
    return json.loads(path.read_text())


def _merge(config: dict[str, Any], fields: dict[str, Any]) -> None:
    if isinstance(fields.get("llm"), dict):
        config["llm"].update(fields["llm"])
    for key in ("generation_timeout", "max_attempts"):
        if key in fields:
            config[key] = fields[key]


def get_config(data_dir: Path) -> dict[str, Any]:
    """Read config, returning defaults merged with stored values and env overrides."""
    config = copy.deepcopy(_CONFIG_DEFAULTS)
    _merge(config, _read_stored(data_dir))

    api_key = os.getenv("TALEFORGE_API_KEY") or os.getenv("DEEPSEEK_API_KEY")
    if api_key:
        config["llm"]["api_key"] = api_key
    for env_name, key in _ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            config["llm"][key] = value
    return config


def update_config(data_dir: Path, fields: dict[str, Any]) -> dict[str, Any]:
    """Merge fields into the stored config and persist. Returns the effective config.

    Only the stored file is changed; environment overrides still win on read.
    """
    stored = copy.deepcopy(_CONFIG_DEFAULTS)
    _merge(stored, _read_stored(data_dir))
    _merge(stored, fields)
    data_dir.mkdir(parents=True, exist_ok=True)
    _config_path(data_dir).write_text(json.dumps(stored, indent=2))
    return get_config(data_dir)


def masked(config: dict[str, Any]) -> dict[str, Any]:
    """Copy of config safe to return over HTTP: api key replaced by a set/unset marker."""
    result = copy.deepcopy(config)
    result["llm"]["api_key"] = "***" if config["llm"].get("api_key") else ""
    return result

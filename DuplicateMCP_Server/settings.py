"""Runtime settings for the duplication server (config file + environment overrides)."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional


_DEFAULT_HOST = "localhost"
_DEFAULT_PORT = 9877
_DEFAULT_HOLDING_AREA_START_BEATS = 40000.0
_DEFAULT_BRIDGE_DEVICE_NAME = "AbletonMCP Bridge"
_CACHE_BASE_DIR = os.path.expanduser("~/.ableton_mcp_duplicate/cache")
_CONFIG_PATH = os.path.expanduser("~/.ableton_mcp_duplicate/config.json")
_SILENCE_WAV_FILENAME = "silence.wav"


@dataclass(frozen=True)
class Settings:
    host: str = _DEFAULT_HOST
    port: int = _DEFAULT_PORT
    holding_area_start_beats: float = _DEFAULT_HOLDING_AREA_START_BEATS
    silence_wav_path: Optional[str] = None
    bridge_device_name: str = _DEFAULT_BRIDGE_DEVICE_NAME
    cache_dir: str = _CACHE_BASE_DIR


def _load_optional_config(config_path: str = _CONFIG_PATH) -> Dict[str, Any]:
    """Load optional JSON config payload from disk."""
    if not os.path.exists(config_path):
        return {}
    try:
        with open(config_path, "r", encoding="utf-8") as handle:
            payload = json.load(handle)
        if isinstance(payload, dict):
            return payload
    except (OSError, ValueError):
        return {}
    return {}


def _config_or_env(config_payload: Dict[str, Any], key: str, env_key: str, default: Any) -> Any:
    """Return environment override, config value, or default."""
    env_value = os.environ.get(env_key)
    if env_value is not None and str(env_value).strip():
        return env_value
    if isinstance(config_payload, dict) and key in config_payload:
        value = config_payload.get(key)
        if value is not None and (not isinstance(value, str) or value.strip()):
            return value
    return default


def load_settings(config_path: str = _CONFIG_PATH) -> Settings:
    """
    Resolve settings.

    Order per key:
    1) environment variable (ABLETON_MCP_*)
    2) config.json value
    3) built-in default
    """
    payload = _load_optional_config(config_path)

    host = str(_config_or_env(payload, "host", "ABLETON_MCP_HOST", _DEFAULT_HOST)).strip()

    try:
        port = int(_config_or_env(payload, "port", "ABLETON_MCP_PORT", _DEFAULT_PORT))
    except (TypeError, ValueError):
        port = _DEFAULT_PORT

    try:
        holding_area_start_beats = float(
            _config_or_env(
                payload,
                "holding_area_start_beats",
                "ABLETON_MCP_HOLDING_AREA_START_BEATS",
                _DEFAULT_HOLDING_AREA_START_BEATS,
            )
        )
    except (TypeError, ValueError):
        holding_area_start_beats = _DEFAULT_HOLDING_AREA_START_BEATS

    silence_wav_path = _config_or_env(payload, "silence_wav_path", "ABLETON_MCP_SILENCE_WAV", None)
    if isinstance(silence_wav_path, str):
        silence_wav_path = os.path.abspath(os.path.expanduser(silence_wav_path.strip()))

    bridge_device_name = str(
        _config_or_env(
            payload,
            "bridge_device_name",
            "ABLETON_MCP_BRIDGE_DEVICE_NAME",
            _DEFAULT_BRIDGE_DEVICE_NAME,
        )
    )

    cache_dir = os.path.abspath(
        os.path.expanduser(str(_config_or_env(payload, "cache_dir", "ABLETON_MCP_CACHE_DIR", _CACHE_BASE_DIR)))
    )

    return Settings(
        host=host or _DEFAULT_HOST,
        port=port,
        holding_area_start_beats=holding_area_start_beats,
        silence_wav_path=silence_wav_path,
        bridge_device_name=bridge_device_name,
        cache_dir=cache_dir,
    )


def default_silence_wav_path(settings: Settings) -> str:
    return os.path.join(settings.cache_dir, _SILENCE_WAV_FILENAME)

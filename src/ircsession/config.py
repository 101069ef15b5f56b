"""Configuration: YAML + env overlay, read once at session start."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from loguru import logger

from ircsession.errors import ConfigurationError
from ircsession.protocol import MAX_LINE_BYTES
from ircsession.state import Identity

# Env keys that override config values (env name -> dotted config path)
_ENV_OVERRIDES = {
    "IRC_SERVER": "server.host",
    "IRC_PORT": "server.port",
    "IRC_TLS": "server.tls",
    "IRC_NICK": "identity.nickname",
    "IRC_NICKSERV_PASSWORD": "nickserv_password",
}


def _deep_update(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_update(result[key], value)
        else:
            result[key] = value
    return result


def _parse_bool(val: Any) -> bool | None:
    """Parse a config/env value to bool; None if not a recognized bool."""
    if isinstance(val, bool):
        return val
    v = str(val).strip().lower()
    if v in ("1", "true", "yes", "on"):
        return True
    if v in ("0", "false", "no", "off"):
        return False
    return None


def _env_overrides() -> dict[str, Any]:
    """Nested dict of values taken from the environment."""
    data: dict[str, Any] = {}
    for env_key, path in _ENV_OVERRIDES.items():
        value = os.environ.get(env_key)
        if not value:
            continue
        node = data
        *parents, leaf = path.split(".")
        for part in parents:
            node = node.setdefault(part, {})
        node[leaf] = value
    return data


def load_config(path: str | Path) -> dict[str, Any]:
    """Load config from YAML file. Use SafeLoader. Returns raw dict."""
    path = Path(path)
    if not path.exists():
        logger.warning("Config file not found: {}", path)
        return {}

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        logger.error("Failed to parse config {}: {}", path, exc)
        raise ConfigurationError(
            f"invalid YAML in {path}", code="invalid_yaml", original_error=exc
        ) from exc
    if not isinstance(data, dict):
        logger.warning("Config file {} has invalid structure (expected dict)", path)
        return {}
    return data


def load_config_with_env(path: str | Path) -> dict[str, Any]:
    """Load config from YAML and overlay env-derived values.

    Loads .env via python-dotenv when present.
    """
    from dotenv import load_dotenv

    load_dotenv()
    return _deep_update(load_config(path), _env_overrides())


class Config:
    """Config accessor with attribute-style access for nested keys."""

    def __init__(self, data: dict[str, Any] | None = None, *, validate: bool = False) -> None:
        self._data = data or {}
        if validate:
            self.validate()

    def reload(self, data: dict[str, Any], *, validate: bool = True) -> None:
        """Replace config data."""
        self._data = data or {}
        if validate:
            self.validate()
        logger.debug("Config reloaded: {} channels", len(self.channels))

    def validate(self) -> None:
        """Raise ConfigurationError when the config cannot start a session."""
        if not self.server:
            raise ConfigurationError("server.host is required", code="missing_server")
        if not self.nickname:
            raise ConfigurationError("identity.nickname is required", code="missing_nickname")
        channels = self._data.get("channels")
        if channels is not None and not isinstance(channels, list):
            raise ConfigurationError(
                "channels must be a list",
                code="invalid_channels",
                details={"type": type(channels).__name__},
            )
        for i, channel in enumerate(self.channels):
            if not channel or " " in channel:
                raise ConfigurationError(
                    f"channels[{i}] is not a valid channel name",
                    code="invalid_channel",
                    details={"index": i, "value": channel},
                )
        try:
            self.port
            self.throttle_limit
            self.max_line_bytes
        except ValueError as exc:
            raise ConfigurationError(
                "port, throttle_limit and max_line_bytes must be integers",
                code="invalid_number",
                original_error=exc,
            ) from exc
        if _parse_bool(self.get("server.tls", True)) is None:
            raise ConfigurationError("server.tls must be a boolean", code="invalid_tls")

    @property
    def raw(self) -> dict[str, Any]:
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Get value by dot-separated path (e.g. 'server.host')."""
        parts = key.split(".")
        obj: Any = self._data
        for part in parts:
            if isinstance(obj, dict) and part in obj:
                obj = obj[part]
            else:
                return default
        return obj

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __contains__(self, key: str) -> bool:
        return key in self._data

    @property
    def server(self) -> str | None:
        return self.get("server.host")

    @property
    def port(self) -> int:
        return int(self.get("server.port", 6697))

    @property
    def tls(self) -> bool:
        return bool(_parse_bool(self.get("server.tls", True)))

    @property
    def nickname(self) -> str | None:
        return self.get("identity.nickname")

    @property
    def username(self) -> str:
        return str(self.get("identity.username") or self.nickname or "ircsession")

    @property
    def realname(self) -> str:
        return str(self.get("identity.realname") or self.nickname or "ircsession")

    @property
    def identity(self) -> Identity:
        return Identity(str(self.nickname), self.username, self.realname)

    @property
    def channels(self) -> list[str]:
        """Channels joined automatically after registration."""
        c = self._data.get("channels")
        return [str(x) for x in c] if isinstance(c, list) else []

    @property
    def nickserv_password(self) -> str | None:
        return self.get("nickserv_password") or None

    @property
    def throttle_limit(self) -> int:
        """Outgoing lines allowed per second burst."""
        return int(self.get("throttle_limit", 10))

    @property
    def max_line_bytes(self) -> int:
        return int(self.get("max_line_bytes", MAX_LINE_BYTES))

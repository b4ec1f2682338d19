"""Configuration helpers for the koor-cli command line."""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from koor_cli.client import DEFAULT_SERVER
from koor_cli.errors import KoorCLIError

DEFAULT_CONFIG_PATH = Path("settings.json")
SERVER_ENV_VAR = "KOOR_SERVER"
TOKEN_ENV_VAR = "KOOR_TOKEN"
SETTABLE_KEYS = ("server", "token")


class ConfigError(KoorCLIError):
    """Raised when the settings file cannot be used."""


@dataclass(frozen=True)
class CLIConfig:
    server: str = DEFAULT_SERVER
    token: str = ""
    server_source: str = "default"
    token_source: str = "default"
    config_path: str = str(DEFAULT_CONFIG_PATH)


def _config_path(path: str | Path | None) -> Path:
    return Path(path) if path else DEFAULT_CONFIG_PATH


def _load_json(path: Path) -> dict[str, Any]:
    raw = path.read_text(encoding="utf-8")
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"invalid JSON in {path}: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ConfigError(f"{path} must contain a JSON object")
    return parsed


def _string_setting(source: dict[str, Any], key: str) -> str:
    value = source.get(key)
    if not isinstance(value, str):
        return ""
    return value.strip()


def load_cli_config(path: str | Path | None = None) -> CLIConfig:
    config_path = _config_path(path)
    env_server = (os.getenv(SERVER_ENV_VAR) or "").strip()
    env_token = (os.getenv(TOKEN_ENV_VAR) or "").strip()
    stored: dict[str, Any] = {}
    if config_path.exists():
        try:
            stored = _load_json(config_path)
        except OSError as exc:
            raise ConfigError(f"cannot read {config_path}: {exc}") from exc
        except ConfigError:
            # The file cannot change the result when the environment sets both values.
            if not (env_server and env_token):
                raise

    server, server_source = DEFAULT_SERVER, "default"
    file_server = _string_setting(stored, "server")
    if env_server:
        server, server_source = env_server, "env"
    elif file_server:
        server, server_source = file_server, "file"

    token, token_source = "", "default"
    file_token = _string_setting(stored, "token")
    if env_token:
        token, token_source = env_token, "env"
    elif file_token:
        token, token_source = file_token, "file"

    return CLIConfig(
        server=server,
        token=token,
        server_source=server_source,
        token_source=token_source,
        config_path=str(config_path),
    )


def _read_for_update(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        return _load_json(path)
    except (ConfigError, OSError, UnicodeDecodeError):
        return {}


def _write_private_json(path: Path, payload: dict[str, Any]) -> None:
    directory = path.parent if str(path.parent) else Path(".")
    directory.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=directory, prefix=f".{path.name}.", suffix=".tmp")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(json.dumps(payload, indent=2) + "\n")
        if os.name == "posix":
            tmp_path.chmod(0o600)
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def save_cli_setting(path: str | Path | None, key: str, value: Any) -> Path:
    """Store one key in the settings file, keeping every other key as found."""
    config_path = _config_path(path)
    payload = _read_for_update(config_path)
    payload[key] = value
    try:
        _write_private_json(config_path, payload)
    except OSError as exc:
        raise ConfigError(f"failed to write config file: {config_path}: {exc}") from exc
    return config_path


__all__ = [
    "CLIConfig",
    "ConfigError",
    "DEFAULT_CONFIG_PATH",
    "SETTABLE_KEYS",
    "SERVER_ENV_VAR",
    "TOKEN_ENV_VAR",
    "load_cli_config",
    "save_cli_setting",
]

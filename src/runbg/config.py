from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import yaml

from runbg.models import ConfigError
from runbg.utils import env_default, env_flag

CONFIG_ENV_VAR = "RUNBG_CONFIG"
NO_COLOR_ENV_VAR = "NO_COLOR"
SETTINGS_ALLOWED_KEYS = {"user_scope", "tail_lines", "color", "assume_yes", "verbose"}


@dataclass(frozen=True)
class Settings:
    user_scope: bool = True
    tail_lines: int = 50
    color: bool = True
    assume_yes: bool = False
    verbose: bool = False
    source: Path | None = None

    def to_json(self) -> dict[str, Any]:
        return {
            "user_scope": self.user_scope,
            "tail_lines": self.tail_lines,
            "color": self.color,
            "assume_yes": self.assume_yes,
            "verbose": self.verbose,
            "source": str(self.source) if self.source else None,
        }


def default_config_path() -> Path:
    base = env_default("XDG_CONFIG_HOME", str(Path("~/.config").expanduser()))
    return Path(base).expanduser() / "runbg" / "config.yaml"


def _coerce_bool(value: Any, *, label: str) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"{label} must be a boolean")
    return value


def _coerce_positive_int(value: Any, *, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{label} must be an integer")
    if value < 1:
        raise ConfigError(f"{label} must be >= 1")
    return int(value)


def _parse_settings(raw: dict[str, Any], *, source: Path) -> Settings:
    unknown = sorted(set(raw) - SETTINGS_ALLOWED_KEYS)
    if unknown:
        raise ConfigError(f"Unknown config keys in {source}: {', '.join(unknown)}")
    settings = Settings(source=source)
    updates: dict[str, Any] = {}
    for key in ("user_scope", "color", "assume_yes", "verbose"):
        if raw.get(key) is not None:
            updates[key] = _coerce_bool(raw[key], label=key)
    if raw.get("tail_lines") is not None:
        updates["tail_lines"] = _coerce_positive_int(
            raw["tail_lines"], label="tail_lines"
        )
    return replace(settings, **updates)


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from YAML, falling back to defaults.

    An explicit ``path`` (or ``$RUNBG_CONFIG``) must exist; the default
    location is optional. ``NO_COLOR`` always wins over the file's ``color``.
    """
    explicit = path if path is not None else os.environ.get(CONFIG_ENV_VAR) or None
    resolved = (
        default_config_path() if explicit is None else Path(explicit).expanduser()
    ).resolve()

    if not resolved.exists():
        if explicit is not None:
            raise ConfigError(f"Config file not found: {resolved}")
        settings = Settings()
    else:
        try:
            loaded = yaml.safe_load(resolved.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {resolved}: {exc}") from exc
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ConfigError(f"Config file root must be a mapping: {resolved}")
        raw = {str(key): value for key, value in loaded.items()}
        settings = _parse_settings(raw, source=resolved)

    if env_flag(NO_COLOR_ENV_VAR):
        settings = replace(settings, color=False)
    return settings

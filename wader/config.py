"""Configuration file loading and merging for wader.

Reads TOML config from ~/.config/wader/config.toml (global) and
<base_dir>/wader.toml (project). Precedence: CLI > project > global > defaults.
"""

import argparse
import json
import os
import sys
import tomllib
from pathlib import Path
from typing import Any

from .errors import ConfigError

_UNSET = object()  # Sentinel for "not set by CLI"


# --- Schema ---

CONFIG_KEYS: dict[str, type | tuple[type, ...]] = {
    "model": str,
    "api_key": str,
    "base_url": str,
    "temperature": (int, float),
    "history_limit": int,
    "max_iterations": int,
    "data_dir": str,
    "command_timeout": int,
    "no_index": bool,
    "color": bool,
    "quiet": bool,
}

# Keys that `wader config NAME VALUE` may write to the global file.
SETTABLE_KEYS = ("model", "api_key", "base_url", "data_dir", "history_limit")

# Argparse dest -> hardcoded default
_ARGPARSE_DEFAULTS: dict[str, Any] = {
    "model": "o3-mini",
    "api_key": None,
    "base_url": None,
    "temperature": 0.6,
    "history_limit": 15,
    "max_iterations": 5,
    "data_dir": ".wader",
    "command_timeout": 60,
    "no_index": False,
    "color": False,
    "no_color": False,
    "quiet": False,
}

_POSITIVE_INT_KEYS = {"max_iterations", "command_timeout"}


# --- Internal helpers ---


def global_config_dir() -> Path:
    """Return the global config directory, respecting XDG_CONFIG_HOME."""
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "wader"
    return Path.home() / ".config" / "wader"


def global_config_path() -> Path:
    return global_config_dir() / "config.toml"


def _type_name(expected: type | tuple[type, ...]) -> str:
    if isinstance(expected, tuple):
        return " or ".join(t.__name__ for t in expected)
    return expected.__name__


def _validate_config(config: dict, source: str) -> None:
    """Validate value types in a parsed config dict.

    Raises ConfigError for type mismatches. Prints warnings for unknown keys.
    """
    for key, value in config.items():
        if key not in CONFIG_KEYS:
            print(f"warning: {source}: unknown config key {key!r}", file=sys.stderr)
            continue

        expected = CONFIG_KEYS[key]
        # bool is a subclass of int, reject it for non-bool fields explicitly.
        if isinstance(value, bool) and expected is not bool:
            raise ConfigError(
                f"{source}: {key!r} expected {_type_name(expected)}, got bool"
            )
        if not isinstance(value, expected):
            raise ConfigError(
                f"{source}: {key!r} expected {_type_name(expected)}, got {type(value).__name__}"
            )
        if key in _POSITIVE_INT_KEYS and value < 1:
            raise ConfigError(f"{source}: {key!r} must be at least 1")
        if key == "history_limit" and value < 0:
            raise ConfigError(f"{source}: 'history_limit' cannot be negative")


def _check_api_key_in_git(config: dict, config_path: Path) -> None:
    """Warn if api_key is set in a project config inside a git repo."""
    if "api_key" not in config:
        return
    parent = config_path.parent
    while parent != parent.parent:
        if (parent / ".git").exists():
            print(
                f"warning: {config_path}: 'api_key' in a git-tracked project config "
                f"may be committed accidentally. Consider using OPENAI_API_KEY.",
                file=sys.stderr,
            )
            return
        parent = parent.parent


def _load_single(path: Path, label: str) -> dict:
    """Load and validate a single TOML config file. Returns empty dict if missing."""
    if not path.is_file():
        return {}
    try:
        with open(path, "rb") as f:
            config = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"{label}: invalid TOML: {e}") from e

    _validate_config(config, label)
    return {k: v for k, v in config.items() if k in CONFIG_KEYS}


# --- Public API ---


def load_config(base_dir: Path) -> dict:
    """Load and merge global + project config.

    Returns a flat dict with only the keys actually set in config files.
    A relative ``data_dir`` from the project file is resolved against the
    project directory.
    """
    global_path = global_config_path()
    global_config = _load_single(global_path, str(global_path))

    project_path = Path(base_dir).resolve() / "wader.toml"
    project_config = _load_single(project_path, str(project_path))
    if project_config:
        _check_api_key_in_git(project_config, project_path)

    return {**global_config, **project_config}


def apply_config_to_args(args: argparse.Namespace, config: dict) -> None:
    """Apply config values to argparse namespace where CLI didn't set a value.

    Remaining _UNSET sentinels are then replaced with hardcoded defaults
    from _ARGPARSE_DEFAULTS.
    """

    def _is_unset(dest: str) -> bool:
        return getattr(args, dest, _UNSET) is _UNSET

    # A single config key controls the mutually exclusive --color/--no-color pair
    if "color" in config:
        if _is_unset("color") and _is_unset("no_color"):
            args.color = config["color"]
            args.no_color = not config["color"]

    for key, value in config.items():
        if key == "color":
            continue
        if _is_unset(key):
            setattr(args, key, value)

    for dest, default in _ARGPARSE_DEFAULTS.items():
        if _is_unset(dest):
            setattr(args, dest, default)


def _coerce(key: str, raw: str):
    expected = CONFIG_KEYS[key]
    if expected is int:
        try:
            value = int(raw)
        except ValueError:
            raise ConfigError(f"{key!r} expects an integer, got {raw!r}") from None
        _validate_config({key: value}, "value")
        return value
    return raw


def _toml_value(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    # JSON string escaping is valid for TOML basic strings.
    return json.dumps(str(value))


def set_global_value(key: str, raw_value: str, path: Path | None = None) -> Path:
    """Write one key into the global config file, keeping the others.

    Returns the path written. The file is created with mode 0600 since it may
    hold an API key.
    """
    if key not in SETTABLE_KEYS:
        raise ConfigError(
            f"unknown setting {key!r}, expected one of: {', '.join(SETTABLE_KEYS)}"
        )
    path = Path(path) if path is not None else global_config_path()
    config = _load_single(path, str(path))
    config[key] = _coerce(key, raw_value)

    lines = ["# wader global configuration (written by `wader config`)"]
    lines += [f"{k} = {_toml_value(v)}" for k, v in config.items()]
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write("\n".join(lines) + "\n")
    return path


def generate_config(project: bool = False) -> str:
    """Return a commented-out template config string."""
    lines = [
        "# wader configuration file",
        f"# {'Project' if project else 'Global'} config: "
        f"{'<project>/wader.toml' if project else '~/.config/wader/config.toml'}",
        "#",
        "# CLI flags override these values. Only uncomment what you need.",
        "",
        "# --- Model ---",
        '# model = "o3-mini"',
        '# api_key = "sk-..."               # prefer OPENAI_API_KEY; this is a fallback',
        '# base_url = "https://..."          # any OpenAI-compatible endpoint',
        "# temperature = 0.6",
        "",
        "# --- Agent behaviour ---",
        "# history_limit = 15               # stored messages sent with each request",
        "# max_iterations = 5               # model round-trips per question",
        "# command_timeout = 60             # seconds, for git commands",
        '# data_dir = ".wader"',
        "# no_index = false",
        "",
        "# --- UI ---",
        "# color = true       # true = force color, false = force no-color, absent = auto",
        "# quiet = false",
        "",
    ]
    return "\n".join(lines)

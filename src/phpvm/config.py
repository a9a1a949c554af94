"""Configuration loader for phpvm.

Configuration values are merged from several sources, later sources winning:

1. Built-in defaults.
2. ``~/.config/phpvm/config.yml`` (or an override path).
3. Environment variables prefixed with ``PHPVM_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export PHPVM_GROUP=admin
    export PHPVM_BREW__BREW_BIN=/opt/homebrew/bin/brew

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. The resulting configuration is exposed as immutable
``dataclasses`` for convenient access and type safety.
"""
from __future__ import annotations

import os
from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import cast

try:  # PyYAML is a runtime dependency (declared in pyproject.toml).
    import yaml
except Exception as exc:  # pragma: no cover - import failure covered in tests
    raise RuntimeError(
        "PyYAML is required to load phpvm configuration. Install with "
        "`pip install phpvm` or ensure PyYAML>=6.0 is available."
    ) from exc


ENV_PREFIX = "PHPVM_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class BrewConfig:
    """Package-manager binaries and the tap that ships the PHP formulae."""

    brew_bin: str = "brew"
    pecl_bin: str = "pecl"
    tap: str = "henkrehorst/php"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"brew_bin": self.brew_bin, "pecl_bin": self.pecl_bin, "tap": self.tap}


@dataclass(frozen=True)
class FpmConfig:
    """Values written into every PHP-FPM pool configuration."""

    socket_mode: str = "0777"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"socket_mode": self.socket_mode}


@dataclass(frozen=True)
class ExtensionsConfig:
    """Extensions provisioned for every linked PHP version."""

    pecl: tuple[str, ...] = ("xdebug", "apcu", "yaml")
    custom: tuple[str, ...] = ("ioncubeloader",)

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"pecl": list(self.pecl), "custom": list(self.custom)}


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for phpvm."""

    config_file: Path
    home_path: Path
    logs_dir: Path
    templates_dir: Path
    php_bin: Path
    etc_root: Path
    var_log_dir: Path
    localtime_path: Path
    user: str
    group: str
    brew: BrewConfig
    fpm: FpmConfig
    extensions: ExtensionsConfig

    @property
    def socket_path(self) -> Path:
        """Return the FPM listening socket shared by every version."""
        return self.home_path / "valet.sock"

    @property
    def error_log_path(self) -> Path:
        """Return the PHP error log written by every pool."""
        return self.home_path / "Log" / "php.log"

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "home_path": str(self.home_path),
            "logs_dir": str(self.logs_dir),
            "templates_dir": str(self.templates_dir),
            "php_bin": str(self.php_bin),
            "etc_root": str(self.etc_root),
            "var_log_dir": str(self.var_log_dir),
            "localtime_path": str(self.localtime_path),
            "user": self.user,
            "group": self.group,
            "brew": self.brew.to_dict(),
            "fpm": self.fpm.to_dict(),
            "extensions": self.extensions.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "~/.config/phpvm/config.yml",
    "home_path": "~/.valet",
    "logs_dir": None,  # derived from home_path when absent
    "templates_dir": "~/.config/phpvm/templates",
    "php_bin": "/usr/local/bin/php",
    "etc_root": "/usr/local/etc/valet-php",
    "var_log_dir": "/usr/local/var/log",
    "localtime_path": "/etc/localtime",
    "user": None,  # derived from SUDO_USER / USER when absent
    "group": "staff",
    "brew": {
        "brew_bin": "brew",
        "pecl_bin": "pecl",
        "tap": "henkrehorst/php",
    },
    "fpm": {
        "socket_mode": "0777",
    },
    "extensions": {
        "pecl": ["xdebug", "apcu", "yaml"],
        "custom": ["ioncubeloader"],
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged, resolved_env)


def invoking_user(env: Mapping[str, str] | None = None) -> str:
    """Return the workstation user, looking through ``sudo`` when present."""
    resolved = os.environ if env is None else env
    for key in ("SUDO_USER", "USER", "LOGNAME"):
        value = resolved.get(key, "").strip()
        if value:
            return value
    raise ConfigError("Unable to determine the invoking user; set PHPVM_USER.")


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override).expanduser()
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR]).expanduser()
    return Path(default_path).expanduser()


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    brew = raw.get("brew")
    if brew is not None:
        brew_map = _as_dict(brew, "brew")
        unknown = set(brew_map.keys()) - {"brew_bin", "pecl_bin", "tap"}
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown brew configuration keys: {joined}.")

    fpm = raw.get("fpm")
    if fpm is not None:
        fpm_map = _as_dict(fpm, "fpm")
        unknown = set(fpm_map.keys()) - {"socket_mode"}
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown fpm configuration keys: {joined}.")
        if "socket_mode" in fpm_map:
            _parse_socket_mode(fpm_map["socket_mode"], "fpm.socket_mode")

    extensions = raw.get("extensions")
    if extensions is not None:
        extensions_map = _as_dict(extensions, "extensions")
        unknown = set(extensions_map.keys()) - {"pecl", "custom"}
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown extensions configuration keys: {joined}.")
        for field in ("pecl", "custom"):
            value = extensions_map.get(field)
            if value is not None:
                _as_names(value, f"extensions.{field}")


def _build_app_config(raw: Mapping[str, object], env: Mapping[str, str]) -> AppConfig:
    home_path = _to_path(raw.get("home_path"))
    logs_dir_value = raw.get("logs_dir")
    logs_dir = _to_path(logs_dir_value) if logs_dir_value else home_path / "Log" / "phpvm"

    user_value = raw.get("user")
    if user_value is None or (isinstance(user_value, str) and not user_value.strip()):
        user = invoking_user(env)
    elif isinstance(user_value, str):
        user = user_value.strip()
    else:
        raise ConfigError("user must be a string or null.")

    brew_mapping = _as_dict(raw.get("brew"), "brew")
    brew = BrewConfig(
        brew_bin=str(brew_mapping.get("brew_bin", "brew")),
        pecl_bin=str(brew_mapping.get("pecl_bin", "pecl")),
        tap=str(brew_mapping.get("tap", "henkrehorst/php")),
    )

    fpm_mapping = _as_dict(raw.get("fpm"), "fpm")
    fpm = FpmConfig(
        socket_mode=_parse_socket_mode(fpm_mapping.get("socket_mode", "0777"), "fpm.socket_mode"),
    )

    extensions_mapping = _as_dict(raw.get("extensions"), "extensions")
    extensions = ExtensionsConfig(
        pecl=_as_names(extensions_mapping.get("pecl", []), "extensions.pecl"),
        custom=_as_names(extensions_mapping.get("custom", []), "extensions.custom"),
    )

    return AppConfig(
        config_file=_to_path(raw.get("config_file")),
        home_path=home_path,
        logs_dir=logs_dir,
        templates_dir=_to_path(raw.get("templates_dir")),
        php_bin=_to_path(raw.get("php_bin")),
        etc_root=_to_path(raw.get("etc_root")),
        var_log_dir=_to_path(raw.get("var_log_dir")),
        localtime_path=_to_path(raw.get("localtime_path")),
        user=user,
        group=str(raw.get("group", "staff")),
        brew=brew,
        fpm=fpm,
        extensions=extensions,
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        elif isinstance(value, list):
            result[key] = list(value)
        else:
            result[key] = value
    return result


def _as_names(value: object, label: str) -> tuple[str, ...]:
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        raise ConfigError(f"Expected {label} to be a sequence. Got {type(value).__name__}.")
    names: list[str] = []
    for index, item in enumerate(value):
        if not isinstance(item, str) or not item.strip():
            raise ConfigError(f"{label}[{index}] must be a non-empty string.")
        names.append(item.strip())
    return tuple(names)


def _parse_socket_mode(value: object, label: str) -> str:
    """Validate an octal permission string and return it zero padded."""
    if isinstance(value, bool):
        raise ConfigError(f"{label} must be an octal integer string. Got boolean {value!r}.")
    if isinstance(value, int):
        # PyYAML already reads unquoted 0777 as an octal literal.
        mode = value
    elif isinstance(value, str):
        text = value.strip().lower()
        if text.startswith("0o"):
            text = text[2:]
        try:
            mode = int(text, 8)
        except ValueError as exc:
            raise ConfigError(f"{label} must be an octal integer string.") from exc
    else:
        raise ConfigError(f"{label} must be an octal integer or string.")
    if mode < 0 or mode > 0o777:
        raise ConfigError(f"{label} must be between 0000 and 0777 inclusive.")
    return f"{mode:04o}"


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AppConfig",
    "BrewConfig",
    "ConfigError",
    "ExtensionsConfig",
    "FpmConfig",
    "invoking_user",
    "load_config",
]

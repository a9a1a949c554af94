"""Configuration loader tests."""
from __future__ import annotations

from pathlib import Path

import pytest

from phpvm.config import AppConfig, ConfigError, invoking_user, load_config


def test_load_config_defaults_when_file_missing(tmp_path: Path) -> None:
    """Defaults apply when no config file is present."""
    config = load_config(config_file=tmp_path / "missing.yml", env={"USER": "alice"})

    assert isinstance(config, AppConfig)
    assert config.php_bin == Path("/usr/local/bin/php")
    assert config.etc_root == Path("/usr/local/etc/valet-php")
    assert config.user == "alice"
    assert config.group == "staff"
    assert config.fpm.socket_mode == "0777"
    assert config.brew.tap == "henkrehorst/php"
    assert config.extensions.pecl == ("xdebug", "apcu", "yaml")
    assert config.socket_path == config.home_path / "valet.sock"
    assert config.logs_dir == config.home_path / "Log" / "phpvm"


def test_load_config_reads_yaml_file(tmp_path: Path) -> None:
    """Values are loaded from the YAML config file."""
    cfg = tmp_path / "phpvm.yml"
    cfg.write_text(
        f"home_path: {tmp_path / 'valet'}\n"
        "group: admin\n"
        "fpm:\n"
        "  socket_mode: 0770\n"
        "extensions:\n"
        "  pecl: [xdebug]\n"
        "  custom: []\n",
        encoding="utf-8",
    )

    config = load_config(config_file=cfg, env={"USER": "alice"})

    assert config.config_file == cfg
    assert config.home_path == tmp_path / "valet"
    assert config.error_log_path == tmp_path / "valet" / "Log" / "php.log"
    assert config.group == "admin"
    assert config.fpm.socket_mode == "0770"
    assert config.extensions.pecl == ("xdebug",)
    assert config.extensions.custom == ()


def test_env_overrides_take_precedence(tmp_path: Path) -> None:
    """Environment variables override defaults and file settings."""
    cfg = tmp_path / "phpvm.yml"
    cfg.write_text("group: admin\n", encoding="utf-8")
    env = {
        "USER": "alice",
        "PHPVM_CONFIG_FILE": str(cfg),
        "PHPVM_GROUP": "wheel",
        "PHPVM_BREW__BREW_BIN": "/opt/homebrew/bin/brew",
        "PHPVM_LOGS_DIR": str(tmp_path / "logs"),
    }

    config = load_config(env=env)

    assert config.config_file == cfg
    assert config.group == "wheel"
    assert config.brew.brew_bin == "/opt/homebrew/bin/brew"
    assert config.logs_dir == tmp_path / "logs"


def test_overrides_win_over_environment(tmp_path: Path) -> None:
    """Programmatic overrides are applied last."""
    config = load_config(
        config_file=tmp_path / "missing.yml",
        env={"USER": "alice", "PHPVM_USER": "bob"},
        overrides={"user": "carol"},
    )
    assert config.user == "carol"


def test_user_prefers_sudo_user() -> None:
    """The workstation user is looked up through sudo."""
    assert invoking_user({"SUDO_USER": "alice", "USER": "root"}) == "alice"
    with pytest.raises(ConfigError):
        invoking_user({})


@pytest.mark.parametrize(
    "content",
    [
        "unknown: 1\n",
        "brew:\n  pear_bin: pear\n",
        "fpm:\n  socket_mode: '0999'\n",
        "extensions:\n  pecl: xdebug\n",
        "- not\n- a mapping\n",
    ],
)
def test_invalid_config_rejected(tmp_path: Path, content: str) -> None:
    """Unknown keys and malformed values raise ConfigError."""
    cfg = tmp_path / "phpvm.yml"
    cfg.write_text(content, encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(config_file=cfg, env={"USER": "alice"})


def test_to_dict_is_serialisable(tmp_path: Path) -> None:
    """to_dict renders paths as strings and nests sections."""
    config = load_config(config_file=tmp_path / "missing.yml", env={"USER": "alice"})

    data = config.to_dict()

    assert data["user"] == "alice"
    assert data["php_bin"] == "/usr/local/bin/php"
    assert data["fpm"] == {"socket_mode": "0777"}

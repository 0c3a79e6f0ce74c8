from __future__ import annotations

import os
from pathlib import Path

import pytest

from src.fileserve.config import (
    DEFAULT_PORT,
    ServerSettings,
    default_dotenv_paths,
    load_settings,
    parse_dotenv_file,
    resolve_setting,
)
from src.fileserve.resolver import ConfigurationError


def test_parse_dotenv_file_supports_export_quotes_and_comments(tmp_path: Path) -> None:
    dotenv = tmp_path / ".env"
    dotenv.write_text(
        "\n".join(
            [
                "# comment",
                "export FILESERVE_PORT = \"9000\" # trailing comment",
                "FILESERVE_PATH='  /srv/www  '",
                "FILESERVE_BIND=127.0.0.1",
                "BAD-KEY=ignore",
                "no equals sign",
            ]
        )
        + "\n",
        encoding="utf-8",
    )
    parsed = parse_dotenv_file(dotenv)
    assert parsed["FILESERVE_PORT"] == "9000"
    assert parsed["FILESERVE_PATH"] == "/srv/www"
    assert parsed["FILESERVE_BIND"] == "127.0.0.1"
    assert "BAD-KEY" not in parsed


def test_parse_dotenv_file_missing_is_empty(tmp_path: Path) -> None:
    assert parse_dotenv_file(tmp_path / "absent.env") == {}


def test_default_dotenv_paths_put_overrides_first(tmp_path: Path) -> None:
    override = tmp_path / "custom.env"
    paths = default_dotenv_paths(
        base_dir=tmp_path,
        env={"FILESERVE_DOTENV_PATH": f"{override}{os.pathsep}{override}"},
    )
    assert paths == [override, (tmp_path / ".env.fileserve").resolve(), (tmp_path / ".env").resolve()]


def test_resolve_setting_precedence_matrix() -> None:
    dotenv = {"APP_PORT": "7000"}
    env = {"APP_PORT": "8080"}
    assert resolve_setting(explicit_value=9000, env_var_names=("APP_PORT",), dotenv_values=dotenv, env=env) == ("9000", "explicit")
    assert resolve_setting(explicit_value=None, env_var_names=("APP_PORT",), dotenv_values=dotenv, env=env) == ("8080", "env")
    assert resolve_setting(explicit_value="  ", env_var_names=("APP_PORT",), dotenv_values=dotenv, env={}) == ("7000", "dotenv")
    assert resolve_setting(env_var_names=("APP_PORT",), default="8000", env={}) == ("8000", "default")


def test_load_settings_defaults(tmp_path: Path) -> None:
    settings = load_settings(env={}, dotenv_paths=[tmp_path / ".env"])
    assert settings == ServerSettings()
    assert settings.port == DEFAULT_PORT


def test_load_settings_reads_env_and_dotenv(tmp_path: Path) -> None:
    dotenv = tmp_path / ".env.fileserve"
    dotenv.write_text("FILESERVE_PORT=9001\nFILESERVE_ROOT_POLICY=redirect\n", encoding="utf-8")
    settings = load_settings(
        interface="eth0",
        env={"FILESERVE_PATH": "/srv/files", "FILESERVE_PORT": "9002"},
        dotenv_paths=[dotenv],
    )
    assert settings.path == "/srv/files"
    assert settings.port == 9002
    assert settings.root_policy == "redirect"
    assert settings.interface == "eth0"


def test_earlier_dotenv_file_wins(tmp_path: Path) -> None:
    first = tmp_path / "first.env"
    second = tmp_path / "second.env"
    first.write_text("FILESERVE_PORT=1111\n", encoding="utf-8")
    second.write_text("FILESERVE_PORT=2222\nFILESERVE_BIND=10.0.0.1\n", encoding="utf-8")
    settings = load_settings(env={}, dotenv_paths=[first, second])
    assert settings.port == 1111
    assert settings.bind == "10.0.0.1"


@pytest.mark.parametrize("raw", ["abc", "70000", "-1"])
def test_invalid_port_is_configuration_error(tmp_path: Path, raw: str) -> None:
    with pytest.raises(ConfigurationError):
        load_settings(env={"FILESERVE_PORT": raw}, dotenv_paths=[])


def test_invalid_root_policy_is_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        load_settings(root_policy="bounce", env={}, dotenv_paths=[])

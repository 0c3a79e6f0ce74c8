from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Sequence

from src.fileserve.resolver import ConfigurationError
from src.fileserve.routing import ROOT_POLICIES, ROOT_POLICY_LIST


DEFAULT_PORT = 8000
DEFAULT_BIND = "0.0.0.0"
DOTENV_OVERRIDE_VARS = ("FILESERVE_DOTENV_PATH",)
DOTENV_FALLBACK_FILES = (".env.fileserve", ".env")

_ENV_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _strip_inline_comment(raw: str) -> str:
    in_single = False
    in_double = False
    escaped = False
    for idx, ch in enumerate(raw):
        if escaped:
            escaped = False
            continue
        if ch == "\\" and in_double:
            escaped = True
            continue
        if ch == "'" and not in_double:
            in_single = not in_single
            continue
        if ch == '"' and not in_single:
            in_double = not in_double
            continue
        if ch == "#" and not in_single and not in_double:
            if idx == 0 or raw[idx - 1].isspace():
                return raw[:idx]
    return raw


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def parse_dotenv_file(path: Path) -> dict[str, str]:
    out: dict[str, str] = {}
    try:
        text = path.read_text(encoding="utf-8")
    except OSError:
        return out
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].lstrip()
        if "=" not in line:
            continue
        key, raw_value = line.split("=", 1)
        key = key.strip()
        if not _ENV_KEY_RE.match(key):
            continue
        value = _unquote(_strip_inline_comment(raw_value).strip())
        out[key] = value.strip()
    return out


def default_dotenv_paths(
    *,
    base_dir: str | Path,
    env: Mapping[str, str] | None = None,
    override_var_names: Sequence[str] = DOTENV_OVERRIDE_VARS,
    fallback_filenames: Sequence[str] = DOTENV_FALLBACK_FILES,
) -> list[Path]:
    if env is None:
        env = os.environ
    root = Path(base_dir).resolve()
    out: list[Path] = []
    seen: set[str] = set()

    def _append(raw_path: str) -> None:
        if not raw_path:
            return
        candidate = Path(raw_path).expanduser()
        if not candidate.is_absolute():
            candidate = (root / candidate).resolve()
        key = str(candidate)
        if key in seen:
            return
        seen.add(key)
        out.append(candidate)

    for name in override_var_names:
        raw_value = str(env.get(name, "") or "").strip()
        for item in raw_value.split(os.pathsep):
            _append(item.strip())
    for filename in fallback_filenames:
        _append(filename)
    return out


def resolve_setting(
    *,
    explicit_value: object = None,
    env_var_names: Sequence[str] = (),
    dotenv_values: Mapping[str, str] | None = None,
    default: str = "",
    env: Mapping[str, str] | None = None,
) -> tuple[str, str]:
    """Return ``(value, source)`` using explicit, env, dotenv, default order."""
    if env is None:
        env = os.environ
    if explicit_value is not None and str(explicit_value).strip():
        return str(explicit_value).strip(), "explicit"
    for name in env_var_names:
        v = str(env.get(name, "") or "").strip()
        if v:
            return v, "env"
    for name in env_var_names:
        v = str((dotenv_values or {}).get(name, "") or "").strip()
        if v:
            return v, "dotenv"
    return default, "default"


@dataclass(frozen=True)
class ServerSettings:
    path: str = ""
    port: int = DEFAULT_PORT
    interface: str = ""
    bind: str = ""
    root_policy: str = ROOT_POLICY_LIST
    access_log: str = ""


def _load_dotenv_values(paths: Sequence[Path]) -> dict[str, str]:
    merged: dict[str, str] = {}
    # Earlier paths win.
    for path in reversed(list(paths)):
        if path.is_file():
            merged.update(parse_dotenv_file(path))
    return merged


def load_settings(
    *,
    path: Optional[str] = None,
    port: Optional[int] = None,
    interface: Optional[str] = None,
    bind: Optional[str] = None,
    root_policy: Optional[str] = None,
    access_log: Optional[str] = None,
    env: Mapping[str, str] | None = None,
    dotenv_paths: Sequence[Path] | None = None,
) -> ServerSettings:
    if env is None:
        env = os.environ
    if dotenv_paths is None:
        dotenv_paths = default_dotenv_paths(base_dir=os.getcwd(), env=env)
    dotenv_values = _load_dotenv_values(dotenv_paths)

    def _get(explicit: object, name: str, default: str = "") -> str:
        value, _ = resolve_setting(
            explicit_value=explicit,
            env_var_names=(name,),
            dotenv_values=dotenv_values,
            default=default,
            env=env,
        )
        return value

    raw_port = _get(port, "FILESERVE_PORT", str(DEFAULT_PORT))
    try:
        port_value = int(raw_port)
    except ValueError as exc:
        raise ConfigurationError(f"invalid port: {raw_port}") from exc
    if not 0 <= port_value <= 65535:
        raise ConfigurationError(f"invalid port: {raw_port}")

    policy = _get(root_policy, "FILESERVE_ROOT_POLICY", ROOT_POLICY_LIST).lower()
    if policy not in ROOT_POLICIES:
        raise ConfigurationError(f"invalid root policy: {policy} (expected one of {', '.join(ROOT_POLICIES)})")

    return ServerSettings(
        path=_get(path, "FILESERVE_PATH"),
        port=port_value,
        interface=_get(interface, "FILESERVE_INTERFACE"),
        bind=_get(bind, "FILESERVE_BIND"),
        root_policy=policy,
        access_log=_get(access_log, "FILESERVE_ACCESS_LOG"),
    )

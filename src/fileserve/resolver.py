from __future__ import annotations

import os
import stat
from dataclasses import dataclass
from typing import Optional


class ConfigurationError(Exception):
    """Startup configuration is unusable; the process should exit."""


@dataclass(frozen=True)
class ServeRoot:
    base_dir: str
    pinned_file: Optional[str] = None

    @property
    def pinned(self) -> bool:
        return self.pinned_file is not None


def resolve_serve_root(path: str = "") -> ServeRoot:
    """Turn the path argument into the served base directory.

    A directory is served as-is. A single file pins the server to that one
    name inside its parent directory.
    """
    if not path:
        path = os.getcwd()
    try:
        st = os.stat(path)
    except OSError as exc:
        raise ConfigurationError(f"cannot stat {path}: {exc.strerror or exc}") from exc

    abs_path = os.path.abspath(path)
    if stat.S_ISDIR(st.st_mode):
        return ServeRoot(base_dir=abs_path)
    return ServeRoot(base_dir=os.path.dirname(abs_path), pinned_file=os.path.basename(abs_path))

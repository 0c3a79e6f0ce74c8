from __future__ import annotations

import mimetypes
import os
import stat
from dataclasses import dataclass, field
from typing import List, Optional, Union
from urllib.parse import quote, unquote

from src.fileserve.resolver import ServeRoot


ROOT_POLICY_LIST = "list"
ROOT_POLICY_REDIRECT = "redirect"
ROOT_POLICIES = (ROOT_POLICY_LIST, ROOT_POLICY_REDIRECT)


class InternalError(Exception):
    """Filesystem failure that is not a plain missing entry."""


@dataclass(frozen=True)
class NotFound:
    pass


@dataclass(frozen=True)
class Redirect:
    location: str


@dataclass(frozen=True)
class DirectoryListing:
    path: str
    entries: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class FileStream:
    path: str
    mod_time: float
    size: int
    content_type: Optional[str] = None


RequestOutcome = Union[NotFound, Redirect, DirectoryListing, FileStream]


def normalize_request_path(raw_path: str) -> Optional[str]:
    """Decode and collapse a URL path; None when it escapes the root."""
    path = raw_path.split("?", 1)[0].split("#", 1)[0]
    # Undecodable bytes become surrogate escapes, matching os.listdir names.
    path = unquote(path, errors="surrogateescape") if "%" in path else path
    if "\x00" in path or "\\" in path:
        return None
    if not path.startswith("/"):
        path = "/" + path

    parts: List[str] = []
    for segment in path.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if not parts:
                return None
            parts.pop()
            continue
        parts.append(segment)
    return "/" + "/".join(parts)


def guess_content_type(filename: str) -> Optional[str]:
    content_type, _ = mimetypes.guess_type(filename)
    return content_type


def route_request(root: ServeRoot, raw_path: str, policy: str = ROOT_POLICY_LIST) -> RequestOutcome:
    path = normalize_request_path(raw_path)
    if path is None:
        return NotFound()

    if root.pinned and path != "/":
        if path.strip("/") != root.pinned_file:
            return NotFound()
    if root.pinned and path == "/" and policy == ROOT_POLICY_REDIRECT:
        location = "/" + str(root.pinned_file)
        return Redirect(location=quote(location.encode("utf-8", "surrogateescape")))

    target = os.path.join(root.base_dir, *path.strip("/").split("/")) if path != "/" else root.base_dir
    try:
        st = os.stat(target)
    except (FileNotFoundError, NotADirectoryError):
        return NotFound()
    except OSError as exc:
        raise InternalError(f"fail to stat file {target}: {exc}") from exc

    if stat.S_ISDIR(st.st_mode):
        if root.pinned:
            return DirectoryListing(path=path, entries=[str(root.pinned_file)])
        try:
            entries = sorted(os.listdir(target))
        except OSError as exc:
            raise InternalError(f"fail to list files {target}: {exc}") from exc
        return DirectoryListing(path=path, entries=entries)

    return FileStream(
        path=target,
        mod_time=st.st_mtime,
        size=st.st_size,
        content_type=guess_content_type(target),
    )

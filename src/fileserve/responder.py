from __future__ import annotations

import email.utils
import html
import os
import posixpath
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Callable, List, Optional, Tuple
from urllib.parse import quote

from src.fileserve.routing import DirectoryListing, FileStream, InternalError
from src.fileserve.status_capture import ResponseWriter


COPY_CHUNK_SIZE = 64 * 1024

NOT_FOUND_BODY = b"404 page not found\n"
INTERNAL_ERROR_BODY = b"internal server error.\n"

CLIENT_GONE_ERRORS = (BrokenPipeError, ConnectionResetError, ConnectionAbortedError)

LISTING_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>{title}</title>
</head>
<body>
<h1>Index of {title}</h1>
<hr>
<p>
{links}
</p>
</body>
</html>
"""


def _text_headers(body: bytes, content_type: str = "text/plain; charset=utf-8") -> List[Tuple[str, str]]:
    return [
        ("Content-Type", content_type),
        ("X-Content-Type-Options", "nosniff"),
        ("Content-Length", str(len(body))),
    ]


def write_not_found(w: ResponseWriter, head_only: bool = False) -> None:
    w.write_header(HTTPStatus.NOT_FOUND, _text_headers(NOT_FOUND_BODY))
    if not head_only:
        w.write(NOT_FOUND_BODY)


def write_internal_error(w: ResponseWriter, head_only: bool = False) -> None:
    w.write_header(HTTPStatus.INTERNAL_SERVER_ERROR, _text_headers(INTERNAL_ERROR_BODY))
    if not head_only:
        w.write(INTERNAL_ERROR_BODY)


def write_redirect(w: ResponseWriter, location: str, head_only: bool = False) -> None:
    body = f'<a href="{html.escape(location, quote=True)}">Found</a>.\n'.encode("utf-8")
    headers = [("Location", location)] + _text_headers(body, "text/html; charset=utf-8")
    w.write_header(HTTPStatus.FOUND, headers)
    if not head_only:
        w.write(body)


def _raw_bytes(name: str) -> bytes:
    # Names from os.listdir carry undecodable bytes as surrogate escapes.
    return name.encode("utf-8", "surrogateescape")


def display_name(name: str) -> str:
    return _raw_bytes(name).decode("utf-8", "replace")


def url_path(path: str) -> str:
    return quote(_raw_bytes(path))


def render_listing_html(request_path: str, entries: List[str]) -> str:
    links = []
    for name in entries:
        href = url_path(posixpath.join(request_path, name))
        links.append(f'<a href="{html.escape(href, quote=True)}">{html.escape(display_name(name))}</a><br>')
    title = html.escape(display_name(request_path))
    return LISTING_HTML.format(title=title, links="\n".join(links))


def content_disposition(filename: str) -> str:
    """Attachment header value that stays Latin-1 for any file name."""
    fallback = display_name(filename).encode("ascii", "replace").decode("ascii")
    fallback = fallback.replace('"', "").replace("\\", "")
    value = f'attachment; filename="{fallback}"'
    if fallback != filename:
        value += f"; filename*=UTF-8''{quote(_raw_bytes(filename), safe='')}"
    return value


def write_listing(w: ResponseWriter, listing: DirectoryListing, head_only: bool = False) -> None:
    body = render_listing_html(listing.path, listing.entries).encode("utf-8")
    w.write_header(HTTPStatus.OK, _text_headers(body, "text/html; charset=utf-8"))
    if not head_only:
        w.write(body)


def not_modified_since(if_modified_since: str, mod_time: float) -> bool:
    """True when the client's copy is at least as new as ``mod_time``."""
    if not if_modified_since:
        return False
    try:
        since = email.utils.parsedate_to_datetime(if_modified_since)
    except (TypeError, ValueError, IndexError, OverflowError):
        return False
    if since is None:
        return False
    if since.tzinfo is None:
        since = since.replace(tzinfo=timezone.utc)
    last_modified = datetime.fromtimestamp(int(mod_time), timezone.utc)
    return last_modified <= since


def file_headers(stream: FileStream) -> List[Tuple[str, str]]:
    headers = [("Last-Modified", email.utils.formatdate(stream.mod_time, usegmt=True))]
    if stream.content_type:
        headers.append(("Content-Type", stream.content_type))
    else:
        headers.append(("Content-Type", "application/octet-stream"))
        headers.append(("Content-Disposition", content_disposition(os.path.basename(stream.path))))
    return headers


def write_file(
    w: ResponseWriter,
    stream: FileStream,
    if_modified_since: str = "",
    head_only: bool = False,
    on_abort: Optional[Callable[[str], None]] = None,
) -> bool:
    """Stream ``stream.path`` through ``w``.

    Returns False when the copy stopped early: the client went away, or the
    file ended before the advertised Content-Length. Raises InternalError
    when the file cannot be opened or read.
    """
    try:
        f = open(stream.path, "rb")
    except OSError as exc:
        raise InternalError(f"fail to open file {stream.path}: {exc}") from exc

    with f:
        headers = file_headers(stream)
        if not_modified_since(if_modified_since, stream.mod_time):
            w.write_header(HTTPStatus.NOT_MODIFIED, headers[:1])
            return True
        size = os.fstat(f.fileno()).st_size
        headers.append(("Content-Length", str(size)))
        try:
            w.write_header(HTTPStatus.OK, headers)
            if head_only:
                return True
            remaining = size
            while remaining > 0:
                try:
                    chunk = f.read(min(COPY_CHUNK_SIZE, remaining))
                except OSError as exc:
                    raise InternalError(f"fail to read file {stream.path}: {exc}") from exc
                if not chunk:
                    break
                w.write(chunk)
                remaining -= len(chunk)
            w.flush()
        except CLIENT_GONE_ERRORS as exc:
            if on_abort is not None:
                on_abort(f"client disconnected while sending {stream.path}: {exc}")
            return False
        if remaining > 0:
            if on_abort is not None:
                on_abort(f"short read on {stream.path}: {remaining} of {size} bytes missing")
            return False
    return True

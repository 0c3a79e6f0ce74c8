from __future__ import annotations

import http.server
import socketserver
from typing import Iterable, Tuple
from urllib.parse import urlsplit

from src.fileserve.access_log import AccessLogger, ResponseRecord
from src.fileserve.resolver import ServeRoot
from src.fileserve.responder import (
    CLIENT_GONE_ERRORS,
    write_file,
    write_internal_error,
    write_listing,
    write_not_found,
    write_redirect,
)
from src.fileserve.routing import (
    ROOT_POLICY_LIST,
    DirectoryListing,
    FileStream,
    InternalError,
    NotFound,
    Redirect,
    route_request,
)
from src.fileserve.status_capture import StatusRecordingWriter


class ThreadingTCPServer(socketserver.ThreadingMixIn, socketserver.TCPServer):
    daemon_threads = True
    allow_reuse_address = True
    request_queue_size = 64


class HandlerResponseWriter:
    """Response-writer view over a BaseHTTPRequestHandler."""

    def __init__(self, handler: http.server.BaseHTTPRequestHandler) -> None:
        self.handler = handler

    def write_header(self, code: int, headers: Iterable[Tuple[str, str]] = ()) -> None:
        headers = list(headers)
        # send_header encodes latin-1; fail before the status line is buffered.
        for key, value in headers:
            f"{key}: {value}".encode("latin-1", "strict")
        self.handler.send_response(code)
        for key, value in headers:
            self.handler.send_header(key, value)
        self.handler.end_headers()

    def write(self, data: bytes) -> int:
        return self.handler.wfile.write(data)

    def flush(self) -> None:
        self.handler.wfile.flush()


def handler_factory(root: ServeRoot, logger: AccessLogger, root_policy: str = ROOT_POLICY_LIST):
    class Handler(http.server.BaseHTTPRequestHandler):
        server_version = "fileserve"

        def log_request(self, code="-", size="-") -> None:
            # Access lines are written once per request by _handle.
            pass

        def log_message(self, format: str, *args) -> None:  # noqa: A003
            logger.diagnostic(f"[{self.client_address[0]}] {format % args}")

        def _serve(self, w: StatusRecordingWriter, head_only: bool) -> None:
            try:
                outcome = route_request(root, self.path, root_policy)
            except InternalError as exc:
                logger.diagnostic(str(exc))
                write_internal_error(w, head_only)
                return

            if isinstance(outcome, NotFound):
                write_not_found(w, head_only)
            elif isinstance(outcome, Redirect):
                write_redirect(w, outcome.location, head_only)
            elif isinstance(outcome, DirectoryListing):
                write_listing(w, outcome, head_only)
            elif isinstance(outcome, FileStream):
                try:
                    completed = write_file(
                        w,
                        outcome,
                        if_modified_since=self.headers.get("If-Modified-Since", ""),
                        head_only=head_only,
                        on_abort=logger.diagnostic,
                    )
                except InternalError as exc:
                    logger.diagnostic(str(exc))
                    if w.header_written:
                        self.close_connection = True
                    else:
                        write_internal_error(w, head_only)
                    return
                if not completed:
                    self.close_connection = True

        def _handle(self, head_only: bool) -> None:
            w = StatusRecordingWriter(HandlerResponseWriter(self))
            try:
                self._serve(w, head_only)
            except CLIENT_GONE_ERRORS as exc:
                logger.diagnostic(f"client disconnected: {exc}")
                self.close_connection = True
            except Exception as exc:
                logger.diagnostic(f"fail to serve {self.path}: {exc!r}")
                if w.header_written:
                    self.close_connection = True
                else:
                    try:
                        write_internal_error(w, head_only)
                    except CLIENT_GONE_ERRORS:
                        self.close_connection = True
            finally:
                if w.finish():
                    logger.record(
                        ResponseRecord(
                            remote_ip=str(self.client_address[0]),
                            method=self.command,
                            path=urlsplit(self.path).path,
                            status=w.status,
                            user_agent=self.headers.get("User-Agent", ""),
                        )
                    )

        def do_GET(self):
            self._handle(head_only=False)

        def do_HEAD(self):
            self._handle(head_only=True)

    return Handler


def make_server(
    root: ServeRoot,
    host: str,
    port: int,
    logger: AccessLogger,
    root_policy: str = ROOT_POLICY_LIST,
) -> ThreadingTCPServer:
    handler = handler_factory(root, logger, root_policy)
    return ThreadingTCPServer((host, port), handler)

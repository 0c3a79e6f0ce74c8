#!/usr/bin/env python3
import argparse
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from src.fileserve.access_log import AccessLogger
from src.fileserve.config import load_settings
from src.fileserve.netiface import bind_address
from src.fileserve.resolver import ConfigurationError, resolve_serve_root
from src.fileserve.routing import ROOT_POLICIES
from src.fileserve.server import make_server

EXIT_CONFIG_ERROR = 10


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Serve a file or directory over HTTP")
    parser.add_argument("-f", "--file", "-d", "--dir", dest="path", default=None, help="File or directory to serve (default: current directory)")
    parser.add_argument("-p", "--port", type=int, default=None, help="Port to bind (default: 8000)")
    parser.add_argument("-i", "--interface", default=None, help="Network interface whose IPv4 address to bind")
    parser.add_argument("--bind", default=None, help="Bind address, overrides --interface (default: 0.0.0.0)")
    parser.add_argument(
        "--root-policy",
        choices=ROOT_POLICIES,
        default=None,
        help="When serving a single file: list it at / or redirect / to it (default: list)",
    )
    parser.add_argument("--access-log", default=None, help="Optional file to append access lines to")
    return parser


def _exit(logger: AccessLogger, msg: object) -> int:
    logger.stream.write(f"{msg}\n")
    logger.stream.flush()
    return EXIT_CONFIG_ERROR


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logger = AccessLogger()
    try:
        settings = load_settings(
            path=args.path,
            port=args.port,
            interface=args.interface,
            bind=args.bind,
            root_policy=args.root_policy,
            access_log=args.access_log,
        )
        root = resolve_serve_root(settings.path)
    except ConfigurationError as exc:
        return _exit(logger, exc)

    logger = AccessLogger(access_log_path=settings.access_log)
    host = bind_address(interface=settings.interface, bind=settings.bind)
    try:
        httpd = make_server(root, host, settings.port, logger, settings.root_policy)
    except OSError as exc:
        return _exit(logger, f"cannot listen on {host}:{settings.port}: {exc}")

    with httpd:
        logger.diagnostic(f"listen on addr {host}:{httpd.server_address[1]}.")
        if root.pinned:
            logger.diagnostic(f"serving {root.pinned_file} from {root.base_dir}")
        else:
            logger.diagnostic(f"serving {root.base_dir}")
        try:
            httpd.serve_forever()
        except KeyboardInterrupt:
            print("\nServer stopped")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

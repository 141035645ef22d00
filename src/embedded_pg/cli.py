# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

"""Command line entry point: inspect the platform archive or run a throwaway server."""

from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import sys
import threading
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional

from .archive import archive_name, get_platform
from .config import ServerSettings
from .errors import EmbeddedPostgresError
from .server import ADMIN_DATABASE, EmbeddedPostgres


def parse_overrides(values: List[str]) -> Dict[str, str]:
    overrides: Dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"expected name=value, got {item!r}")
        overrides[key.strip()] = value.strip()
    return overrides


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="embedded-pg", description=__doc__)
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    parser.add_argument("--archive-dir", type=Path, help="directory holding postgresql-<platform>.tar.gz")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("platform", help="show the platform identifier and archive status")

    serve = sub.add_parser("serve", help="start a server and block until interrupted")
    serve.add_argument("--startup-timeout", type=float)
    serve.add_argument(
        "--set",
        dest="overrides",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="server configuration override (repeatable)",
    )
    return parser


def load_settings(args: argparse.Namespace) -> ServerSettings:
    settings = ServerSettings.from_env()
    changes = {}
    if args.archive_dir is not None:
        changes["archive_dir"] = args.archive_dir
    if getattr(args, "startup_timeout", None) is not None:
        changes["startup_timeout"] = args.startup_timeout
    if changes:
        settings = replace(settings, **changes)
    return settings


def cmd_platform(settings: ServerSettings) -> int:
    platform_id = get_platform()
    name = archive_name(platform_id)
    present = (settings.archive_dir / name).is_file()
    print(f"platform: {platform_id}")
    print(f"archive:  {settings.archive_dir / name}")
    print(f"present:  {'yes' if present else 'no'}")
    return 0 if present else 1


def cmd_serve(settings: ServerSettings, overrides: Dict[str, str]) -> int:
    stop = threading.Event()

    def shutdown(_sig, _frm):
        stop.set()

    with EmbeddedPostgres(settings.with_overrides(overrides)) as server:
        signal.signal(signal.SIGTERM, shutdown)
        signal.signal(signal.SIGINT, shutdown)
        superuser = settings.superuser
        print(
            json.dumps(
                {
                    "event": "READY",
                    "port": server.port,
                    "jdbc_url": server.get_jdbc_url(superuser, ADMIN_DATABASE),
                    "url": server.get_connection_url(superuser, ADMIN_DATABASE),
                    "pid": server.pid,
                    "harness_pid": os.getpid(),
                }
            ),
            flush=True,
        )
        stop.wait()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        settings = load_settings(args)
        if args.command == "platform":
            return cmd_platform(settings)
        return cmd_serve(settings, parse_overrides(args.overrides))
    except (EmbeddedPostgresError, ValueError) as exc:
        print(f"[embedded-pg] {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("[embedded-pg] interrupted", file=sys.stderr)
        return 130


if __name__ == "__main__":  # pragma: no cover - exercised via __main__
    sys.exit(main())

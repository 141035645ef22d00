# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

"""Ephemeral PostgreSQL server for tests.

An ``EmbeddedPostgres`` unpacks the bundled binaries into a private
temporary directory, runs ``initdb``, starts ``postgres`` on a free port and
blocks until the server answers queries. ``close()`` stops the server and
removes the directory; it is safe to call from several threads and more
than once.
"""

from __future__ import annotations

import logging
import re
import shutil
import socket
import subprocess
import tempfile
import threading
import time
from enum import Enum
from pathlib import Path
from typing import List, Optional

import psycopg
from packaging.version import InvalidVersion, Version

from .archive import find_archive, unpack_archive
from .commands import CommandRunner
from .config import ServerSettings
from .errors import (
    EarlyProcessExitError,
    ReadinessProbeTransientError,
    StartupTimeoutError,
)

logger = logging.getLogger(__name__)

JDBC_FORMAT = "jdbc:postgresql://localhost:{port}/{db}?user={user}"
URL_FORMAT = "postgresql://localhost:{port}/{db}?user={user}"

ADMIN_DATABASE = "postgres"
PROBE_CONNECT_TIMEOUT = 2


class ServerState(Enum):
    STARTING = "starting"
    READY = "ready"
    STOPPING = "stopping"
    CLOSED = "closed"
    FAILED = "failed"


def random_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def parse_server_version(output: str) -> Optional[Version]:
    """Parse ``postgres -V`` output such as ``postgres (PostgreSQL) 16.2``."""
    match = re.search(r"\)\s*(\d[^\s]*)", output)
    if not match:
        return None
    try:
        return Version(match.group(1))
    except InvalidVersion:
        return None


def _log_delete_failure(func, path, exc_info) -> None:
    logger.warning("failed to delete %s: %s", path, exc_info[1])


def delete_recursively(path: Path) -> None:
    if not path.exists():
        return
    shutil.rmtree(path, onerror=_log_delete_failure)


class EmbeddedPostgres:
    def __init__(self, settings: Optional[ServerSettings] = None, platform_id: Optional[str] = None):
        self.settings = settings or ServerSettings.from_env()
        self._state = ServerState.STARTING
        self._close_lock = threading.Lock()
        self._closed = False
        self._postmaster: Optional[subprocess.Popen] = None
        self.server_version: Optional[Version] = None
        self._port = random_port()

        archive = find_archive(self.settings.archive_dir, platform_id)

        self.server_directory = Path(tempfile.mkdtemp(prefix="testing-postgresql-server"))
        self.data_directory = self.server_directory / "data"
        self._runner = CommandRunner(self.settings.command_timeout)

        try:
            unpack_archive(archive, self.server_directory, self._runner)
            self._pg_version()
            self._initdb()
            self._start_postmaster()
        except BaseException:
            self._state = ServerState.FAILED
            self.close()
            raise

    @property
    def port(self) -> int:
        return self._port

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def pid(self) -> Optional[int]:
        return self._postmaster.pid if self._postmaster is not None else None

    def get_jdbc_url(self, user_name: str, db_name: str) -> str:
        return JDBC_FORMAT.format(port=self._port, db=db_name, user=user_name)

    def get_connection_url(self, user_name: str, db_name: str) -> str:
        """libpq form of :meth:`get_jdbc_url`, usable with ``psycopg.connect``."""
        return URL_FORMAT.format(port=self._port, db=db_name, user=user_name)

    def get_postgres_database(self, **kwargs) -> psycopg.Connection:
        """Open a new connection to the admin database as the superuser.

        The connection is not pooled or cached; the caller must close it.
        """
        return psycopg.connect(self.get_connection_url(self.settings.superuser, ADMIN_DATABASE), **kwargs)

    def close(self) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True

        if self._state is not ServerState.FAILED:
            self._state = ServerState.STOPPING
        try:
            self._pg_stop()
        except Exception:
            logger.exception("could not stop postmaster in %s", self.server_directory)
            self._kill_postmaster()

        delete_recursively(self.server_directory)
        self._runner.shutdown()
        if self._state is not ServerState.FAILED:
            self._state = ServerState.CLOSED
        logger.info("postgres on port %s closed", self._port)

    def __enter__(self) -> "EmbeddedPostgres":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"EmbeddedPostgres(server_directory={str(self.server_directory)!r}, "
            f"port={self._port}, state={self._state.value})"
        )

    def _pg_bin(self, name: str) -> str:
        return str(self.server_directory / "bin" / name)

    def _pg_version(self) -> None:
        output = self._runner.run(self._pg_bin("postgres"), "-V").strip()
        logger.info("%s", output)
        self.server_version = parse_server_version(output)

    def _initdb(self) -> None:
        self._runner.run(
            self._pg_bin("initdb"),
            "-A", "trust",
            "-U", self.settings.superuser,
            "-D", str(self.data_directory),
            "-E", "UTF-8",
        )

    def _start_postmaster(self) -> None:
        args: List[str] = [
            self._pg_bin("postgres"),
            "-D", str(self.data_directory),
            "-p", str(self._port),
            "-i",
            "-F",
        ]
        for key, value in self.settings.server_config.items():
            args += ["-c", f"{key}={value}"]

        self._postmaster = subprocess.Popen(args, stdin=subprocess.DEVNULL, stderr=subprocess.STDOUT)
        logger.info(
            "postmaster started on port %s. Waiting up to %gs for startup to finish.",
            self._port,
            self.settings.startup_timeout,
        )
        self._wait_for_server_startup(self._postmaster)
        self._state = ServerState.READY

    def _wait_for_server_startup(self, process: subprocess.Popen) -> None:
        timeout = self.settings.startup_timeout
        last_cause: Optional[Exception] = None
        start = time.monotonic()
        while time.monotonic() - start <= timeout:
            try:
                self._check_ready()
                logger.debug("postmaster startup finished")
                return
            except (psycopg.Error, ReadinessProbeTransientError) as exc:
                last_cause = exc
                logger.debug("while waiting for postmaster startup: %s", exc)

            exit_code = process.poll()
            if exit_code is not None:
                raise EarlyProcessExitError(exit_code)

            time.sleep(self.settings.probe_interval)
        raise StartupTimeoutError(timeout, last_cause) from last_cause

    def _check_ready(self) -> None:
        with self.get_postgres_database(connect_timeout=PROBE_CONNECT_TIMEOUT) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 42")
                rows = cur.fetchall()
        if not rows:
            raise ReadinessProbeTransientError("no rows in result set")
        if len(rows) > 1:
            raise ReadinessProbeTransientError("multiple rows in result set")
        if rows[0][0] != 42:
            raise ReadinessProbeTransientError("wrong result")

    def _pg_stop(self) -> None:
        process = self._postmaster
        if process is None or process.poll() is not None:
            return
        self._runner.run(
            self._pg_bin("pg_ctl"),
            "stop",
            "-D", str(self.data_directory),
            "-m", "fast",
            "-t", str(max(1, int(self.settings.stop_timeout))),
            "-w",
        )
        try:
            process.wait(timeout=self.settings.stop_timeout)
        except subprocess.TimeoutExpired:
            logger.warning("postmaster %s still running after pg_ctl stop, killing it", process.pid)
            self._kill_postmaster()

    def _kill_postmaster(self) -> None:
        process = self._postmaster
        if process is None or process.poll() is not None:
            return
        process.kill()
        try:
            process.wait(timeout=self.settings.stop_timeout)
        except subprocess.TimeoutExpired:
            logger.warning("postmaster %s did not exit after kill", process.pid)

# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

"""Errors raised while provisioning, starting or stopping an instance."""

from __future__ import annotations

from typing import Optional, Sequence


class EmbeddedPostgresError(Exception):
    """Base class for every failure raised by the harness."""


class ArchiveNotFoundError(EmbeddedPostgresError):
    def __init__(self, archive_name: str, search_dir: str):
        super().__init__(f"archive not found: {archive_name} (looked in {search_dir})")
        self.archive_name = archive_name
        self.search_dir = search_dir


class ExternalCommandError(EmbeddedPostgresError):
    def __init__(self, message: str, command: Sequence[str]):
        super().__init__(message)
        self.command = list(command)


class ExternalCommandFailedError(ExternalCommandError):
    def __init__(self, command: Sequence[str], exit_code: Optional[int], output: str = ""):
        detail = f"exited with {exit_code}" if exit_code is not None else "could not be started"
        message = f"command {' '.join(command)!r} {detail}"
        if output.strip():
            message = f"{message}:\n{output.strip()}"
        super().__init__(message, command)
        self.exit_code = exit_code
        self.output = output


class ExternalCommandTimeoutError(ExternalCommandError):
    def __init__(self, command: Sequence[str], timeout: float):
        super().__init__(f"command {' '.join(command)!r} did not finish within {timeout:g}s", command)
        self.timeout = timeout


class ReadinessProbeTransientError(EmbeddedPostgresError):
    """The readiness query ran but did not return the expected single row."""


class StartupTimeoutError(EmbeddedPostgresError):
    def __init__(self, timeout: float, last_cause: Optional[BaseException] = None):
        message = f"postmaster failed to start after {timeout:g}s"
        if last_cause is not None:
            message = f"{message}: {last_cause}"
        super().__init__(message)
        self.timeout = timeout
        self.last_cause = last_cause


class EarlyProcessExitError(EmbeddedPostgresError):
    def __init__(self, exit_code: int):
        super().__init__(f"postmaster exited with value {exit_code}, check stdout for more detail")
        self.exit_code = exit_code

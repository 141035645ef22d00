# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

"""Run external commands on a worker pool with a wall-clock limit."""

from __future__ import annotations

import concurrent.futures
import logging
import subprocess
from typing import List

from .errors import ExternalCommandFailedError, ExternalCommandTimeoutError

logger = logging.getLogger(__name__)


class CommandRunner:
    def __init__(self, timeout: float, max_workers: int = 2, name: str = "embedded-pg-server"):
        self.timeout = timeout
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix=name
        )

    def run(self, *command: str) -> str:
        """Run ``command`` and return its combined stdout and stderr.

        Raises ExternalCommandTimeoutError when the command outlives the
        timeout (the process is killed first) and ExternalCommandFailedError
        on a non-zero exit.
        """
        logger.debug("running %s", " ".join(command))
        future = self._executor.submit(self._execute, list(command))
        return future.result()

    def _execute(self, command: List[str]) -> str:
        try:
            process = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
            )
        except OSError as exc:
            raise ExternalCommandFailedError(command, None, str(exc)) from exc

        try:
            output, _ = process.communicate(timeout=self.timeout)
        except subprocess.TimeoutExpired as exc:
            # grandchildren may still hold the pipe, so don't drain it
            process.kill()
            process.wait()
            process.stdout.close()
            raise ExternalCommandTimeoutError(command, self.timeout) from exc

        if process.returncode != 0:
            raise ExternalCommandFailedError(command, process.returncode, output or "")
        return output or ""

    def shutdown(self, wait: bool = False) -> None:
        self._executor.shutdown(wait=wait, cancel_futures=True)

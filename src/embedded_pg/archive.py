# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

"""Locate and unpack the bundled PostgreSQL binaries for this host."""

from __future__ import annotations

import logging
import os
import platform
import shutil
import tempfile
from pathlib import Path
from typing import Optional

from .commands import CommandRunner
from .errors import ArchiveNotFoundError

logger = logging.getLogger(__name__)

# Archives were packed under the JVM's os.name/os.arch spelling.
OS_NAMES = {
    "Darwin": "Mac OS X",
}
ARCH_NAMES = {
    "x86_64": "amd64",
    "AMD64": "amd64",
    "arm64": "aarch64",
    "ARM64": "aarch64",
}


def get_platform(system: Optional[str] = None, machine: Optional[str] = None) -> str:
    system = system if system is not None else platform.system()
    machine = machine if machine is not None else platform.machine()
    os_name = OS_NAMES.get(system, system)
    if os_name == "Mac OS X" and machine == "x86_64":
        arch = machine
    else:
        arch = ARCH_NAMES.get(machine, machine)
    return f"{os_name}-{arch}".replace(" ", "_")


def archive_name(platform_id: str) -> str:
    return f"postgresql-{platform_id}.tar.gz"


def find_archive(archive_dir: Path, platform_id: Optional[str] = None) -> Path:
    name = archive_name(platform_id or get_platform())
    path = Path(archive_dir) / name
    if not path.is_file():
        raise ArchiveNotFoundError(name, str(archive_dir))
    return path


def unpack_archive(archive: Path, target: Path, runner: CommandRunner) -> None:
    """Extract ``archive`` into ``target`` via a throwaway temporary copy."""
    fd, tmp_name = tempfile.mkstemp(prefix="postgresql-")
    try:
        with os.fdopen(fd, "wb") as out, archive.open("rb") as src:
            shutil.copyfileobj(src, out)
        runner.run("tar", "-xzf", tmp_name, "-C", str(target))
    finally:
        try:
            os.unlink(tmp_name)
        except OSError as exc:
            logger.warning("failed to delete %s: %s", tmp_name, exc)

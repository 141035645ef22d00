# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

"""Settings for an embedded PostgreSQL instance.

Defaults match what the bundled binaries were tested with. Timeouts and the
archive location can be overridden from the environment, which is how CI
jobs on slow runners stretch the startup window without code changes.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Mapping, Optional

DEFAULT_ARCHIVE_DIR = Path(__file__).resolve().parent / "archives"

PG_SUPERUSER = "postgres"
PG_STARTUP_WAIT = 10.0
COMMAND_TIMEOUT = 30.0
PG_STOP_WAIT = 5.0
PROBE_INTERVAL = 0.01

DEFAULT_SERVER_CONFIG: Dict[str, str] = {
    "timezone": "UTC",
    "synchronous_commit": "off",
    "max_connections": "300",
}


@dataclass(frozen=True)
class ServerSettings:
    startup_timeout: float = PG_STARTUP_WAIT
    command_timeout: float = COMMAND_TIMEOUT
    stop_timeout: float = PG_STOP_WAIT
    probe_interval: float = PROBE_INTERVAL
    superuser: str = PG_SUPERUSER
    archive_dir: Path = DEFAULT_ARCHIVE_DIR
    server_config: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_SERVER_CONFIG))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServerSettings":
        env = os.environ if environ is None else environ
        return cls(
            startup_timeout=float(env.get("EMBEDDED_PG_STARTUP_TIMEOUT", PG_STARTUP_WAIT)),
            command_timeout=float(env.get("EMBEDDED_PG_COMMAND_TIMEOUT", COMMAND_TIMEOUT)),
            archive_dir=Path(env.get("EMBEDDED_PG_ARCHIVE_DIR", str(DEFAULT_ARCHIVE_DIR))),
        )

    def with_overrides(self, overrides: Mapping[str, str]) -> "ServerSettings":
        """Return a copy whose server config has ``overrides`` layered on top."""
        merged = dict(self.server_config)
        merged.update(overrides)
        return replace(self, server_config=merged)

"""Ephemeral PostgreSQL servers for automated tests.

The bundled ``archives/postgresql-<platform>.tar.gz`` payloads hold the
``initdb``, ``postgres`` and ``pg_ctl`` binaries; ``EmbeddedPostgres``
unpacks one into a private directory, starts it on a free port and tears
it down again on ``close()``.
"""

from .config import ServerSettings
from .errors import (
    ArchiveNotFoundError,
    EarlyProcessExitError,
    EmbeddedPostgresError,
    ExternalCommandError,
    ExternalCommandFailedError,
    ExternalCommandTimeoutError,
    ReadinessProbeTransientError,
    StartupTimeoutError,
)
from .server import EmbeddedPostgres, ServerState

__all__: list[str] = [
    "ArchiveNotFoundError",
    "EarlyProcessExitError",
    "EmbeddedPostgres",
    "EmbeddedPostgresError",
    "ExternalCommandError",
    "ExternalCommandFailedError",
    "ExternalCommandTimeoutError",
    "ReadinessProbeTransientError",
    "ServerSettings",
    "ServerState",
    "StartupTimeoutError",
]

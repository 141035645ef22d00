# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

"""pytest fixtures backed by a session-wide embedded server.

Loaded automatically through the ``pytest11`` entry point. Tests request
``postgres_connection`` for a fresh superuser connection, or
``embedded_postgres`` for the instance itself (port, URLs).
"""

from __future__ import annotations

import pytest

from .config import ServerSettings
from .server import EmbeddedPostgres


@pytest.fixture(scope="session")
def embedded_postgres_settings() -> ServerSettings:
    return ServerSettings.from_env()


@pytest.fixture(scope="session")
def embedded_postgres(embedded_postgres_settings):
    server = EmbeddedPostgres(embedded_postgres_settings)
    try:
        yield server
    finally:
        server.close()


@pytest.fixture
def postgres_connection(embedded_postgres):
    conn = embedded_postgres.get_postgres_database(autocommit=True)
    try:
        yield conn
    finally:
        conn.close()

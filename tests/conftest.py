# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

import stat
import tarfile
import tempfile
from pathlib import Path

import pytest

from embedded_pg.archive import archive_name, get_platform
from embedded_pg.config import ServerSettings
from embedded_pg.errors import ReadinessProbeTransientError
from embedded_pg.server import EmbeddedPostgres

# Every fake appends "<name> <args>" to $FAKE_CALL_LOG when it is set.
PARSE_DATA_DIR = """
data=""
args=("$@")
while [ $# -gt 0 ]; do
  case "$1" in
    -D) data="$2"; shift 2 ;;
    *) shift ;;
  esac
done
"""

FAKE_INITDB = f"""#!/usr/bin/env bash
[ -n "$FAKE_CALL_LOG" ] && echo "initdb $*" >> "$FAKE_CALL_LOG"
[ -n "$FAKE_INITDB_SLEEP" ] && sleep "$FAKE_INITDB_SLEEP" >/dev/null 2>&1
if [ -n "$FAKE_INITDB_EXIT" ]; then
  echo "initdb: fake failure"
  exit "$FAKE_INITDB_EXIT"
fi
{PARSE_DATA_DIR}
mkdir -p "$data"
echo "${{args[*]}}" > "$data/initdb.args"
"""

FAKE_POSTGRES = f"""#!/usr/bin/env bash
if [ "$1" = "-V" ]; then
  echo "postgres (PostgreSQL) 16.2"
  exit 0
fi
[ -n "$FAKE_CALL_LOG" ] && echo "postgres $*" >> "$FAKE_CALL_LOG"
if [ -n "$FAKE_POSTGRES_EXIT" ]; then
  echo "FATAL: fake startup failure"
  exit "$FAKE_POSTGRES_EXIT"
fi
{PARSE_DATA_DIR}
echo "${{args[*]}}" > "$data/postgres.args"
echo $$ > "$data/postmaster.pid"
exec sleep 300
"""

FAKE_PG_CTL = f"""#!/usr/bin/env bash
[ -n "$FAKE_CALL_LOG" ] && echo "pg_ctl $*" >> "$FAKE_CALL_LOG"
# exits cleanly without signalling the postmaster
[ -n "$FAKE_PG_CTL_NOOP" ] && exit 0
if [ -n "$FAKE_PG_CTL_EXIT" ]; then
  echo "pg_ctl: could not send stop signal"
  exit "$FAKE_PG_CTL_EXIT"
fi
{PARSE_DATA_DIR}
kill "$(cat "$data/postmaster.pid")"
"""


def build_fake_archive(target_dir: Path) -> Path:
    staging = target_dir / "staging"
    (staging / "bin").mkdir(parents=True)
    (staging / "lib").mkdir()
    (staging / "share").mkdir()
    for name, body in {
        "initdb": FAKE_INITDB,
        "postgres": FAKE_POSTGRES,
        "pg_ctl": FAKE_PG_CTL,
    }.items():
        script = staging / "bin" / name
        script.write_text(body)
        script.chmod(stat.S_IRWXU)

    archives = target_dir / "archives"
    archives.mkdir()
    archive = archives / archive_name(get_platform())
    with tarfile.open(archive, "w:gz") as tar:
        for entry in ("bin", "lib", "share"):
            tar.add(staging / entry, arcname=entry)
    return archives


@pytest.fixture
def scratch_tmp(tmp_path, monkeypatch):
    """Redirect tempfile so tests can assert nothing is left behind."""
    scratch = tmp_path / "scratch"
    scratch.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(scratch))
    return scratch


@pytest.fixture
def archive_dir(tmp_path):
    return build_fake_archive(tmp_path)


@pytest.fixture
def call_log(tmp_path, monkeypatch):
    path = tmp_path / "calls.log"
    monkeypatch.setenv("FAKE_CALL_LOG", str(path))
    return path


@pytest.fixture
def fake_settings(archive_dir):
    return ServerSettings(
        archive_dir=archive_dir,
        startup_timeout=5.0,
        command_timeout=10.0,
        stop_timeout=2.0,
    )


@pytest.fixture
def pidfile_probe(monkeypatch):
    """Treat the fake postmaster as ready once it has written its pid file."""

    def check_ready(self):
        if not (self.data_directory / "postmaster.pid").exists():
            raise ReadinessProbeTransientError("pid file not written yet")

    monkeypatch.setattr(EmbeddedPostgres, "_check_ready", check_ready)

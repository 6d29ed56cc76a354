"""
Fixtures for the lifecycle tests.

Key fixtures:
- psql_runner: replaces subprocess.run for bulk loads and records each call
- isolated_tempdir: points tempfile at an empty directory so that leftover
  decompressed files can be detected
- sqlite_directives: directives building a small country database in SQLite
"""

import gzip
import subprocess
import tempfile
from pathlib import Path

import pytest


class RecordingRunner:
    """
    Stand-in for subprocess.run.

    Records (command, kwargs) and, for each call, whether the file passed
    with ``--file`` existed while the command ran.
    """

    def __init__(self, returncode=0, stderr=''):
        self.calls = []
        self.file_existed = []
        self.returncode = returncode
        self.stderr = stderr

    def __call__(self, command, **kwargs):
        self.calls.append((command, kwargs))
        if '--file' in command:
            self.file_existed.append(Path(command[command.index('--file') + 1]).is_file())
        return subprocess.CompletedProcess(command, self.returncode, stdout='', stderr=self.stderr)


@pytest.fixture
def psql_runner():
    return RecordingRunner()


@pytest.fixture
def failing_psql_runner():
    return RecordingRunner(returncode=3, stderr='psql: error: relation "x" does not exist')


@pytest.fixture
def isolated_tempdir(tmp_path, monkeypatch):
    temp_dir = tmp_path / 'tmp'
    temp_dir.mkdir()
    monkeypatch.setattr(tempfile, 'tempdir', str(temp_dir))
    return temp_dir


@pytest.fixture
def write_gz():
    """Write text to a gzip file and return its path."""
    def _write(path, content):
        with gzip.open(path, 'wt', encoding='utf-8') as handle:
            handle.write(content)
        return path
    return _write


@pytest.fixture
def sqlite_directives(sqlite_parameters):
    """Directives building a country table in the sqlite_parameters database."""
    user = sqlite_parameters.username
    database = sqlite_parameters.database_name
    return [
        (user, database, "CREATE TABLE country (id INTEGER PRIMARY KEY, code TEXT, eu BOOLEAN, motto TEXT)"),
        (user, database, "INSERT INTO country VALUES (1, 'FR', 1, NULL)"),
        (user, database, "INSERT INTO country VALUES (2, 'GB', 0, 'Dieu et mon droit');"),
    ]

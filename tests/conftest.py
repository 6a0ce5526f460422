import logging
import pwd
import subprocess
import sys
from pathlib import Path

import pytest

# Ensure the project root is on the Python path for the top-level modules
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config import Settings
from config_store import ConfigStore


class FakeUserDirectory:
    """In-memory stand-in for the passwd database and useradd."""

    def __init__(self, users=None, first_uid=998):
        self.users = dict(users or {})
        self.next_uid = first_uid
        self.commands = []

    def add(self, name, uid, gid):
        self.users[name] = pwd.struct_passwd((name, "x", uid, gid, "", "/nonexistent", "/bin/false"))

    def lookup(self, name):
        if name not in self.users:
            raise KeyError(f"getpwnam(): name not found: '{name}'")
        return self.users[name]

    def run(self, command, check=False, capture_output=False):
        self.commands.append(list(command))
        name = command[-1]
        self.add(name, self.next_uid, self.next_uid)
        self.next_uid -= 1
        return subprocess.CompletedProcess(command, 0, b"", b"")


@pytest.fixture
def logger():
    return logging.getLogger("tests.bootstrap")


@pytest.fixture
def write_config(tmp_path):
    def _write(content="", name="config.yml"):
        path = tmp_path / name
        path.write_text(content, encoding="utf-8")
        return str(path)

    return _write


@pytest.fixture
def store(write_config, tmp_path, logger):
    path = write_config(f"system:\n  data: {tmp_path / 'data'}\n")
    return ConfigStore.open(path, logger)


@pytest.fixture
def users():
    return FakeUserDirectory()


@pytest.fixture
def test_settings():
    return Settings(LICENSE_API_URL="https://licenses.test", LICENSE_API_TIMEOUT=5)

"""
Pytest configuration and fixtures.

Environment variables are set before the app modules are imported so the
module-level store never touches the working directory.
"""

import os
import shutil
import tempfile

import pytest

_SESSION_DIR = tempfile.mkdtemp(prefix="appslot-tests-")
os.environ['UPLOAD_DIR'] = os.path.join(_SESSION_DIR, 'uploads')
os.environ['PUBLIC_DIR'] = os.path.join(_SESSION_DIR, 'public-missing')
os.environ.pop('PUBLIC_BASE_URL', None)

from fastapi.testclient import TestClient

import server
from store import SlotStore


class AsyncBytes:
    """Minimal async reader standing in for an UploadFile."""

    def __init__(self, data):
        self._data = data
        self._pos = 0

    async def read(self, size=-1):
        if size < 0:
            size = len(self._data) - self._pos
        chunk = self._data[self._pos:self._pos + size]
        self._pos += len(chunk)
        return chunk


@pytest.fixture(scope="session", autouse=True)
def _session_dir():
    yield _SESSION_DIR
    shutil.rmtree(_SESSION_DIR, ignore_errors=True)


@pytest.fixture
def slot_store(tmp_path):
    return SlotStore(str(tmp_path / "uploads"), chunk_size=4)


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(server, "store", SlotStore(str(tmp_path / "uploads")))
    with TestClient(server.app) as c:
        yield c

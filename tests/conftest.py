import pytest

from notesapp.backend.kv import MemoryKVStore
from notesapp.backend.server import create_app


@pytest.fixture
def app(tmp_path):
    """Flask app backed by a file store in a temporary DATA_DIR."""
    app = create_app({"TESTING": True, "DATA_DIR": tmp_path, "STORE_BACKEND": "file"})
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def memory_store():
    return MemoryKVStore()

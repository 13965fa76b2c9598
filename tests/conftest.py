"""
Pytest configuration and fixtures.
"""
import os
import sys
import tempfile

# Keep test runs away from real credentials and the real history directory
os.environ.pop("GITHUB_TOKEN", None)
os.environ.pop("DISCORD_WEBHOOK_URL", None)
os.environ["CI_HISTORY_DIR"] = tempfile.mkdtemp(prefix="ci-history-test-")

import pytest
from fastapi.testclient import TestClient

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from main import app
from ciserver.core.history_store import HistoryStore, history_store


@pytest.fixture
def client():
    """Create a test client."""
    return TestClient(app)


@pytest.fixture
def store(tmp_path):
    """A history store rooted in a fresh temporary directory."""
    return HistoryStore(tmp_path / "history")


@pytest.fixture
def shared_store(tmp_path):
    """Point the global history store (used by the routes) at a temp dir."""
    original = history_store.history_dir
    history_store.history_dir = tmp_path / "shared-history"
    yield history_store
    history_store.history_dir = original


@pytest.fixture
def push_payload():
    """A minimal valid push event body."""
    return {
        "ref": "refs/heads/main",
        "after": "heylol123",
        "repository": {
            "clone_url": "https://github.com/owner/repo.git",
            "full_name": "owner/repo",
        },
    }

import os
import tempfile

# Keep test runs from writing ./logs into the working tree
os.environ.setdefault("FILE_SERVER_LOG_DIR", os.path.join(tempfile.gettempdir(), "rootshare-test-logs"))

import pytest
from fastapi.testclient import TestClient

from rootshare import config
from rootshare.main import app


@pytest.fixture
def root_dir(tmp_path):
    """Served root, with a sibling file outside it for escape attempts."""
    root = tmp_path / "root"
    root.mkdir()
    (tmp_path / "secret.txt").write_text("outside the root")
    return root


@pytest.fixture
def client(root_dir, monkeypatch):
    monkeypatch.setattr(config, "ROOT_DIR", str(root_dir))
    with TestClient(app) as test_client:
        yield test_client

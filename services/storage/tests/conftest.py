import os
import tempfile

import pytest

# repo.py reads its configuration at import time
_TMP = tempfile.mkdtemp(prefix="storage-tests-")
os.environ.setdefault("STORAGE_DATABASE_URL", f"sqlite:///{_TMP}/storage.db")
os.environ.setdefault("STORAGE_ROOT", os.path.join(_TMP, "objects"))
os.environ.setdefault("PUBLIC_BASE_URL", "http://storage.test")
os.environ.setdefault("DB_WAIT_SECS", "1")

from fastapi.testclient import TestClient  # noqa: E402

from main import app  # noqa: E402


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c

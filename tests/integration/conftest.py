import logging
from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from dafang import config
from dafang.app import app

logger = logging.getLogger(__name__)


@pytest.fixture()
def http(monkeypatch) -> Iterator[TestClient]:
    """In-process API client; retries are immediate so failing turns stay fast."""
    monkeypatch.setattr(config, "RETRY_DELAY", 0.0)
    with TestClient(app) as client:
        yield client

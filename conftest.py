# Ensure tests import the package from this checkout first, installed or not.
import os
import sys

import pytest
from fastapi.testclient import TestClient

SERVICE_ROOT = os.path.dirname(__file__)

if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)


@pytest.fixture
def test_client():
    """Client with the lifespan running, so every test gets a fresh room registry."""
    from mirrorcast.server import app

    with TestClient(app) as client:
        yield client

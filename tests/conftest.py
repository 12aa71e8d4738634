import os
import sys
from datetime import datetime, timezone

import pytest

# Allow running the suite from a plain checkout
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from podprobe.app import create_app  # noqa: E402

START_TIME = datetime(2024, 5, 1, 8, 30, 0, tzinfo=timezone.utc)


@pytest.fixture
def client():
    app = create_app(start_time=START_TIME)
    app.config["TESTING"] = True
    with app.test_client() as client:
        yield client

import os
import threading

# keep test runs away from the on-disk database and log file
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_FILE", "")

import pytest

from fakes import make_attendee


@pytest.fixture
def attendee():
    return make_attendee()


@pytest.fixture
def gate():
    event = threading.Event()
    yield event
    event.set()

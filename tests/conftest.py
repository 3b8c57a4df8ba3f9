import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

os.environ.setdefault("ENV", "test")

from app.core.config import settings
from app.core.metrics import CounterStore
from app.main import app, configure_state


class RecordingChannel:
    def __init__(self) -> None:
        self.status = None
        self.reason = None
        self.content_type = None
        self.body = b""
        self.messages = 0

    def send_headers(self, status, reason, content_type):
        self.status = status
        self.reason = reason
        self.content_type = content_type

    def send_body(self, chunks):
        self.body += b"".join(chunks)

    def send_message(self, status, reason, body):
        self.messages += 1
        self.send_headers(status, reason, "text/html")
        self.body += body.encode("utf-8")


@pytest.fixture
def counters():
    return CounterStore()


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def write_template(tmp_path):
    def _write(name: str, content: str) -> Path:
        path = tmp_path / name
        path.write_text(content)
        return path

    return _write


@pytest.fixture(scope="function")
def client():
    configure_state(app, settings)
    return TestClient(app)

from __future__ import annotations

import json
from typing import Any, Dict, List

import pytest
from fastapi.testclient import TestClient

from main import create_app
from utils.settings import Settings


class FakeTransport:
    """In-memory stand-in for a websocket, recording decoded frames."""

    def __init__(self, is_open: bool = True, fail: bool = False) -> None:
        self.open = is_open
        self.fail = fail
        self.sent: List[Dict[str, Any]] = []

    @property
    def is_open(self) -> bool:
        return self.open

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise ConnectionResetError("peer went away")
        self.sent.append(json.loads(data))

    def types(self) -> List[str]:
        return [message["type"] for message in self.sent]


@pytest.fixture
def make_transport():
    return FakeTransport


@pytest.fixture
def client():
    app = create_app(Settings(log_level="DEBUG"))
    with TestClient(app) as test_client:
        yield test_client

"""
Tests for the data registry collaborators
=========================================
"""

import json

import pytest
import requests

from authorization.data_registry import HttpDataRegistry, InMemoryDataRegistry
from core.exceptions import DataRegistryError
from core.models import DataRecord


class StubSession(requests.Session):
    """Session answering every GET with a canned response or error."""

    def __init__(self, status_code=200, body=None, raw=None, error=None):
        super().__init__()
        self.status_code = status_code
        self.body = body
        self.raw = raw
        self.error = error
        self.requests = []

    def get(self, url, **kwargs):
        self.requests.append((url, kwargs))
        if self.error is not None:
            raise self.error
        response = requests.Response()
        response.status_code = self.status_code
        response.url = url
        if self.raw is not None:
            response._content = self.raw
        else:
            response._content = json.dumps(self.body).encode("utf-8")
        return response


class TestInMemoryDataRegistry:
    """Tests for the in-process registry."""

    def test_register_and_get(self):
        registry = InMemoryDataRegistry()
        registry.register(1, owner="P1")

        assert registry.get_record(1) == DataRecord(owner="P1", active=True)
        assert registry.get_record(2) is None
        assert len(registry) == 1

    def test_set_active(self):
        registry = InMemoryDataRegistry()
        registry.register(1, owner="P1")

        assert registry.set_active(1, False) is True
        assert registry.get_record(1).active is False
        assert registry.set_active(99, False) is False


class TestHttpDataRegistry:
    """Tests for the HTTP registry client."""

    def test_found(self):
        session = StubSession(body={"owner": "P1", "active": False})
        registry = HttpDataRegistry("https://registry.example/api/", session=session, timeout=2.0)

        assert registry.get_record(7) == DataRecord(owner="P1", active=False)
        url, kwargs = session.requests[0]
        assert url == "https://registry.example/api/records/7"
        assert kwargs["timeout"] == 2.0

    def test_not_found(self):
        registry = HttpDataRegistry(
            "https://registry.example", session=StubSession(status_code=404, body={})
        )
        assert registry.get_record(7) is None

    def test_bearer_token(self):
        session = StubSession(body={"owner": "P1"})
        HttpDataRegistry("https://registry.example", auth_token="secret", session=session)

        assert session.headers["Authorization"] == "Bearer secret"
        assert session.headers["Accept"] == "application/json"

    def test_server_error(self):
        registry = HttpDataRegistry(
            "https://registry.example", session=StubSession(status_code=500, body={})
        )
        with pytest.raises(DataRegistryError) as exc_info:
            registry.get_record(7)
        assert exc_info.value.endpoint == "https://registry.example/records/7"

    def test_transport_error(self):
        session = StubSession(error=requests.ConnectionError("refused"))
        registry = HttpDataRegistry("https://registry.example", session=session)

        with pytest.raises(DataRegistryError) as exc_info:
            registry.get_record(7)
        assert isinstance(exc_info.value.__cause__, requests.ConnectionError)

    @pytest.mark.parametrize(
        "session",
        [
            StubSession(raw=b"not json"),
            StubSession(body={"active": True}),
            StubSession(body=["P1", True]),
        ],
    )
    def test_malformed_body(self, session):
        registry = HttpDataRegistry("https://registry.example", session=session)
        with pytest.raises(DataRegistryError):
            registry.get_record(7)

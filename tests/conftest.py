import pytest
import httpx
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from polysight import models  # noqa: F401
from polysight.cache import reset_markets_cache
from polysight.db import Base
from polysight.external import BREAKERS


@pytest.fixture(autouse=True)
def _reset_shared_state():
    for breaker in BREAKERS.values():
        breaker.record_success()
    reset_markets_cache()
    yield
    reset_markets_cache()


@pytest.fixture()
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


class FakeUpstream:
    """Routes ``httpx.AsyncClient.get`` calls by URL path suffix."""

    def __init__(self):
        self.routes = {}
        self.calls = []

    def route(self, path, handler):
        self.routes[path] = handler

    def paths(self):
        return [path for path, _ in self.calls]

    def client_class(self):
        upstream = self

        class MockAsyncClient:
            def __init__(self, *args, **kwargs):
                pass

            async def __aenter__(self):
                return self

            async def __aexit__(self, exc_type, exc, tb):
                return False

            async def get(self, url, params=None):
                params = dict(params or {})
                request = httpx.Request("GET", url, params=params)
                path = next((p for p in upstream.routes if url.endswith(p)), None)
                upstream.calls.append((path or url, params))
                if path is None:
                    return httpx.Response(404, json={"error": "not found"}, request=request)
                handler = upstream.routes[path]
                result = handler(params) if callable(handler) else handler
                if isinstance(result, int):
                    return httpx.Response(result, json={"error": "upstream"}, request=request)
                return httpx.Response(200, json=result, request=request)

        return MockAsyncClient


@pytest.fixture()
def upstream(monkeypatch):
    fake = FakeUpstream()
    monkeypatch.setattr(httpx, "AsyncClient", fake.client_class())
    return fake

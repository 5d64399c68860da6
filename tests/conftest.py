"""
Pytest Fixtures
===============

Every test runs against a fresh SQLite file with a deterministic clock.
"""

import itertools

import pytest

from memory_mcp import api, graph
from memory_mcp import db as store
from memory_mcp.models import EntityInput, RelationInput


@pytest.fixture(autouse=True)
def db_path(tmp_path, monkeypatch):
    path = str(tmp_path / "memory.db")
    monkeypatch.setattr(store, "DB_PATH", path)
    monkeypatch.setattr(api, "API_KEY", "")
    store.init_db()
    return path


@pytest.fixture(autouse=True)
def clock(monkeypatch):
    """Strictly increasing timestamps so updated_at ordering is stable."""
    ticks = itertools.count(1_700_000_000)
    monkeypatch.setattr(graph, "_now", lambda: float(next(ticks)))


@pytest.fixture
def db(db_path):
    conn = store.get_db()
    yield conn
    conn.close()


@pytest.fixture
def client():
    from starlette.testclient import TestClient

    from memory_mcp.server import mcp

    return TestClient(mcp.streamable_http_app())


def entity(name, entity_type="Thing", *observations):
    return EntityInput(name=name, entityType=entity_type, observations=list(observations))


def relation(src, dst, relation_type):
    return RelationInput.model_validate({"from": src, "to": dst, "relationType": relation_type})


def count(conn, table):
    return conn.execute(f"SELECT COUNT(*) AS c FROM {table}").fetchone()["c"]

import os
from contextlib import contextmanager

# Keep a local .env from opening a database or building the bot on import
os.environ["TOKEN"] = ""
os.environ["DATABASE_URL"] = ""

import pytest

from api import ratelimit, timers


@pytest.fixture(autouse=True)
def clear_timers():
    yield
    timers.clear_all()


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def app():
    from api.bot import create_app

    app = create_app()
    app.config["TESTING"] = True
    ratelimit.limiter.reset()
    return app


@pytest.fixture
def client(app):
    return app.test_client()


class FakeCursor:
    """Stands in for a RealDictCursor: replays queued rows, records statements."""

    def __init__(self, rows=()):
        self.rows = list(rows)
        self.executed = []
        self.rowcount = 1

    def execute(self, query, params=None):
        self.executed.append((str(query), params))

    def fetchone(self):
        return self.rows.pop(0) if self.rows else None

    def fetchall(self):
        rows = self.rows.pop(0) if self.rows else []
        return rows

    def statements(self, fragment):
        return [params for query, params in self.executed if fragment in query]


@pytest.fixture
def fake_db(monkeypatch):
    from api import db

    cur = FakeCursor()

    @contextmanager
    def cursor(dict_rows=True):
        yield cur

    monkeypatch.setattr(db, "cursor", cursor)
    return cur

import itertools
import os
import sys
from pathlib import Path

import pytest
import pytest_asyncio

# Ensure project root on path before importing app modules
project_root = Path(__file__).resolve().parents[1]
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

# Configure the app to use a local SQLite database during tests
os.environ["APP_DATABASE_URL"] = f"sqlite+aiosqlite:///{(project_root / 'test.db').as_posix()}"
os.environ["APP_DEBUG"] = "false"
os.environ["APP_CREATE_TABLES_ON_STARTUP"] = "false"


@pytest_asyncio.fixture
async def db(tmp_path):
    """A fresh SQLite database per test."""
    from socialgraph.database import Database

    database = Database(f"sqlite+aiosqlite:///{(tmp_path / 'graph.db').as_posix()}")
    await database.create_tables()
    yield database
    await database.drop_tables()
    await database.dispose()


@pytest_asyncio.fixture
async def graph(db):
    from socialgraph.services.social_graph import SocialGraph

    return SocialGraph(db)


@pytest.fixture
def make_user(graph):
    """Factory creating users with unique usernames."""
    counter = itertools.count(1)

    async def _make(**fields):
        n = next(counter)
        fields.setdefault("username", f"user{n}")
        fields.setdefault("email", f"user{n}@example.com")
        fields.setdefault("first_name", f"First{n}")
        fields.setdefault("last_name", f"Last{n}")
        user = await graph.users.create_user(**fields)
        return user.id

    return _make


@pytest.fixture
def connect(graph):
    """Create a connected pair: a requests, b accepts."""
    async def _connect(a: int, b: int):
        await graph.store.request_connection(a, b)
        return await graph.store.accept_connection(a, b)

    return _connect

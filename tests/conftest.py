import os
from collections.abc import AsyncIterator
from pathlib import Path

import pytest
import pytest_asyncio

from authstore.core.config import Settings
from authstore.core.database import Database
from authstore.core.identity import Credential, Identifier
from authstore.models import User
from authstore.repositories.database_store import DatabaseStore

# Point at PostgreSQL with e.g.
# TEST_DATABASE_URL=postgresql+asyncpg://authstore_user:pw@localhost/authstore_test
TEST_DATABASE_URL_ENV = "TEST_DATABASE_URL"

TEST_EMAIL = "test@example.com"
# Security: test-only placeholder; the store never hashes anything itself.
TEST_PASSWORD_HASH = "$argon2id$v=19$fake-hash-for-tests"  # nosec B105  # gitleaks:allow
TEST_FAMILY_MAX_LENGTH = 50


@pytest.fixture
def test_settings() -> Settings:
    """Settings with a small family walk cap."""
    return Settings(
        database_url_override="sqlite+aiosqlite://",
        refresh_token_family_max_length=TEST_FAMILY_MAX_LENGTH,
    )


@pytest_asyncio.fixture(scope="function")
async def db(tmp_path: Path) -> AsyncIterator[Database]:
    """Database with a fresh schema.

    Uses a throwaway SQLite file unless TEST_DATABASE_URL is set.
    """
    url = os.environ.get(TEST_DATABASE_URL_ENV) or (
        f"sqlite+aiosqlite:///{tmp_path / 'authstore_test.db'}"
    )
    database = Database(url)
    await database.create_schema()

    yield database

    await database.drop_schema()
    await database.dispose()


@pytest.fixture
def store(db: Database, test_settings: Settings) -> DatabaseStore:
    """DatabaseStore over the test database."""
    return DatabaseStore(db, config=test_settings)


@pytest_asyncio.fixture
async def test_user(store: DatabaseStore) -> User:
    """User registered with TEST_EMAIL and a password."""
    return await store.users.create(
        Identifier.email(TEST_EMAIL),
        Credential.password(TEST_PASSWORD_HASH),
    )


def skip_if_sqlite(database: Database) -> None:
    """Skip tests that need concurrent writers.

    SQLite serialises writers and may answer a lock upgrade with
    "database is locked" instead of waiting, so races are only exercised
    against PostgreSQL (set TEST_DATABASE_URL).
    """
    if database.engine.dialect.name == "sqlite":
        pytest.skip("Concurrent writer tests need PostgreSQL (set TEST_DATABASE_URL)")

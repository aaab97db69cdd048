import os
from collections.abc import Generator
from typing import Any

import psycopg
import pytest
import redis

from app.cache.connection import init_redis
from app.config.settings import Settings
from app.database.connection import close_pool, get_connection, init_pool


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "dokuprime_test")
    os.environ.setdefault("REDIS_DB", "15")
    return Settings()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        init_pool(test_settings)
        with get_connection() as conn:
            conn.execute("SELECT 1 FROM document_details LIMIT 1")
    except Exception as e:
        close_pool()
        pytest.skip(f"PostgreSQL test DB not available: {e}. Set DB_* env to run.")
    try:
        yield
    finally:
        close_pool()


@pytest.fixture
def db_conn(integration_pool: None) -> Generator[psycopg.Connection[Any], None, None]:
    with get_connection() as conn:
        yield conn


@pytest.fixture
def integration_cleanup() -> Generator[list[int], None, None]:
    """Collects document IDs; their details and rows are deleted after the test."""
    document_ids: list[int] = []
    yield document_ids
    if not document_ids:
        return
    with get_connection() as conn:
        with conn.cursor() as cur:
            for document_id in document_ids:
                cur.execute("DELETE FROM document_details WHERE document_id = %s", (document_id,))
                cur.execute("DELETE FROM documents WHERE id = %s", (document_id,))
        conn.commit()


@pytest.fixture(scope="session")
def redis_client(test_settings: Settings) -> redis.Redis:
    try:
        return init_redis(test_settings)
    except redis.RedisError as e:
        pytest.skip(f"Redis not available: {e}. Set REDIS_* env to run.")

"""
tests/conftest.py -- Shared test fixtures for PulseCount tests.

This module provides:
  - _make_test_store(): creates an isolated in-memory document store
  - _patch_lifespan(): wires test services into app.state, bypassing real startup
  - documents: fresh single-threaded in-memory store for unit tests
  - api_client: TestClient for API integration tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
for the API client because TestClient runs sync route handlers in a thread
pool. Plain :memory: DBs are per-connection and would present a blank schema
to each worker thread. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process.

DEBUG and BCRYPT_ROUNDS must be set before any app module import:
get_settings() is cached on first use and auth.tokens hashes its dummy
password at import time.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager, suppress

# CRITICAL: Set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.service import AuthService
from auth.store import AccountStore
from core.documents import DocumentStore
from engagement.tracker import EngagementTracker

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_store(db_suffix: str) -> DocumentStore:
    """Create an isolated named shared-memory SQLite document store.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    return DocumentStore(f"sqlite:///file:test_docs_{db_suffix}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(documents: DocumentStore):
    """Return an async context manager that replaces the real lifespan.

    The sweep_task is a long-sleeping coroutine so shutdown has a real
    asyncio.Task to cancel.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.documents = documents
        app.state.auth_service = AuthService(AccountStore(documents))
        app.state.tracker = EngagementTracker(documents)
        app.state.tracker.hydrate()
        app.state.sweep_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.sweep_task.cancel()
        with suppress(asyncio.CancelledError):
            await app.state.sweep_task

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def documents() -> Generator[DocumentStore, None, None]:
    """Fresh in-memory store for single-threaded unit tests."""
    store = DocumentStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture(scope="module")
def api_client(request) -> Generator[TestClient, None, None]:
    """Yield a TestClient bound to an isolated store for this test module.

    Tests share the module's store, so each test uses its own logins and
    X-Forwarded-For addresses.
    """
    documents = _make_test_store(request.module.__name__.rsplit(".", 1)[-1])
    app.router.lifespan_context = _patch_lifespan(documents)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client

    documents.close()

"""Shared test fixtures for the orgscope test suite.

All tests run against a throwaway SQLite file (override with
TEST_DATABASE_URL to point at PostgreSQL). Each test starts from empty
tables; the app creates the schema itself on import.
"""

import os

# Use the test database and a known system actor before any app imports.
os.environ["DATABASE_URL"] = os.environ.get(
    "TEST_DATABASE_URL",
    "sqlite:///./orgscope_test.db",
)
os.environ["SYSTEM_ACTOR_IDS"] = "system-admin"
os.environ["LOG_FORMAT"] = "text"
os.environ["AUDIT_RETENTION_DAYS"] = "0"

import pytest
from sqlalchemy import text
from fastapi.testclient import TestClient

from orgscope.database import get_db, SessionLocal
from orgscope.main import app
from orgscope.core.auth import ActorContext
from orgscope.middleware.request_context import _rate_buckets
from orgscope.schemas.grant import GrantCreate
from orgscope.schemas.node import NodeCreate
from orgscope.schemas.user import MemberCreate
from orgscope.services.grant_service import GrantService
from orgscope.services.hierarchy_service import HierarchyService
from orgscope.services.member_service import MemberService

SYSTEM_ACTOR_ID = "system-admin"

# Tables to clear between tests (order matters for foreign keys).
_CLEAN_TABLES = ["audit_log", "grants", "users", "nodes"]


@pytest.fixture(autouse=True)
def _clean_tables():
    """Empty all data tables before each test for isolation.

    Runs before the test (not after) so test failures leave data
    available for debugging.
    """
    db = SessionLocal()
    try:
        for table in _CLEAN_TABLES:
            db.execute(text(f"DELETE FROM {table}"))
        db.commit()
    finally:
        db.close()
    yield


@pytest.fixture()
def db():
    """Per-test database session."""
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture()
def client(db):
    """FastAPI TestClient with the DB dependency overridden to use the test session."""

    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    _rate_buckets.clear()  # Reset rate limiter so tests don't hit 429
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def system() -> ActorContext:
    return ActorContext.for_actor(SYSTEM_ACTOR_ID)


@pytest.fixture()
def system_headers() -> dict:
    return {"X-Actor-ID": SYSTEM_ACTOR_ID}


def headers_for(actor_id: str) -> dict:
    return {"X-Actor-ID": actor_id}


@pytest.fixture()
def make_node(db, system):
    """Factory: create a node as the system actor."""

    def _make(code: str, parent=None, name: str = None, **overrides):
        data = NodeCreate(
            name=name or code.capitalize(),
            code=code,
            parent_id=parent.id if parent is not None else None,
            **overrides,
        )
        return HierarchyService(db).create_node(data, system)

    return _make


@pytest.fixture()
def make_member(db, system):
    """Factory: register a member anchored at *node*."""

    def _make(email: str, node=None, full_name: str = None, **overrides):
        data = MemberCreate(
            email=email,
            full_name=full_name or email.split("@")[0].title(),
            base_node_id=node.id if node is not None else None,
            **overrides,
        )
        return MemberService(db).create_member(data, system)

    return _make


@pytest.fixture()
def make_grant(db, system):
    """Factory: grant *role* to *member* at *node* as the system actor."""

    def _make(member, node, role: str = "read", inherit: bool = True, **overrides):
        data = GrantCreate(
            actor_id=member.id,
            node_id=node.id,
            role=role,
            inherit_to_descendants=inherit,
            **overrides,
        )
        return GrantService(db).grant(data, system)

    return _make


@pytest.fixture()
def org(make_node):
    """The reference tree used across the suite::

        org
        ├── eng
        │   ├── backend
        │   └── frontend
        └── sales
    """
    root = make_node("org", name="Organization")
    eng = make_node("eng", parent=root, name="Engineering")
    backend = make_node("backend", parent=eng, name="Backend")
    frontend = make_node("frontend", parent=eng, name="Frontend")
    sales = make_node("sales", parent=root, name="Sales")
    return {
        "org": root,
        "eng": eng,
        "backend": backend,
        "frontend": frontend,
        "sales": sales,
    }

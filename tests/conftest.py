"""Root test fixtures shared across all test types.

The database is an in-memory SQLite engine shared through a StaticPool; every
test gets freshly created tables.
"""

import os

# Must be set before any flowcraft import: the engine is built at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_TO_FILES"] = "false"
os.environ["WHATSAPP_TOKEN"] = ""
os.environ["WHATSAPP_BUSINESS_ACCOUNT_ID"] = ""
os.environ["FLOW_WEBHOOK_SECRET"] = ""

# ruff: noqa: E402 - Imports must be after env var setup
import pytest

from flowcraft.core.exceptions import MetaSyncError
from flowcraft.db.base import Base
from flowcraft.db.session import SessionLocal, engine
from flowcraft.schemas.flow import TenantScope

from tests.helpers import SCOPE_HEADERS


class FakeMetaClient:
    """In-memory stand-in for MetaFlowClient that records every call."""

    def __init__(self):
        self.calls = []
        self.uploads = {}
        self.remote_status = {}
        self.fail_on = set()
        self._next_id = 1000

    def _record(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.fail_on:
            raise MetaSyncError(f"{name} failed", details={"call": name})

    def create_flow(self, name, categories=None, endpoint_uri=None):
        self._record("create_flow", name)
        self._next_id += 1
        flow_id = f"meta_{self._next_id}"
        self.remote_status[flow_id] = "DRAFT"
        return flow_id

    def update_flow_json(self, flow_id, flow_json):
        self._record("update_flow_json", flow_id)
        self.uploads[flow_id] = flow_json
        return {"success": True, "validation_errors": []}

    def publish_flow(self, flow_id):
        self._record("publish_flow", flow_id)
        self.remote_status[flow_id] = "PUBLISHED"
        return {"success": True}

    def deprecate_flow(self, flow_id):
        self._record("deprecate_flow", flow_id)
        self.remote_status[flow_id] = "DEPRECATED"
        return {"success": True}

    def delete_flow(self, flow_id):
        self._record("delete_flow", flow_id)
        self.remote_status.pop(flow_id, None)
        return {"success": True}

    def get_flow(self, flow_id):
        self._record("get_flow", flow_id)
        return {"id": flow_id, "status": self.remote_status.get(flow_id, "DRAFT")}

    def called(self, name):
        return [call for call in self.calls if call[0] == name]


@pytest.fixture
def db():
    """Fresh schema per test."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def scope() -> TenantScope:
    return TenantScope(
        tenant_id=SCOPE_HEADERS["X-Tenant-Id"],
        business_account_id=SCOPE_HEADERS["X-Business-Account-Id"],
        app_id=SCOPE_HEADERS["X-App-Id"],
    )


@pytest.fixture
def meta() -> FakeMetaClient:
    return FakeMetaClient()


@pytest.fixture
def client(db):
    """TestClient bound to the test session; Meta sync disabled unless a test sets a client."""
    from fastapi.testclient import TestClient

    from flowcraft.db.session import get_db
    from flowcraft.main import app
    from flowcraft.services import set_meta_flow_client

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    set_meta_flow_client(None)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    set_meta_flow_client(None)

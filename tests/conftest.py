"""Pytest configuration and fixtures."""

from typing import Generator

import pytest
from fastapi.testclient import TestClient

from tableorder.core.config import settings
from tableorder.core.rbac import ClientRole
from tableorder.db.store import InMemoryDocumentStore
from tableorder.main import app
from tableorder.schemas.snapshot import StoreSnapshot
from tableorder.services.client_session import ClientSession
from tableorder.services.seed_service import initial_document
from tableorder.services.sync_service import sanitize_document

# Branch cn1 from the seed data
CN1_LAT = 10.7769
CN1_LON = 106.7009


@pytest.fixture
def seed_document() -> dict:
    """Initial data plus a noodle soup with two topping groups at cn1."""
    doc = initial_document()
    doc["toppings"] = [
        {"id": "t1", "name": "Nấm kim châm", "price": 15000},
        {"id": "t2", "name": "Đậu hũ", "price": 10000},
        {"id": "t3", "name": "Mì", "price": 5000},
        {"id": "t4", "name": "Bún", "price": 0},
    ]
    doc["toppingGroups"] = [
        {"id": "g1", "name": "Thêm topping", "minSelection": 0, "maxSelection": 2, "toppingIds": ["t1", "t2"]},
        {"id": "g2", "name": "Chọn sợi", "minSelection": 1, "maxSelection": 1, "toppingIds": ["t3", "t4"]},
    ]
    doc["menuItems"].append({
        "id": "m5", "name": "Phở Chay", "categoryId": "mc", "price": 60000,
        "branchIds": ["cn1"], "toppingGroupIds": ["g1", "g2"],
    })
    return doc


@pytest.fixture
def store(seed_document) -> InMemoryDocumentStore:
    return InMemoryDocumentStore(seed_document)


@pytest.fixture
def snapshot(store) -> StoreSnapshot:
    return sanitize_document(store.read_all())


@pytest.fixture
def customer(store) -> Generator[ClientSession, None, None]:
    with ClientSession(store, ClientRole.CUSTOMER) as session:
        yield session


@pytest.fixture
def kitchen(store) -> Generator[ClientSession, None, None]:
    with ClientSession(store, ClientRole.KITCHEN) as session:
        session.login("admin", "123")
        yield session


@pytest.fixture
def admin(store) -> Generator[ClientSession, None, None]:
    with ClientSession(store, ClientRole.ADMIN) as session:
        session.login("admin", "123")
        yield session


@pytest.fixture
def checked_in_customer(customer) -> ClientSession:
    """Customer already bound to branch cn1, table 5."""
    customer.cart.branch_id = "cn1"
    customer.cart.table_number = "5"
    return customer


@pytest.fixture(scope="function")
def client(store) -> Generator[TestClient, None, None]:
    """Create a test client backed by the in-memory store."""
    app.state.store = store
    # Disable rate limiters during tests to avoid flaky failures
    from tableorder.core.rate_limit import limiter as global_limiter
    global_limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    global_limiter.enabled = True
    del app.state.store


@pytest.fixture
def kitchen_headers() -> dict:
    return {"X-Client-Role": "kitchen", "X-Session": settings.session_flag_value}


@pytest.fixture
def admin_headers() -> dict:
    return {"X-Client-Role": "admin", "X-Session": settings.session_flag_value}

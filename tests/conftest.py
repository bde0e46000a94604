"""
Pytest fixtures: a throwaway file-backed SQLite database per test, seeded with
a small catalog, plus a FastAPI test client bound to it.
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from stockledger.config import settings
from stockledger.database import create_db_engine, get_db, init_db
from stockledger.main import app
from stockledger.models.catalog import Location, Product
from stockledger.schemas.inventory import InventoryCreate
from stockledger.services import inventory_service

PHONE_CASE = "prod-case"
USB_CABLE = "prod-cable"
MAIN_WAREHOUSE = "loc-main"
BRANCH = "loc-branch"
CLOSED_BRANCH = "loc-closed"


@pytest.fixture(autouse=True)
def fast_retries(monkeypatch):
    monkeypatch.setattr(settings, "RETRY_BASE_DELAY", 0.001)
    monkeypatch.setattr(settings, "RETRY_MAX_DELAY", 0.01)
    monkeypatch.setattr(settings, "ALLOW_NEGATIVE_STOCK", False)


@pytest.fixture
def engine(tmp_path):
    db_engine = create_db_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    init_db(bind=db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def session_factory(engine):
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    session = factory()
    session.add_all([
        Product(
            id=PHONE_CASE, sku="CASE-001", product_code="PC001", name="Phone Case",
            category="Accessories", min_stock_level=5, max_stock_level=200, cost_price=2.5,
        ),
        Product(id=USB_CABLE, sku="CABLE-001", product_code="UC001", name="USB-C Cable", category="Cables"),
        Location(id=MAIN_WAREHOUSE, name="Main Warehouse", location_code="WH-01", location_type="warehouse"),
        Location(id=BRANCH, name="Downtown Branch", location_code="BR-01"),
        Location(id=CLOSED_BRANCH, name="Old Branch", location_code="BR-99", is_active=False),
    ])
    session.commit()
    session.close()
    return factory


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_inventory(db):
    """Create an inventory record through the service, opening stock included."""

    def _make(product_id=PHONE_CASE, location_id=MAIN_WAREHOUSE, quantity=0, **kwargs):
        data = InventoryCreate(product_id=product_id, location_id=location_id, quantity=quantity, **kwargs)
        return inventory_service.create_inventory(db, data, actor="tester")

    return _make


@pytest.fixture
def client(session_factory):
    def _get_test_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_test_db
    # Not entered as a context manager, so the lifespan never touches the default database
    yield TestClient(app)
    app.dependency_overrides.clear()

"""Shared pytest fixtures: a throwaway SQLite database per test and seeded owners/products."""

import itertools
from dataclasses import dataclass

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from inventory_ledger.config import settings
from inventory_ledger.database import create_db_engine, get_db, init_db
from inventory_ledger.main import app
from inventory_ledger.schemas.product import BusinessCreate, CategoryCreate, ProductCreate
from inventory_ledger.services import auth_service, ledger_store, product_service


@dataclass(frozen=True)
class Seed:
    """Ids of the owner, business, category and a product stocked at 50."""

    owner_id: str
    business_id: str
    category_id: str
    product_id: str


@pytest.fixture(autouse=True)
def _fast_retries(monkeypatch):
    monkeypatch.setattr(settings, "MUTATION_RETRY_BACKOFF_SECONDS", 0.0)


@pytest.fixture
def engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def seed(session_factory) -> Seed:
    with session_factory() as session:
        owner = auth_service.create_user(session, "owner@example.com", "Owner")
        business = product_service.create_business(
            session, owner.id, BusinessCreate(name="Corner Shop", business_type="retail")
        )
        category = product_service.create_category(session, business.id, CategoryCreate(name="Beverages"))
        product = product_service.register_product(
            session,
            business.id,
            ProductCreate(category_id=category.id, name="Cola", price=1.5, quantity=50),
            owner.id,
        )
        return Seed(owner.id, business.id, category.id, product.id)


@pytest.fixture
def make_product(session_factory, seed):
    """Factory registering extra products in the seeded business; returns the product id."""
    counter = itertools.count(1)

    def _make(quantity: int = 0, category_id: str | None = None, name: str | None = None) -> str:
        with session_factory() as session:
            product = product_service.register_product(
                session,
                seed.business_id,
                ProductCreate(
                    category_id=category_id or seed.category_id,
                    name=name or f"Product {next(counter)}",
                    quantity=quantity,
                ),
                seed.owner_id,
            )
            return product.id

    return _make


@pytest.fixture
def make_category(session_factory, seed):
    def _make(name: str) -> str:
        with session_factory() as session:
            return product_service.create_category(session, seed.business_id, CategoryCreate(name=name)).id

    return _make


@pytest.fixture
def other_user_id(session_factory) -> str:
    with session_factory() as session:
        return auth_service.create_user(session, "intruder@example.com", "Intruder").id


@pytest.fixture
def ledger_of(session_factory):
    """Read a product's ledger oldest first in a short-lived session."""

    def _read(product_id: str) -> list:
        with session_factory() as session:
            entries, _ = ledger_store.query(session, ledger_store.LedgerFilter(product_id=product_id), order="asc")
            session.expunge_all()
            return entries

    return _read


@pytest.fixture
def quantity_of(session_factory):
    def _read(product_id: str) -> int:
        with session_factory() as session:
            return product_service.find_by_id(session, product_id).quantity

    return _read


@pytest.fixture
def client(session_factory):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(seed) -> dict:
    return {"Authorization": f"Bearer {auth_service.create_access_token(seed.owner_id)}"}

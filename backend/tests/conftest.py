"""Pytest configuration and fixtures."""

import os

# Settings are read at import time; point them at a throwaway database first
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-long-enough-for-jwt")

import pytest
from decimal import Decimal
from typing import Generator

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from poscore.core.context import RequestContext, UserRole
from poscore.core.security import create_access_token
from poscore.db.base import Base
from poscore.db.session import enable_sqlite_foreign_keys, get_db
from poscore.main import app
# Import all models to ensure they're registered with Base.metadata
from poscore.models import *
from poscore.models.location import Location
from poscore.models.product import Product, ProductModifier, ProductVariant
from poscore.models.recipe import RecipeLine
from poscore.models.stock import StockOnHand
from poscore.models.stock_item import StockItem

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

BUSINESS_ID = 1
USER_ID = 7


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    # Disable rate limiters during tests to avoid flaky failures
    from poscore.core.rate_limit import limiter as global_limiter
    global_limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    global_limiter.enabled = True
    app.dependency_overrides.clear()


def seed_catalog(db_session: Session) -> dict:
    """Seed a location, ingredients with stock, products, variants and modifiers.

    Stock: Flour 5000 g, Sugar 50 g, Cheese 2 Kg (recipes use grams).
    """
    location = Location(business_id=BUSINESS_ID, name="Main Branch", code="MAIN", is_default=True, active=True)
    db_session.add(location)
    db_session.flush()

    flour = StockItem(business_id=BUSINESS_ID, name="Flour", unit="grams", storage_unit="grams")
    sugar = StockItem(business_id=BUSINESS_ID, name="Sugar", unit="grams", storage_unit="grams")
    cheese = StockItem(business_id=BUSINESS_ID, name="Cheese", unit="grams", storage_unit="Kg")
    db_session.add_all([flour, sugar, cheese])
    db_session.flush()

    for item, qty in [(flour, "5000"), (sugar, "50"), (cheese, "2")]:
        db_session.add(StockOnHand(item_id=item.id, location_id=location.id, qty=Decimal(qty)))

    # ProductA = 200 g flour
    product_a = Product(business_id=BUSINESS_ID, name="Bread", price=Decimal("10.000"), active=True)
    # ProductB = 100 g sugar
    product_b = Product(business_id=BUSINESS_ID, name="Candy", price=Decimal("5.000"), active=True)
    # Sweet bun = 100 g flour + 10 g sugar, sugar can be left out
    bun = Product(business_id=BUSINESS_ID, name="Sweet Bun", price=Decimal("4.000"), active=True)
    # Pizza: 150 g flour, the Large variant has its own 300 g flour recipe
    pizza = Product(business_id=BUSINESS_ID, name="Pizza", price=Decimal("20.000"), has_variants=True, active=True)
    # No recipe at all
    water = Product(business_id=BUSINESS_ID, name="Water", price=Decimal("1.500"), active=True)
    db_session.add_all([product_a, product_b, bun, pizza, water])
    db_session.flush()

    small = ProductVariant(product_id=pizza.id, name="Small", price_adjustment=Decimal("0"), active=True)
    large = ProductVariant(product_id=pizza.id, name="Large", price_adjustment=Decimal("4.000"), active=True)
    db_session.add_all([small, large])
    db_session.flush()

    extra_cheese = ProductModifier(
        product_id=pizza.id, name="Extra Cheese", item_id=cheese.id, item_quantity=Decimal("30"),
        extra_price=Decimal("1.500"), addable=True, removable=False,
    )
    no_sugar = ProductModifier(
        product_id=bun.id, name="No Sugar", item_id=sugar.id, item_quantity=Decimal("0"),
        extra_price=Decimal("0"), addable=False, removable=True,
    )
    db_session.add_all([extra_cheese, no_sugar])

    db_session.add_all([
        RecipeLine(product_id=product_a.id, item_id=flour.id, qty=Decimal("200")),
        RecipeLine(product_id=product_b.id, item_id=sugar.id, qty=Decimal("100")),
        RecipeLine(product_id=bun.id, item_id=flour.id, qty=Decimal("100"), sort_order=0),
        RecipeLine(product_id=bun.id, item_id=sugar.id, qty=Decimal("10"), sort_order=1),
        RecipeLine(product_id=pizza.id, item_id=flour.id, qty=Decimal("150")),
        RecipeLine(product_id=pizza.id, variant_id=large.id, item_id=flour.id, qty=Decimal("300")),
    ])
    db_session.commit()

    return {
        "db": db_session,
        "location": location,
        "flour": flour,
        "sugar": sugar,
        "cheese": cheese,
        "product_a": product_a,
        "product_b": product_b,
        "bun": bun,
        "pizza": pizza,
        "small": small,
        "large": large,
        "water": water,
        "extra_cheese": extra_cheese,
        "no_sugar": no_sugar,
    }


@pytest.fixture
def catalog(db_session: Session) -> dict:
    return seed_catalog(db_session)


@pytest.fixture
def file_sessions(tmp_path):
    """Session factory on a file SQLite database, for tests that need real threads.

    Each thread opens its own session; writers wait on SQLite's lock.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'concurrency.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def file_catalog(file_sessions):
    """The seeded catalog on the file database: (session factory, ids by name)."""
    with file_sessions() as setup:
        seeded = seed_catalog(setup)
        ids = {name: row.id for name, row in seeded.items() if name != "db"}
    return file_sessions, ids


@pytest.fixture
def context(catalog) -> RequestContext:
    """Request context of a manager at the seeded location."""
    return RequestContext(
        business_id=BUSINESS_ID,
        location_id=catalog["location"].id,
        user_id=USER_ID,
        role=UserRole.MANAGER,
        session_id=3,
    )


@pytest.fixture
def stock_level(db_session: Session, catalog):
    """Return a callable giving the on-hand quantity of a seeded item."""
    def _stock(item) -> Decimal:
        db_session.expire_all()
        row = db_session.query(StockOnHand).filter(
            StockOnHand.item_id == item.id,
            StockOnHand.location_id == catalog["location"].id,
        ).first()
        return Decimal(str(row.qty)) if row else Decimal("0")

    return _stock


def _headers(catalog, role: UserRole) -> dict:
    token = create_access_token(
        data={
            "sub": str(USER_ID),
            "business_id": BUSINESS_ID,
            "location_id": catalog["location"].id,
            "role": role.value,
        }
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(catalog) -> dict:
    """Get authentication headers for a manager."""
    return _headers(catalog, UserRole.MANAGER)


@pytest.fixture
def staff_headers(catalog) -> dict:
    """Get authentication headers for a staff member."""
    return _headers(catalog, UserRole.STAFF)

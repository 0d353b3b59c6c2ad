"""
Pytest configuration and fixtures for ERP service tests.

Provides fixtures for:
- Database engine and session (file-based SQLite)
- Test client with a per-request session
- Master data (supplier, products, locations)
- Purchase orders and stocked batches
"""

import os
from datetime import date, timedelta
from decimal import Decimal
from typing import AsyncGenerator

# Must be set before erp.database creates its engine
os.environ.setdefault("ERP_DATABASE_URL", "sqlite+aiosqlite:///./erp_test_default.sqlite")
os.environ.setdefault("ERP_ENVIRONMENT", "test")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from erp.database import Base, get_db
from erp.main import app

# Import all models to ensure they're registered with Base.metadata before create_all()
from erp.models import InventoryBatch, Location, Product, PurchaseOrder, StockLevel, Supplier
from erp.services import purchase_orders


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without a database")
    config.addinivalue_line("markers", "integration: tests against the API and a SQLite database")


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """Create test database engine."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test_db.sqlite'}", poolclass=NullPool, echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def test_db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def test_supplier(test_db: AsyncSession) -> Supplier:
    """Create an intra-state test supplier."""
    supplier = Supplier(
        company_name="Test Electricals Pvt Ltd",
        contact_person="Test Contact",
        email="sales@testelectricals.in",
        state="Karnataka",
        is_active=True,
    )
    test_db.add(supplier)
    await test_db.commit()
    await test_db.refresh(supplier)
    return supplier


@pytest_asyncio.fixture
async def other_supplier(test_db: AsyncSession) -> Supplier:
    """Create an inter-state test supplier."""
    supplier = Supplier(company_name="Western Test Supplies", state="Maharashtra", is_active=True)
    test_db.add(supplier)
    await test_db.commit()
    await test_db.refresh(supplier)
    return supplier


@pytest_asyncio.fixture
async def test_product(test_db: AsyncSession) -> Product:
    product = Product(name="Contactor 32A", part_code="TST-CT-32A", unit="nos", weight_kg=Decimal("0.500"))
    test_db.add(product)
    await test_db.commit()
    await test_db.refresh(product)
    return product


@pytest_asyncio.fixture
async def second_product(test_db: AsyncSession) -> Product:
    product = Product(name="PLC CPU Module", part_code="TST-PLC-CPU", unit="nos", weight_kg=Decimal("2.000"))
    test_db.add(product)
    await test_db.commit()
    await test_db.refresh(product)
    return product


@pytest_asyncio.fixture
async def test_location(test_db: AsyncSession) -> Location:
    location = Location(name="Main Warehouse", code="TST-WH")
    test_db.add(location)
    await test_db.commit()
    await test_db.refresh(location)
    return location


@pytest_asyncio.fixture
async def second_location(test_db: AsyncSession) -> Location:
    location = Location(name="Site Store", code="TST-SITE")
    test_db.add(location)
    await test_db.commit()
    await test_db.refresh(location)
    return location


@pytest_asyncio.fixture
async def draft_po(
    test_db: AsyncSession, test_supplier: Supplier, test_product: Product, second_product: Product
) -> PurchaseOrder:
    """Draft PO: 10 x test_product @ 100 and 20 x second_product @ 150."""
    return await purchase_orders.create_purchase_order(
        test_db,
        supplier_id=test_supplier.id,
        items=[
            {"product_id": test_product.id, "quantity": Decimal("10"), "unit_price": Decimal("100")},
            {"product_id": second_product.id, "quantity": Decimal("20"), "unit_price": Decimal("150")},
        ],
    )


@pytest_asyncio.fixture
async def approved_po(test_db: AsyncSession, draft_po: PurchaseOrder) -> PurchaseOrder:
    return await purchase_orders.approve_purchase_order(test_db, draft_po.id)


@pytest_asyncio.fixture
async def stocked_batches(
    test_db: AsyncSession, test_supplier: Supplier, test_product: Product, test_location: Location
) -> list[InventoryBatch]:
    """
    Three active batches of test_product at test_location, 10 units each.

    - OLD:  200 days old, landed cost 100
    - MID:  100 days old, landed cost 120
    - NEW:   10 days old, landed cost 90
    """
    today = date.today()
    specs = [("OLD", 200, "100"), ("MID", 100, "120"), ("NEW", 10, "90")]
    batches = []
    for suffix, age, cost in specs:
        batch = InventoryBatch(
            batch_number=f"TEST-BATCH-{suffix}",
            product_id=test_product.id,
            location_id=test_location.id,
            supplier_id=test_supplier.id,
            purchase_date=today - timedelta(days=age),
            received_quantity=Decimal("10"),
            available_quantity=Decimal("10"),
            purchase_price=Decimal(cost),
            landed_cost_per_unit=Decimal(cost),
            performance_score=Decimal("50"),
            status="active",
        )
        test_db.add(batch)
        batches.append(batch)

    test_db.add(StockLevel(product_id=test_product.id, location_id=test_location.id, quantity=Decimal("30")))
    await test_db.commit()
    for batch in batches:
        await test_db.refresh(batch)
    return batches


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client with a fresh database session per request."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", headers={"X-User-Id": "7"}) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def grn_payload(approved_po, test_supplier, test_product, second_product, test_location):
    """Build a GRN request body against ``approved_po``."""

    def build(lines=None, supplier_id=None, purchase_order_id=None):
        if lines is None:
            lines = [
                {"product_id": test_product.id, "received_quantity": 10, "unit_price": 100},
                {"product_id": second_product.id, "received_quantity": 20, "unit_price": 150},
            ]
        return {
            "purchase_order_id": purchase_order_id or approved_po.id,
            "supplier_id": supplier_id or test_supplier.id,
            "items": [{"location_id": test_location.id, **line} for line in lines],
        }

    return build

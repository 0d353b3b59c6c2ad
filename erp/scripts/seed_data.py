"""
Seed data script for local development.

Creates sample suppliers, products, stock locations and one default
allocation strategy per allocation type.
"""

import asyncio
from decimal import Decimal

from sqlalchemy import select

from erp.database import AsyncSessionLocal, init_db
from erp.models import AllocationStrategy, Location, Product, Supplier


async def seed_database():
    """Create seed data for development."""

    print("🌱 Seeding database with sample data...")

    async with AsyncSessionLocal() as db:
        # Check if data already exists
        result = await db.execute(select(Supplier))
        if result.scalars().first():
            print("⚠️  Database already has data. Skipping seed.")
            return

        # Suppliers
        print("\n🏭 Creating suppliers...")
        suppliers = [
            Supplier(
                company_name="Sai Electricals Pvt Ltd",
                contact_person="Ravi Kumar",
                email="sales@saielectricals.in",
                phone="+91 80 4123 5678",
                gstin="29ABCDE1234F1Z5",
                state="Karnataka",
            ),
            Supplier(
                company_name="Western Automation Supplies",
                contact_person="Meera Joshi",
                email="orders@westernautomation.in",
                phone="+91 22 2765 1200",
                gstin="27PQRSX6789K1Z2",
                state="Maharashtra",
            ),
        ]
        db.add_all(suppliers)
        await db.commit()
        for supplier in suppliers:
            print(f"  ✅ Created {supplier.company_name} ({supplier.state})")

        # Products
        print("\n📦 Creating products...")
        products = [
            Product(name="Contactor 32A 3P", part_code="CT-32A-3P", make="Schneider", model="LC1D32", weight_kg=Decimal("0.580")),
            Product(name="MCB 16A SP", part_code="MCB-16A-SP", make="Legrand", model="DX3", weight_kg=Decimal("0.120")),
            Product(name="PLC CPU Module", part_code="PLC-CPU-1214", make="Siemens", model="S7-1200", weight_kg=Decimal("0.415")),
            Product(name="Control Cable 4C x 1.5 sqmm", part_code="CBL-4C-1.5", make="Polycab", unit="mtr", weight_kg=Decimal("0.145")),
        ]
        db.add_all(products)
        await db.commit()
        for product in products:
            print(f"  ✅ Created {product.part_code} - {product.name}")

        # Locations
        print("\n🏬 Creating locations...")
        locations = [
            Location(name="Main Warehouse", code="WH-MAIN"),
            Location(name="Assembly Floor Store", code="ST-ASSY"),
            Location(name="Site Store Bengaluru", code="ST-BLR"),
        ]
        db.add_all(locations)
        await db.commit()
        for location in locations:
            print(f"  ✅ Created {location.code} - {location.name}")

        # Allocation strategies
        print("\n⚖️  Creating allocation strategies...")
        strategies = [
            AllocationStrategy(
                strategy_name="Estimation - Margin Protection",
                strategy_code="EST_MARGIN",
                strategy_type="estimation",
                description="Prices estimates from higher cost batches so quoted margins hold",
                consider_margin_protection=True,
                cost_weight=Decimal("70"),
                age_weight=Decimal("30"),
                prevent_negative_margin=True,
                minimum_margin_percentage=Decimal("10"),
                is_default=True,
            ),
            AllocationStrategy(
                strategy_name="Manufacturing - Cost Optimization",
                strategy_code="MFG_COST",
                strategy_type="manufacturing",
                description="Consumes the cheapest batches first",
                cost_weight=Decimal("70"),
                age_weight=Decimal("20"),
                expiry_weight=Decimal("10"),
                is_default=True,
            ),
            AllocationStrategy(
                strategy_name="Sales - Balanced",
                strategy_code="SALES_BALANCED",
                strategy_type="sales",
                description="Balances cost, age, warranty and batch performance",
                cost_weight=Decimal("30"),
                age_weight=Decimal("25"),
                warranty_weight=Decimal("20"),
                performance_weight=Decimal("15"),
                expiry_weight=Decimal("10"),
                is_default=True,
            ),
        ]
        db.add_all(strategies)
        await db.commit()
        for strategy in strategies:
            print(f"  ✅ Created strategy {strategy.strategy_code} ({strategy.strategy_type})")

    print("\n✅ Database seeded successfully!")
    print("\n📊 Summary:")
    print(f"  - {len(suppliers)} suppliers")
    print(f"  - {len(products)} products")
    print(f"  - {len(locations)} locations")
    print(f"  - {len(strategies)} allocation strategies")


async def main():
    """Main entry point."""
    # Initialize database schema
    print("🔧 Initializing database schema...")
    await init_db()
    print("✅ Database schema created")

    # Seed data
    await seed_database()


if __name__ == "__main__":
    asyncio.run(main())

#!/usr/bin/env python3
"""
Seed categories and providers from catalog_seed.json.

Schema for catalog_seed.json:
- categories: list of objects with
  - name: str (REQUIRED, unique)
  - description: str (optional, shown to the category classifier)
  - markup_retail, markup_reseller: float (default 0.15 / 0.05)
  - is_retail_percentage, is_reseller_percentage: bool (default true)
    Percentage markups are fractions: 0.15 means +15%.
- providers: list of objects with
  - name: str (REQUIRED)
  - phone_number: str (REQUIRED; normalized to digits)
  - is_active: bool (default true)

Existing rows (matched by category name / provider phone) are updated in place.
"""

import asyncio
import json
import sys
from decimal import Decimal
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from price_ingest.db.models import Base, Category, Provider
from price_ingest.db.session import AsyncSessionLocal, engine
from price_ingest.db.vector_store import vector_store
from price_ingest.normalize.phone import normalize_phone


async def seed(seed_file: Path):
    """Upsert categories and providers from the seed file."""
    if not seed_file.exists():
        print(f"Error: {seed_file} not found")
        sys.exit(1)

    try:
        with open(seed_file, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        print(f"Error: Invalid JSON in {seed_file}: {e}")
        sys.exit(1)

    async with AsyncSessionLocal() as db:
        await vector_store.ensure_extension(db)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    created = updated = skipped = 0

    async with AsyncSessionLocal() as db:
        for item in data.get("categories", []):
            name = (item.get("name") or "").strip()
            if not name:
                print(f"  ✗ Skipping category without name: {item}")
                skipped += 1
                continue

            result = await db.execute(select(Category).where(Category.name == name))
            category = result.scalar_one_or_none()
            if category is None:
                category = Category(name=name)
                db.add(category)
                created += 1
                print(f"  + Category {name}")
            else:
                updated += 1
                print(f"  ~ Category {name}")

            category.description = item.get("description")
            category.markup_retail = Decimal(str(item.get("markup_retail", 0.15)))
            category.markup_reseller = Decimal(str(item.get("markup_reseller", 0.05)))
            category.is_retail_percentage = bool(item.get("is_retail_percentage", True))
            category.is_reseller_percentage = bool(item.get("is_reseller_percentage", True))

        for item in data.get("providers", []):
            phone = normalize_phone(item.get("phone_number"))
            name = (item.get("name") or "").strip()
            if not phone or not name:
                print(f"  ✗ Skipping provider without name/phone: {item}")
                skipped += 1
                continue

            result = await db.execute(select(Provider).where(Provider.phone_number == phone))
            provider = result.scalar_one_or_none()
            if provider is None:
                provider = Provider(phone_number=phone, name=name)
                db.add(provider)
                created += 1
                print(f"  + Provider {name} ({phone})")
            else:
                provider.name = name
                updated += 1
                print(f"  ~ Provider {name} ({phone})")

            provider.is_active = bool(item.get("is_active", True))

        await db.commit()

    print(f"\nDone: {created} created, {updated} updated, {skipped} skipped")


if __name__ == "__main__":
    path = Path(sys.argv[1]) if len(sys.argv) > 1 else Path(__file__).parent.parent / "catalog_seed.json"
    asyncio.run(seed(path))

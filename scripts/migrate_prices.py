"""
Copy the deprecated price_2025 / price_2026 columns into the per-year prices map.
Years already present in prices are left untouched.

Usage:
    python scripts/migrate_prices.py [--dry-run]
"""
import sys
import os
import argparse

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from sqlalchemy.orm import Session
from marina.db import session_scope
from marina.models.models import Resource


LEGACY_COLUMNS = {
    "2025": "price_2025",
    "2026": "price_2026",
}


def merged_prices(resource: Resource) -> dict:
    prices = dict(resource.prices or {})
    for year, column in LEGACY_COLUMNS.items():
        value = getattr(resource, column)
        if value is not None and year not in prices:
            prices[year] = value
    return prices


def migrate_prices(db: Session, dry_run: bool = False) -> int:
    """Returns the number of resources that were (or would be) updated."""
    updated = 0
    for resource in db.query(Resource).order_by(Resource.marking_code).all():
        prices = merged_prices(resource)
        if prices == (resource.prices or {}):
            continue
        updated += 1
        print(f"  {resource.marking_code}: {resource.prices or {}} -> {prices}")
        if not dry_run:
            resource.prices = prices
    if dry_run:
        db.rollback()
    else:
        db.commit()
    return updated


def main():
    parser = argparse.ArgumentParser(description="Migrate legacy price columns into the prices map")
    parser.add_argument("--dry-run", action="store_true", help="Show what would change without writing")
    args = parser.parse_args()

    with session_scope() as db:
        count = migrate_prices(db, dry_run=args.dry_run)

    if args.dry_run:
        print(f"[dry-run] {count} resource(s) would be updated")
    else:
        print(f"✅ Updated {count} resource(s)")


if __name__ == "__main__":
    main()

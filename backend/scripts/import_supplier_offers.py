"""
Script to import a supplier offer CSV into the database.

Usage: python scripts/import_supplier_offers.py path/to/offers.csv
"""
import sys
import os
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from app.db.database import SessionLocal, engine, Base
from app.services.offer_import import import_offers, read_offer_csv


def main(argv):
    if len(argv) < 2:
        print("Usage: python scripts/import_supplier_offers.py path/to/offers.csv")
        return 2

    csv_path = Path(argv[1])
    if not csv_path.is_absolute():
        csv_path = Path.cwd() / csv_path
    if not csv_path.exists():
        print(f"✗ File not found: {csv_path}")
        return 1

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        report = import_offers(db, read_offer_csv(str(csv_path)))
    finally:
        db.close()

    print(f"✓ created={report.created} updated={report.updated} failed={report.failed}")
    print(f"  cost basis rows written: {report.cost_basis_written}")
    for error in report.errors:
        print(f"  row {error['row']}: {error['error']}")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))

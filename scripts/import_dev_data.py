"""
Load development tours from a JSON file, or empty every table.
Run: python scripts/import_dev_data.py --import dev-data/tours.json
     python scripts/import_dev_data.py --delete
The target database is DATABASE_URL (see natours.core.config).
"""

import argparse
import json
import sys
from typing import Any, Dict, List, Optional

from sqlalchemy import insert

from natours.db.database import SessionLocal, clear_db, init_db
from natours.db.models import Tour

# Document-style keys -> column names
FIELD_MAP = {
    "maxGroupSize": "max_group_size",
    "ratingsAverage": "rating",
    "ratingsQuantity": "ratings_quantity",
    "priceDiscount": "price_discount",
    "imageCover": "image_cover",
    "startDates": "start_dates",
    "secretTour": "secret_tour",
}

TOUR_COLUMNS = set(Tour.__table__.c.keys()) - {"id", "created_at"}


def to_row(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten one tour document into column values; unknown keys are dropped."""
    row = {}
    for key, value in doc.items():
        if key == "startLocation" and isinstance(value, dict):
            row["start_location_type"] = value.get("type", "Point")
            row["start_location_coordinates"] = value.get("coordinates")
            row["start_location_address"] = value.get("address")
            row["start_location_description"] = value.get("description")
            continue
        column = FIELD_MAP.get(key, key)
        if column in TOUR_COLUMNS:
            row[column] = value

    if row.get("start_dates"):
        # "2021-04-25,10:00" and full timestamps both reduce to the date
        row["start_dates"] = [str(d)[:10] for d in row["start_dates"]]
    if isinstance(row.get("guides"), list) and not all(isinstance(g, int) for g in row["guides"]):
        row.pop("guides")
    return row


def import_tours(path: str) -> int:
    with open(path, "r", encoding="utf-8") as f:
        docs: List[Dict[str, Any]] = json.load(f)

    rows = [to_row(doc) for doc in docs]
    db = SessionLocal()
    try:
        for row in rows:
            db.execute(insert(Tour).values(**row))
        db.commit()
    finally:
        db.close()
    return len(rows)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Natours development data")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--import", dest="import_path", metavar="FILE", help="tours JSON file to load")
    group.add_argument("--delete", action="store_true", help="delete all rows from every table")
    args = parser.parse_args(argv)

    init_db()

    if args.delete:
        clear_db()
        print("Data successfully deleted!")
        return 0

    count = import_tours(args.import_path)
    print(f"Data successfully loaded! ({count} tours)")
    return 0


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""Load bank codes and BICs into the bank_data table.

Usage:
  python scripts/import_bank_data.py <database_url> <csv_file> [--replace]

CSV columns (header required):
  country_code,bank_code,name,zip,city,bic

Steps:
  Step 1: Read and check the CSV
  Step 2: Create tables if missing
  Step 3: Insert rows (optionally replacing the rows of the same countries)
"""

import asyncio
import csv
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

REQUIRED_COLUMNS = ("country_code", "bank_code", "name", "zip", "city", "bic")
BATCH_SIZE = 1000


def step_header(n: int, title: str) -> None:
    print(f"\n{'='*60}")
    print(f"  Step {n}: {title}")
    print(f"{'='*60}\n")


def ok(msg: str) -> None:
    print(f"  ✅ {msg}")


def fail(msg: str) -> None:
    print(f"  ❌ {msg}")


def info(msg: str) -> None:
    print(f"  ℹ️  {msg}")


def read_rows(path: str) -> list[dict]:
    step_header(1, "Read CSV")
    with open(path, newline="", encoding="utf-8") as fh:
        reader = csv.DictReader(fh)
        missing = [c for c in REQUIRED_COLUMNS if c not in (reader.fieldnames or [])]
        if missing:
            fail(f"Missing columns: {', '.join(missing)}")
            return []

        rows = []
        skipped = 0
        for raw in reader:
            country_code = (raw["country_code"] or "").strip().upper()
            bank_code = (raw["bank_code"] or "").strip()
            if len(country_code) != 2 or not bank_code:
                skipped += 1
                continue
            rows.append({
                "country_code": country_code,
                "bank_code": bank_code,
                "name": (raw["name"] or "").strip(),
                "zip": (raw["zip"] or "").strip(),
                "city": (raw["city"] or "").strip(),
                "bic": (raw["bic"] or "").strip().upper() or None,
            })

    ok(f"Read {len(rows)} rows")
    if skipped:
        info(f"Skipped {skipped} rows without country code or bank code")
    return rows


async def load(database_url: str, rows: list[dict], replace: bool) -> bool:
    from sqlalchemy import delete, insert

    from ibanservice.database import close_db, create_engine, init_db
    from ibanservice.models import BankData

    step_header(2, "Create tables")
    engine = create_engine(database_url)
    if not await init_db(engine):
        fail("Database unavailable")
        await close_db(engine)
        return False
    ok("bank_data table ready")

    step_header(3, "Insert rows")
    countries = sorted({r["country_code"] for r in rows})
    async with engine.begin() as conn:
        if replace:
            await conn.execute(delete(BankData).where(BankData.country_code.in_(countries)))
            info(f"Removed existing rows for {', '.join(countries)}")
        for i in range(0, len(rows), BATCH_SIZE):
            await conn.execute(insert(BankData), rows[i:i + BATCH_SIZE])
    ok(f"Inserted {len(rows)} rows for {len(countries)} countries")

    await close_db(engine)
    return True


def main() -> int:
    args = [a for a in sys.argv[1:] if not a.startswith("--")]
    if len(args) != 2:
        print(__doc__)
        return 2

    database_url, csv_path = args
    rows = read_rows(csv_path)
    if not rows:
        return 1
    return 0 if asyncio.run(load(database_url, rows, "--replace" in sys.argv)) else 1


if __name__ == "__main__":
    sys.exit(main())

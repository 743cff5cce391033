"""테스트용 레코드 등록 스크립트

사용법:
    python scripts/seed_records.py records.csv        # id,asset_locator 형식 CSV
    python scripts/seed_records.py --url https://example.com/a.jpg --url https://example.com/b.jpg
"""
import argparse
import asyncio
import csv
import sys
import uuid
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from common.config import load_config
from database.registry import DatabaseRegistry
from record.exception import DuplicateRecordError
from record.store import RecordStore


def read_rows(args: argparse.Namespace) -> list[tuple[str, str]]:
    rows = [(str(uuid.uuid4()), url) for url in args.url]
    if args.csv_file:
        with open(args.csv_file, encoding="utf-8", newline="") as f:
            for row in csv.reader(f):
                if len(row) >= 2 and row[0] != "id":
                    rows.append((row[0].strip(), row[1].strip()))
    return rows


async def seed(rows: list[tuple[str, str]], config_dir: str | None) -> None:
    config = load_config(config_dir)
    await DatabaseRegistry.init_from_config(config, ["default"])
    store = RecordStore()
    inserted = 0
    try:
        for record_id, locator in rows:
            try:
                await store.add(record_id, locator)
                inserted += 1
            except DuplicateRecordError as e:
                print(f"Skipped: {e.message}")
        print(f"Inserted {inserted} record(s), pending: {await store.count_pending()}")
    finally:
        await DatabaseRegistry.close_all()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed records for embedding backfill")
    parser.add_argument("csv_file", nargs="?", help="id,asset_locator CSV")
    parser.add_argument("--url", action="append", default=[], help="에셋 URL (id는 자동 생성)")
    parser.add_argument("--config-dir", default=None)
    args = parser.parse_args()

    rows = read_rows(args)
    if not rows:
        parser.print_usage()
        sys.exit(1)

    asyncio.run(seed(rows, args.config_dir))

"""
Demo Dataset Export

Writes a generated demo workspace to CSV files (one per table) without
touching a database. Useful for inspecting the data or loading it with
other tools.

Usage:
    python scripts/generate_dataset.py --days 60 --end 2025-01-31
"""

import argparse
from datetime import date, timedelta
from pathlib import Path

from opsboard.config.logging import configure_logging
from opsboard.data.generators import DemoWorkspaceGenerator

OUTPUT_DIR = Path(__file__).parent.parent / "data" / "generated"


def main() -> None:
    parser = argparse.ArgumentParser(description="Export a demo workspace as CSV")
    parser.add_argument("--days", type=int, default=30)
    parser.add_argument("--end", help="Last day, YYYY-MM-DD (default: yesterday)")
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--output", type=Path, default=OUTPUT_DIR)
    args = parser.parse_args()

    configure_logging()
    end = date.fromisoformat(args.end) if args.end else date.today() - timedelta(days=1)
    dataset = DemoWorkspaceGenerator(seed=args.seed).generate(end=end, days=args.days)
    dataset.save_csv(args.output)

    print(f"Workspace {dataset.workspace_id}: {dataset.start} .. {dataset.end}")
    for table, rows in dataset.counts().items():
        print(f"   {table}.csv: {rows:,} rows")


if __name__ == "__main__":
    main()

"""
Synthetic Shop Dataset Generator
Writes a generated store (catalog, locations, levels, orders) as JSON
fixtures plus a flat CSV of order lines.
"""

import json
from datetime import datetime, timezone
from pathlib import Path

import polars as pl

from stockpulse.data.generators import SyntheticShop
from stockpulse.ingestion.collector import order_to_lines, parse_timestamp
from stockpulse.transformation.aggregator import lines_to_frame

OUTPUT_DIR = Path(__file__).parent.parent / "data" / "generated"


def write_json(name, records):
    path = OUTPUT_DIR / f"{name}.json"
    path.write_text(json.dumps(records, indent=2))
    print(f"   {path.name}: {len(records):,} records")


def main():
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    print("=" * 60)
    print("Synthetic Shop Dataset Generator")
    print("=" * 60 + "\n")

    shop = SyntheticShop.generate(seed=42, n_products=60, n_orders=2000, days=120)

    write_json("variants", shop.variants)
    write_json("locations", shop.locations)
    write_json("inventory_levels", shop.levels)
    write_json("orders", shop.orders)

    lines = []
    for order in shop.orders:
        lines.extend(order_to_lines(order, parse_timestamp(order["created_at"])))

    df = lines_to_frame(lines).with_columns(
        pl.Series("created_at", [line.created_at for line in lines]),
        pl.Series("channel", [line.channel.value for line in lines]),
    )
    df.write_csv(OUTPUT_DIR / "order_lines.csv")
    print(f"   order_lines.csv: {len(df):,} rows")

    print(f"\nGenerated at {datetime.now(timezone.utc).isoformat()} -> {OUTPUT_DIR}")


if __name__ == "__main__":
    main()

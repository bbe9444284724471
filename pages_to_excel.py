#!/usr/bin/env python3
"""Export stored pages from the SQLite database to Excel (.xlsx) format."""

import json
import sqlite3
import sys
from pathlib import Path

import pandas as pd

# Vectors are not useful in a spreadsheet
EXPORT_COLUMNS = [
    "id",
    "url",
    "title",
    "date",
    "author",
    "source",
    "decay_probability",
    "is_decayed",
    "hints",
    "metadata",
    "created_at",
]


def _flatten(value):
    if value is None:
        return ""
    try:
        decoded = json.loads(value)
    except (TypeError, ValueError):
        return value
    if isinstance(decoded, list):
        return ", ".join(str(v) for v in decoded)
    if isinstance(decoded, dict):
        return ", ".join(f"{k}={v}" for k, v in decoded.items())
    return decoded


def pages_to_excel(db_path: str, excel_path: str | None = None) -> Path:
    """
    Write the pages table to an Excel file.

    Args:
        db_path: Path to the pipeline SQLite database
        excel_path: Path to output Excel file (default: same name with .xlsx extension)
    """
    db_file = Path(db_path)
    if not db_file.exists():
        raise FileNotFoundError(f"Database not found: {db_path}")

    out = Path(excel_path) if excel_path else db_file.with_suffix(".xlsx")

    conn = sqlite3.connect(str(db_file))
    try:
        df = pd.read_sql_query(
            f"SELECT {', '.join(EXPORT_COLUMNS)} FROM pages ORDER BY created_at", conn
        )
    finally:
        conn.close()

    df["is_decayed"] = df["is_decayed"].astype(bool)
    for col in ("hints", "metadata"):
        df[col] = df[col].apply(_flatten)

    df.to_excel(out, index=False, engine="openpyxl")
    print(f"Exported {len(df)} pages from {db_file.name} to {out.name}")
    print(f"  Output file: {out.absolute()}")
    return out


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python pages_to_excel.py <pages.db> [output.xlsx]")
        print("\nExample:")
        print("  python pages_to_excel.py output/pages.db")
        print("  python pages_to_excel.py output/pages.db output/pages.xlsx")
        sys.exit(1)

    try:
        pages_to_excel(sys.argv[1], sys.argv[2] if len(sys.argv) > 2 else None)
    except FileNotFoundError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

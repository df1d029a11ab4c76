"""Sales export reader.

Reads the tabular sales export (one row per product variant) into
SalesRecord values. Only three columns are used, looked up by header name:

- "Product title"
- "Product variant title"
- "Net items sold"

Bad rows are skipped with a diagnostic; a missing file or a missing header
is fatal to the run.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

import pandas as pd

from catalog_sort.services.sales_tally import SalesRecord

logger = logging.getLogger("catalog_sort")

COL_PRODUCT_TITLE = "Product title"
COL_VARIANT_TITLE = "Product variant title"
COL_NET_ITEMS_SOLD = "Net items sold"

REQUIRED_COLUMNS = (COL_PRODUCT_TITLE, COL_VARIANT_TITLE, COL_NET_ITEMS_SOLD)

_THOUSANDS_RE = re.compile(r"(?<=\d),(?=\d{3}\b)")


class SalesImportError(RuntimeError):
    pass


@dataclass
class SalesImportResult:
    records: list[SalesRecord] = field(default_factory=list)
    skipped: int = 0


def parse_units(values: pd.Series) -> pd.Series:
    """Parse "Net items sold" cells into a nullable integer Series.

    Thousands separators are ignored and integral floats ("12.0") are accepted.
    Cells that are empty, non-numeric or fractional come back as <NA>.
    """
    cleaned = values.fillna("").astype(str).str.strip().str.replace(_THOUSANDS_RE, "", regex=True)
    numeric = pd.to_numeric(cleaned, errors="coerce")
    integral = numeric.notna() & (numeric % 1 == 0)
    return numeric.where(integral).astype("Int64")


def load_sales_records(path: str | Path) -> SalesImportResult:
    """Read sales records from a CSV export.

    Raises:
        SalesImportError: If the file is missing/unreadable or lacks a required column.
    """
    csv_path = Path(path)
    logger.info(f"Reading sales data from {csv_path}...")
    if not csv_path.exists():
        raise SalesImportError(f"CSV file not found: {csv_path}")

    try:
        df = pd.read_csv(csv_path, dtype=str, keep_default_na=False, skip_blank_lines=True)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError, OSError) as e:
        raise SalesImportError(f"Could not read sales export {csv_path}: {e}") from e

    df.columns = [str(c).strip() for c in df.columns]
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise SalesImportError(f"Sales export {csv_path} is missing required column(s): {missing}")

    result = SalesImportResult()
    rows = zip(
        df[COL_PRODUCT_TITLE].str.strip(),
        df[COL_VARIANT_TITLE].str.strip(),
        df[COL_NET_ITEMS_SOLD],
        parse_units(df[COL_NET_ITEMS_SOLD]),
    )
    for row_number, (product_title, variant_title, units_raw, parsed) in enumerate(rows, start=1):
        units = None if pd.isna(parsed) else int(parsed)

        if not product_title or not variant_title:
            result.skipped += 1
            logger.warning(f"Skipping bad CSV row {row_number}: missing product or variant title")
            continue
        if units is None:
            result.skipped += 1
            logger.warning(
                f"Skipping bad CSV row {row_number}: non-numeric \"{COL_NET_ITEMS_SOLD}\" "
                f"value {units_raw!r} for \"{product_title}\" / \"{variant_title}\""
            )
            continue

        result.records.append(
            SalesRecord(product_title=product_title, variant_title=variant_title, units_sold=units)
        )

    logger.info(f"Read {len(result.records)} sales rows from {csv_path} ({result.skipped} skipped)")
    return result

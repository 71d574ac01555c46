"""Console rendering and CSV export of enriched pricing rows."""

import csv
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table

from .errors import SpotEvictionError
from .schema import EnrichedRow

COLUMNS = [
    "SKU",
    "OS",
    "Region",
    "Spot Price",
    "PAYG Price",
    "Savings",
    "Eviction Risk",
    "Eviction Rate",
    "Source",
]

RISK_STYLES = {
    "Very Low": "green",
    "Low": "green",
    "Low-Medium": "yellow",
    "Medium": "yellow",
    "Medium-High": "dark_orange",
    "High": "red",
}


def export_csv(rows: list[EnrichedRow], path: Path) -> Path:
    """Write rows to a CSV file and return its path."""
    if path.suffix.lower() in ('.xlsx', '.xls'):
        raise SpotEvictionError("Spreadsheet export is not supported; use a .csv output path")

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8', newline='') as f:
        writer = csv.DictWriter(f, fieldnames=COLUMNS)
        writer.writeheader()
        for row in rows:
            writer.writerow(row.as_record())
    return path


def build_table(rows: list[EnrichedRow], title: Optional[str] = None) -> Table:
    table = Table(title=title or "Spot Pricing and Eviction Risk", show_lines=False)
    for column in COLUMNS:
        justify = "right" if column in ("Spot Price", "PAYG Price", "Savings") else "left"
        table.add_column(column, justify=justify)

    for row in rows:
        record = row.as_record()
        style = RISK_STYLES.get(row.eviction.risk_label, "dim")
        cells = [record[column] for column in COLUMNS]
        risk_index = COLUMNS.index("Eviction Risk")
        cells[risk_index] = f"[{style}]{cells[risk_index]}[/{style}]"
        table.add_row(*cells)

    return table


def render_table(rows: list[EnrichedRow], console: Console, title: Optional[str] = None) -> None:
    console.print(build_table(rows, title))

"""Utilities for exporting run data to files."""

import json
import logging
from pathlib import Path
from typing import Any, Literal

from .config import settings
from .observability.models import RunRecord

logger = logging.getLogger(__name__)

ExportFormat = Literal["json", "csv"]


def _records(data: Any) -> list[Any]:
    """Flatten scraped data into a list of rows."""
    if isinstance(data, list):
        return data
    # A single named scrape set: export its rows directly
    if isinstance(data, dict) and len(data) == 1:
        (only,) = data.values()
        if isinstance(only, list):
            return only
    return [data]


def to_csv(data: Any) -> str:
    """Render rows as CSV text.

    Columns are the keys of the first row; each cell is the JSON encoding of
    the row's value, with missing or null values written as "".
    """
    rows = _records(data)
    if not rows or not isinstance(rows[0], dict):
        raise ValueError("CSV export requires a list of objects")

    headers = list(rows[0].keys())
    lines = [",".join(headers)]
    for row in rows:
        values = row if isinstance(row, dict) else {}
        lines.append(",".join(json.dumps("" if values.get(h) is None else values.get(h)) for h in headers))
    return "\n".join(lines)


def export_run_data(run: RunRecord, fmt: str = "json", directory: Path | None = None) -> Path:
    """Write a run's scraped data to the results directory.

    Args:
        run: Run whose result holds scrapedData (or workflow data)
        fmt: 'json' or 'csv'
        directory: Override for the output directory

    Returns:
        Path to the written file, named run-<id>-data.<fmt>

    Raises:
        ValueError: If the run has no data or the format is unsupported
    """
    if fmt not in ("json", "csv"):
        raise ValueError(f"Unsupported export format: {fmt}. Use 'json' or 'csv'.")

    data = run.scraped_data
    if not data:
        raise ValueError(f"No data to export for run '{run.run_id}'")

    content = json.dumps(data, indent=2) if fmt == "json" else to_csv(data)

    results_dir = directory or settings.get_results_dir()
    results_dir.mkdir(parents=True, exist_ok=True)
    file_path = results_dir / f"run-{run.run_id}-data.{fmt}"
    file_path.write_text(content, encoding="utf-8")

    logger.info(f"Exported run data to {file_path}")
    return file_path

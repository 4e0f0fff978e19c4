"""File-backed source and sink using polars."""

import json
from pathlib import Path
from typing import List, Optional

import polars as pl

from ..logging_config import get_logger
from ..utils.typing import Batch, Record

logger = get_logger(__name__)


def read_table(path: str) -> pl.DataFrame:
    """Load a CSV, parquet or xlsx file into a DataFrame."""
    suffix = Path(path).suffix.lower()
    if suffix == ".csv":
        return pl.read_csv(path)
    if suffix == ".parquet":
        return pl.read_parquet(path)
    if suffix == ".xlsx":
        return pl.read_excel(path)
    raise ValueError(f"Unsupported file format: {path}")


def _flatten_for_csv(row: dict) -> dict:
    # CSV cannot hold nested columns
    return {
        key: json.dumps(value, default=str) if isinstance(value, (list, dict)) else value
        for key, value in row.items()
    }


class TableSource:
    """Serve pages of rows from a DataFrame loaded once up front."""

    def __init__(self, df: pl.DataFrame, id_column: Optional[str] = None):
        if id_column is not None and id_column not in df.columns:
            raise ValueError(f"Missing id column {id_column!r}")
        self.df = df
        self.id_column = id_column

    @classmethod
    def from_path(cls, path: str, id_column: Optional[str] = None) -> "TableSource":
        return cls(read_table(path), id_column=id_column)

    async def fetch(self, limit: int, offset: int) -> List[Record]:
        chunk = self.df.slice(offset, limit)
        records = []
        for i, row in enumerate(chunk.iter_rows(named=True)):
            record_id = row[self.id_column] if self.id_column else offset + i
            records.append(Record(id=record_id, data=row))
        return records


class FileSink:
    """
    Write delivered batches to a CSV or parquet file.

    Lookups may return different keys per record, so no batch fixes the
    column set. Rows are collected and ``close()`` writes the union of all
    columns in one go, filling gaps with nulls.
    """

    def __init__(self, filepath: str):
        self.filepath = filepath
        self.format = Path(filepath).suffix.lower()
        if self.format not in (".csv", ".parquet"):
            raise ValueError(f"Unsupported file format: {filepath}")
        self.rows_written = 0
        self._pending: List[pl.DataFrame] = []

    async def deliver(self, batch: Batch) -> int:
        rows = [record.to_dict() for record in batch]
        if self.format == ".csv":
            rows = [_flatten_for_csv(row) for row in rows]
        df = pl.DataFrame(rows)
        self._pending.append(df)
        self.rows_written += len(df)
        return len(df)

    def close(self) -> None:
        """Write all collected rows to disk."""
        if not self._pending:
            return
        df = pl.concat(self._pending, how="diagonal_relaxed")
        if self.format == ".csv":
            df.write_csv(self.filepath)
        else:
            df.write_parquet(self.filepath)
        self._pending = []
        logger.debug(f"Wrote {self.rows_written} rows to {self.filepath}")

"""
In-Memory Storage

Dictionary-backed StorageAdapter used by the CLI and the test-suite:
- Tables are append-only lists of row dicts
- select() applies equality filters from ``where`` and returns the newest rows first
- Tables can be seeded from / exported to pandas DataFrames or JSON files
"""

import copy
import json
import logging
import os
from collections import defaultdict
from typing import Any, Dict, List, Optional

import pandas as pd

from storage.adapter import StorageAdapter, StorageError

logger = logging.getLogger(__name__)


class InMemoryStorage(StorageAdapter):
    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.tables: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        for name, rows in (tables or {}).items():
            self.tables[name].extend(copy.deepcopy(rows))

    async def select(self, table: str, query: Dict[str, Any]) -> List[Dict[str, Any]]:
        where = query.get('where') or {}
        limit = query.get('limit')

        rows = [
            row for row in reversed(self.tables.get(table, []))
            if all(row.get(column) == value for column, value in where.items())
        ]
        if limit is not None:
            rows = rows[:limit]
        return copy.deepcopy(rows)

    async def insert(self, table: str, record: Dict[str, Any]) -> None:
        if not isinstance(record, dict):
            raise StorageError(f"Cannot insert {type(record).__name__} into {table}")
        self.tables[table].append(copy.deepcopy(record))
        logger.debug(f"Inserted record {record.get('id', '?')} into {table}")

    def count(self, table: str) -> int:
        return len(self.tables.get(table, []))

    def to_frame(self, table: str) -> pd.DataFrame:
        """Flat view of a table for inspection."""
        return pd.json_normalize(self.tables.get(table, []))

    @classmethod
    def from_json(cls, path: str) -> 'InMemoryStorage':
        """Seed tables from a JSON document of the form {table: [rows]}."""
        if not os.path.exists(path):
            raise StorageError(f"Storage file not found: {path}")
        with open(path, 'r') as f:
            return cls(json.load(f))

    def save_json(self, path: str) -> None:
        with open(path, 'w') as f:
            json.dump(dict(self.tables), f, indent=2, default=str)
        logger.info(f"Saved {sum(len(r) for r in self.tables.values())} rows to {path}")

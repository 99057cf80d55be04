"""
Storage Adapter Interface

The signal engine touches persistence through two calls only:
- select(table, query) with query shape {'limit': int, 'where': {column: value}}
- insert(table, record)

It reads ``historical_patterns`` and writes ``trading_signals``.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List


class StorageError(Exception):
    """Raised by adapters when the backing store cannot serve a request"""


class StorageAdapter(ABC):

    @abstractmethod
    async def select(self, table: str, query: Dict[str, Any]) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def insert(self, table: str, record: Dict[str, Any]) -> None:
        ...

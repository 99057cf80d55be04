"""
Pattern Store Client

Read-only access to the corpus of historical (context embedding, realized
outcome) pairs kept by the storage collaborator. The corpus is an
append-only log keyed by pattern id; the client reads whatever subset the
adapter returns for a query and never writes or deletes.
"""

import logging
from typing import Any, Dict, List, Optional

from engine.models import HistoricalPattern
from storage.adapter import StorageAdapter

logger = logging.getLogger(__name__)

PATTERNS_TABLE = 'historical_patterns'


class PatternStoreClient:
    def __init__(self, storage: StorageAdapter, table: str = PATTERNS_TABLE,
                 embedding_dimension: Optional[int] = None):
        self.storage = storage
        self.table = table
        self.embedding_dimension = embedding_dimension

    async def fetch(self, limit: int, where: Optional[Dict[str, Any]] = None) -> List[HistoricalPattern]:
        """
        Load up to ``limit`` patterns matching ``where``.

        Malformed rows and rows whose embedding has the wrong dimension are
        skipped. Storage errors propagate to the caller.
        """
        rows = await self.storage.select(self.table, {'limit': limit, 'where': where or {}})

        patterns = []
        for row in rows:
            try:
                pattern = HistoricalPattern.from_record(row)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed pattern row {row.get('id', '?')}: {e}")
                continue

            if self.embedding_dimension and pattern.embedding.shape != (self.embedding_dimension,):
                logger.debug(
                    f"Skipping pattern {pattern.pattern_id}: embedding shape {pattern.embedding.shape}"
                )
                continue
            patterns.append(pattern)

        logger.debug(f"Loaded {len(patterns)}/{len(rows)} patterns from {self.table}")
        return patterns

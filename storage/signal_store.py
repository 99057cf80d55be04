"""
Signal Store Writer

Persists finished signals to ``trading_signals`` and loads them back for the
update path. Writes are best-effort: a failed insert is logged and reported
to the caller as False, never raised.
"""

import logging
from typing import Optional

from engine.models import Signal, StoredSignal
from storage.adapter import StorageAdapter

logger = logging.getLogger(__name__)

SIGNALS_TABLE = 'trading_signals'


class SignalStoreWriter:
    def __init__(self, storage: StorageAdapter, table: str = SIGNALS_TABLE):
        self.storage = storage
        self.table = table

    async def save(self, signal: Signal) -> bool:
        try:
            await self.storage.insert(self.table, signal.to_record())
            return True
        except Exception as e:
            logger.warning(f"Failed to store signal for {signal.ticker}: {e}")
            return False

    async def fetch(self, signal_id: str) -> Optional[StoredSignal]:
        """Load a stored signal by id; None when missing or unreadable. Storage errors propagate."""
        rows = await self.storage.select(self.table, {'limit': 1, 'where': {'id': signal_id}})
        if not rows:
            return None
        try:
            return StoredSignal.from_record(rows[0])
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Stored signal {signal_id} is unreadable: {e}")
            return None

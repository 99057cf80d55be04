"""
Unit tests for the in-memory storage adapter and the signal store writer.
"""

from unittest.mock import AsyncMock

import pytest

from analyzers.risk import RiskLevel
from engine.models import AnalysisDepth, TimeHorizon
from storage.adapter import StorageError
from storage.memory import InMemoryStorage
from storage.signal_store import SignalStoreWriter


@pytest.fixture
def seeded():
    return InMemoryStorage({'trading_signals': [
        {'id': 's1', 'ticker': 'AAPL', 'action': 'BUY'},
        {'id': 's2', 'ticker': 'MSFT', 'action': 'SELL'},
        {'id': 's3', 'ticker': 'AAPL', 'action': 'HOLD'},
    ]})


class TestInMemoryStorage:

    @pytest.mark.asyncio
    async def test_select_filters_and_orders_newest_first(self, seeded):
        rows = await seeded.select('trading_signals', {'where': {'ticker': 'AAPL'}})
        assert [r['id'] for r in rows] == ['s3', 's1']

    @pytest.mark.asyncio
    async def test_select_limit(self, seeded):
        rows = await seeded.select('trading_signals', {'limit': 1, 'where': {}})
        assert [r['id'] for r in rows] == ['s3']

    @pytest.mark.asyncio
    async def test_unknown_table_is_empty(self, seeded):
        assert await seeded.select('historical_patterns', {'limit': 10}) == []

    @pytest.mark.asyncio
    async def test_returned_rows_are_copies(self, seeded):
        rows = await seeded.select('trading_signals', {'where': {'id': 's1'}})
        rows[0]['action'] = 'SELL'
        again = await seeded.select('trading_signals', {'where': {'id': 's1'}})
        assert again[0]['action'] == 'BUY'

    @pytest.mark.asyncio
    async def test_insert_rejects_non_dict(self, seeded):
        with pytest.raises(StorageError):
            await seeded.insert('trading_signals', ['not', 'a', 'row'])

    def test_json_round_trip(self, seeded, tmp_path):
        path = str(tmp_path / 'store.json')
        seeded.save_json(path)

        loaded = InMemoryStorage.from_json(path)
        assert loaded.count('trading_signals') == 3
        assert list(loaded.to_frame('trading_signals')['ticker']) == ['AAPL', 'MSFT', 'AAPL']

    def test_missing_json_file(self, tmp_path):
        with pytest.raises(StorageError):
            InMemoryStorage.from_json(str(tmp_path / 'missing.json'))


class TestSignalStoreWriter:

    @pytest.mark.asyncio
    async def test_save_and_fetch(self, generator, storage):
        signal = await generator.generate_signal('AAPL')
        writer = SignalStoreWriter(storage)

        stored = await writer.fetch(signal.signal_id)
        assert stored.ticker == 'AAPL'
        assert stored.action == signal.action
        assert stored.confidence == pytest.approx(signal.confidence)
        assert stored.risk_level == signal.risk_level

    @pytest.mark.asyncio
    async def test_save_failure_reports_false(self, generator, storage):
        signal = await generator.generate_signal('AAPL')
        storage.insert = AsyncMock(side_effect=StorageError('read-only'))

        assert await SignalStoreWriter(storage).save(signal) is False

    @pytest.mark.asyncio
    async def test_fetch_missing_and_malformed(self, seeded):
        writer = SignalStoreWriter(seeded)
        assert await writer.fetch('nope') is None
        # seeded rows lack confidence
        assert await writer.fetch('s1') is None

    @pytest.mark.asyncio
    async def test_fetch_reads_camel_case_rows(self):
        storage = InMemoryStorage({'trading_signals': [{
            'id': 'signal_js', 'ticker': 'TSLA', 'timestamp': '2025-06-02T09:15:00Z',
            'action': 'SELL', 'confidence': 0.72, 'timeHorizon': 'SHORT_TERM',
            'analysisDepth': 'COMPREHENSIVE', 'riskAssessment': {'overallRisk': 'HIGH'},
        }]})

        stored = await SignalStoreWriter(storage).fetch('signal_js')
        assert stored.time_horizon == TimeHorizon.SHORT_TERM
        assert stored.analysis_depth == AnalysisDepth.COMPREHENSIVE
        assert stored.risk_level == RiskLevel.HIGH
        assert stored.timestamp.year == 2025

    @pytest.mark.asyncio
    async def test_fetch_row_without_timestamp_is_unreadable(self):
        storage = InMemoryStorage({'trading_signals': [
            {'id': 's9', 'ticker': 'AAPL', 'action': 'BUY', 'confidence': 0.7},
        ]})
        assert await SignalStoreWriter(storage).fetch('s9') is None

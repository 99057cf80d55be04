"""
Unit tests for engine statistics.
"""

import pytest

from engine.stats import EngineStats


class TestEngineStats:

    @pytest.mark.asyncio
    async def test_record_updates_running_averages(self, generator):
        signal = await generator.generate_signal('AAPL')
        stats = EngineStats()

        stats.record(signal, 0.2)
        stats.record(signal, 0.4)

        assert stats.total_signals == 2
        assert stats.average_confidence == pytest.approx(signal.confidence)
        assert stats.average_processing_time == pytest.approx(0.3)
        assert stats.action_distribution[signal.action.value] == 2
        assert stats.last_signal_at == signal.timestamp

    @pytest.mark.asyncio
    async def test_export_and_frame(self, generator):
        signal = await generator.generate_signal('AAPL')
        stats = EngineStats()
        stats.record(signal, 0.1)

        exported = stats.export()
        assert exported['total_signals'] == 1
        assert exported['risk_distribution'] == {'MEDIUM': 1}

        frame = stats.to_frame()
        assert list(frame['ticker']) == ['AAPL']
        assert 'processing_time' in frame.columns

    @pytest.mark.asyncio
    async def test_history_is_bounded(self, generator):
        signal = await generator.generate_signal('AAPL')
        stats = EngineStats(max_history=3)
        for _ in range(5):
            stats.record(signal, 0.1)
        assert stats.total_signals == 5
        assert len(stats.history) == 3

    def test_reset(self):
        stats = EngineStats(total_signals=4, average_confidence=0.7)
        stats.reset()
        assert stats.export()['total_signals'] == 0
        assert stats.to_frame().empty

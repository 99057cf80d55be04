"""
Main entry point for the signal engine.

Generates trading signals from pre-computed analyses:
- Loads configuration from .env (SIGNAL_* variables)
- Reads technical/sentiment/risk analyses from a JSON file
- Seeds historical patterns and stored signals from an optional storage JSON file
- Generates single, batch or multi-timeframe signals, or refreshes a stored signal
- Prints a summary table and optionally writes the storage back to disk

Usage:
    python main.py AAPL MSFT --analyses data/analyses.json
    python main.py AAPL --analyses data/analyses.json --multi-timeframe
    python main.py --analyses data/analyses.json --storage data/store.json --update signal_AAPL_x
"""

import argparse
import asyncio
import logging
import os
import sys

import pandas as pd
from dotenv import load_dotenv

from analyzers.file_provider import AnalysisFileProvider
from analyzers.risk import RiskLevel
from engine.config import SignalEngineConfig
from engine.errors import SignalEngineError
from engine.models import AnalysisDepth, SignalRequest, TimeHorizon
from engine.signal_generator import SignalGenerator
from engine.vectorizer import EMBEDDERS
from storage.memory import InMemoryStorage

# Load environment variables
load_dotenv()

# Setup logging
os.makedirs('logs', exist_ok=True)
logging.basicConfig(
    filename='logs/signals.log',
    level=getattr(logging, os.getenv('LOG_LEVEL', 'INFO').upper(), logging.INFO),
    format='%(asctime)s %(levelname)s %(name)s %(message)s'
)
logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Generate trading signals with calibrated confidence")
    parser.add_argument('tickers', nargs='*', help="Ticker symbols to analyze")
    parser.add_argument('--analyses', required=True, help="JSON file with per-ticker analyses")
    parser.add_argument('--storage', help="JSON file with historical_patterns / trading_signals tables")
    parser.add_argument('--save-storage', action='store_true',
                        help="Write the storage back to --storage after running")
    parser.add_argument('--horizon', default=TimeHorizon.MEDIUM_TERM.value,
                        choices=[h.value for h in TimeHorizon])
    parser.add_argument('--depth', default=AnalysisDepth.STANDARD.value,
                        choices=[d.value for d in AnalysisDepth])
    parser.add_argument('--risk-tolerance', default=RiskLevel.MEDIUM.value,
                        choices=[r.value for r in RiskLevel])
    parser.add_argument('--multi-timeframe', action='store_true',
                        help="Analyze every horizon and report the consensus")
    parser.add_argument('--update', metavar='SIGNAL_ID', help="Refresh a stored signal")
    parser.add_argument('--embedder', choices=EMBEDDERS,
                        help="Context embedder (default: SIGNAL_EMBEDDER or hashing)")
    return parser.parse_args(argv)


def print_multi_timeframe(result):
    print(f"\n{result.ticker} multi-timeframe analysis")
    for horizon, signal in result.signals.items():
        print(f"  {horizon.value:<12} {signal.action.value:<12} {signal.confidence:.3f}")
    consensus = result.consensus
    print(f"  Consensus: {consensus.action.value} "
          f"(confidence {consensus.confidence:.3f}, agreement {consensus.agreement:.2f})")
    for line in consensus.conflicts + consensus.recommendations:
        print(f"  - {line}")


async def run(args) -> int:
    provider = AnalysisFileProvider.from_json(args.analyses)
    if args.storage and os.path.exists(args.storage):
        storage = InMemoryStorage.from_json(args.storage)
    else:
        storage = InMemoryStorage()

    config = SignalEngineConfig.from_env()
    if args.embedder:
        config.embedder = args.embedder

    generator = SignalGenerator(
        technical_provider=provider,
        sentiment_provider=provider,
        risk_provider=provider,
        storage=storage,
        config=config,
    )

    if args.update:
        update = await generator.refresh_signal(args.update)
        status = 'significant change' if update.significant else 'no significant change'
        print(f"{update.current.ticker}: {update.current.action.value} "
              f"({update.current.confidence:.3f}) - {status}")
        for change in update.changes:
            print(f"  - {change}")
    elif args.multi_timeframe:
        for ticker in args.tickers:
            print_multi_timeframe(await generator.generate_multi_timeframe_signal(ticker))
    else:
        request = SignalRequest(
            time_horizon=TimeHorizon(args.horizon),
            risk_tolerance=RiskLevel(args.risk_tolerance),
            analysis_depth=AnalysisDepth(args.depth),
        )
        result = await generator.generate_batch_signals(args.tickers, request)
        with pd.option_context('display.width', 160, 'display.max_columns', None):
            print(result.to_frame().to_string(index=False))
        for error in result.errors:
            print(f"! {error['ticker']}: {error['error']}")
        for signal in result.signals:
            print(f"\n{signal.ticker}: {signal.reasoning_text}")
            for warning in signal.warnings:
                print(f"  ! {warning}")

    logger.info(f"Engine stats: {generator.get_stats()}")
    if args.save_storage and args.storage:
        storage.save_json(args.storage)
    return 0


def main(argv=None):
    args = parse_args(argv)
    if not args.tickers and not args.update:
        print("No tickers given", file=sys.stderr)
        return 2
    try:
        return asyncio.run(run(args))
    except (SignalEngineError, FileNotFoundError, ImportError, ValueError) as e:
        logger.error(f"Signal run failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""
MotifTrader Runner

Main entry point for the trading bots:
- Single-symbol motif ensemble bot (TradingBot)
- Multi-symbol rotation bot (MultiStrategyTradingBot)
- Both, each with its own exchange client

Usage:
    python -m motiftrader.run_trading_bot [--mode single|multi|both]
                                          [--symbol ETH/USDT] [--config-dir config]

Environment:
    Optional .env file with BINANCE_API_KEY, BINANCE_API_SECRET,
    COINMARKET_API_KEY, DATABASE_URL and MOTIFTRADER_TRADING_MODE
"""

import argparse
import asyncio
import logging
import signal
import sys
from datetime import datetime, timezone
from pathlib import Path

# Load environment variables before any other imports
from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).parent.parent
ENV_FILE = PROJECT_ROOT / ".env"
if ENV_FILE.exists():
    load_dotenv(ENV_FILE)

from motiftrader.src.utils.config import ConfigLoader, ConfigError
from motiftrader.src.data.indicator_library import IndicatorLibrary
from motiftrader.src.data.market_data import MarketDataFetcher
from motiftrader.src.data.trade_store import InMemoryTradeStore, PostgresTradeStore
from motiftrader.src.execution.exchange_client import ExchangeClient
from motiftrader.src.execution.market_intelligence import MarketIntelligenceClient
from motiftrader.src.execution.trading_mode import TradingModeError, validate_trading_mode_on_startup
from motiftrader.src.learning.engine import AdaptiveLearningEngine
from motiftrader.src.motifs.ensemble import MotifEnsemble
from motiftrader.src.risk.dynamic_risk import DynamicRiskManager
from motiftrader.src.risk.risk_manager import RiskManager
from motiftrader.src.strategy.ensemble_engine import EnsembleStrategyEngine
from motiftrader.src.strategy.market_rotation import MarketRotationEngine
from motiftrader.src.strategy.strategy_engine import StrategyEngine
from motiftrader.src.orchestration.base_bot import BaseBot
from motiftrader.src.orchestration.multi_strategy_bot import MultiStrategyTradingBot
from motiftrader.src.orchestration.trading_bot import TradingBot

LOGS_DIR = PROJECT_ROOT / 'logs'
LOGS_DIR.mkdir(exist_ok=True)

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(),
        logging.FileHandler(LOGS_DIR / 'trading_bot.log', mode='a')
    ]
)
logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='MotifTrader trading bots')
    parser.add_argument('--mode', choices=['single', 'multi', 'both'], default='single',
                        help='Which bot(s) to run')
    parser.add_argument('--symbol', type=str, default=None,
                        help='Symbol for the single-symbol bot (overrides bot.yaml)')
    parser.add_argument('--config-dir', type=str, default=str(PROJECT_ROOT / 'config'),
                        help='Directory holding the YAML configuration')
    return parser.parse_args(argv)


def print_banner(mode: str, demo: bool):
    """Print startup banner."""
    print()
    print("=" * 60)
    print("  MotifTrader")
    print("  Motif Ensemble + Adaptive Learning Trading Agent")
    print("=" * 60)
    print(f"  Bots: {mode}")
    print(f"  Trading mode: {'DEMO (simulated fills)' if demo else 'LIVE'}")
    print(f"  Started: {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')}")
    print("=" * 60)
    print()


async def init_trade_store(exchange_config: dict):
    """PostgreSQL trade store when a DSN is configured, else in-memory."""
    db_config = exchange_config.get('database', {})
    dsn = db_config.get('dsn')
    if not dsn:
        logger.info("No DATABASE_URL configured, keeping trades in memory")
        return InMemoryTradeStore()

    store = PostgresTradeStore(dsn, table=db_config.get('table', 'trades'))
    try:
        await store.connect()
    except Exception as e:
        logger.error(f"Database connection failed, keeping trades in memory: {e}")
        return InMemoryTradeStore()
    return store


def build_single_bot(
    loader: ConfigLoader,
    exchange_client: ExchangeClient,
    trade_store,
    symbol: str | None,
) -> TradingBot:
    """Wire the single-symbol bot from explicit instances."""
    strategy_config = loader.get_strategy_config()
    exchange_config = loader.get_exchange_config()
    bot_config = dict(loader.get_bot_config().get('single', {}))
    if symbol:
        bot_config['symbol'] = symbol

    market_data = MarketDataFetcher(
        exchange_client,
        IndicatorLibrary(strategy_config.get('indicators', {})),
        strategy_config.get('market_data', {}),
    )
    engine = StrategyEngine(
        market_data,
        risk_manager=RiskManager(loader.get_risk_config()),
        ensemble=MotifEnsemble(strategy_config.get('motif_weights')),
        learning_engine=AdaptiveLearningEngine(loader.get_learning_config()),
        config=strategy_config,
    )
    return TradingBot(
        engine,
        exchange_client,
        config=bot_config,
        market_intelligence=MarketIntelligenceClient(exchange_config.get('market_intelligence', {})),
        trade_store=trade_store,
    )


def build_multi_bot(
    loader: ConfigLoader,
    exchange_client: ExchangeClient,
    trade_store,
) -> MultiStrategyTradingBot:
    """Wire the multi-symbol bot from explicit instances."""
    rotation_config = loader.get_rotation_config()
    markets = rotation_config.get('markets', [])

    return MultiStrategyTradingBot(
        EnsembleStrategyEngine(markets, rotation_config.get('ensemble', {})),
        MarketRotationEngine(exchange_client, markets, rotation_config.get('rotation', {})),
        exchange_client,
        dynamic_risk=DynamicRiskManager(rotation_config.get('dynamic_risk', {})),
        risk_manager=RiskManager(loader.get_risk_config()),
        config=loader.get_bot_config().get('multi', {}),
        trade_store=trade_store,
        indicators=IndicatorLibrary(loader.get_strategy_config().get('indicators', {})),
    )


async def build_bots(
    args: argparse.Namespace,
    loader: ConfigLoader,
    exchange_config: dict,
    mode,
    trade_store,
) -> tuple[list[BaseBot], list[ExchangeClient]]:
    """
    Build the requested bots, each with its own exchange client.

    The demo price walk and the demo-mode fallback are held per client.
    """
    builders = []
    if args.mode in ('single', 'both'):
        builders.append(lambda client: build_single_bot(loader, client, trade_store, args.symbol))
    if args.mode in ('multi', 'both'):
        builders.append(lambda client: build_multi_bot(loader, client, trade_store))

    bots: list[BaseBot] = []
    clients: list[ExchangeClient] = []
    for build in builders:
        client = ExchangeClient(exchange_config, mode=mode)
        clients.append(client)
        try:
            bots.append(build(client))
        except ConfigError:
            for created in clients:
                await created.close()
            raise
    return bots, clients


async def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        loader = ConfigLoader(args.config_dir)
        exchange_config = loader.get_exchange_config()
        mode = validate_trading_mode_on_startup(exchange_config)
    except (ConfigError, TradingModeError) as e:
        logger.error(f"Startup failed: {e}")
        return 1

    trade_store = await init_trade_store(exchange_config)

    try:
        bots, clients = await build_bots(args, loader, exchange_config, mode, trade_store)
    except ConfigError as e:
        logger.error(f"Bot initialization failed: {e}")
        return 1

    print_banner(args.mode, all(client.is_demo for client in clients))

    # Setup shutdown handler
    shutdown_event = asyncio.Event()

    def shutdown_handler(signum, frame):
        logger.info(f"Received signal {signum}, initiating shutdown...")
        shutdown_event.set()

    signal.signal(signal.SIGINT, shutdown_handler)
    signal.signal(signal.SIGTERM, shutdown_handler)

    try:
        for bot in bots:
            await bot.start()

        print("  Trading bots running. Press Ctrl+C to stop")
        print()

        await shutdown_event.wait()

    except Exception as e:
        logger.exception(f"Error in main loop: {e}")
        return 1
    finally:
        print("\nShutting down...")
        for bot in bots:
            await bot.stop()
        for client in clients:
            await client.close()
        if isinstance(trade_store, PostgresTradeStore):
            await trade_store.disconnect()
        print("Shutdown complete")

    return 0


def cli():
    try:
        exit_code = asyncio.run(main())
        sys.exit(exit_code)
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        sys.exit(130)


if __name__ == "__main__":
    cli()

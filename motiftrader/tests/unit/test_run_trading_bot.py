"""
Unit tests for the runner wiring.

Tests validate:
- Argument parsing
- Trade store selection and fallback
- Bot construction from YAML configuration, one exchange client per bot
- Startup failure on a missing config directory
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from motiftrader import run_trading_bot
from motiftrader.src.data.trade_store import InMemoryTradeStore
from motiftrader.src.execution.exchange_client import ExchangeClient
from motiftrader.src.execution.trading_mode import TradingMode
from motiftrader.src.utils.config import ConfigLoader


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def loader(temp_config_dir) -> ConfigLoader:
    return ConfigLoader(temp_config_dir)


@pytest.fixture
def demo_client() -> ExchangeClient:
    return ExchangeClient({'exchange': {'id': 'binance'}})


# =============================================================================
# Argument Tests
# =============================================================================

class TestParseArgs:
    """Test command line parsing."""

    def test_defaults(self):
        args = run_trading_bot.parse_args([])

        assert args.mode == 'single'
        assert args.symbol is None

    def test_overrides(self):
        args = run_trading_bot.parse_args(['--mode', 'both', '--symbol', 'BTC/USDT', '--config-dir', '/tmp'])

        assert args.mode == 'both'
        assert args.symbol == 'BTC/USDT'
        assert args.config_dir == '/tmp'

    def test_invalid_mode(self):
        with pytest.raises(SystemExit):
            run_trading_bot.parse_args(['--mode', 'turbo'])


# =============================================================================
# Trade Store Tests
# =============================================================================

class TestInitTradeStore:
    """Test trade store selection."""

    @pytest.mark.asyncio
    async def test_memory_without_dsn(self):
        store = await run_trading_bot.init_trade_store({})
        assert isinstance(store, InMemoryTradeStore)

    @pytest.mark.asyncio
    async def test_memory_on_connection_failure(self):
        postgres = MagicMock()
        postgres.return_value.connect = AsyncMock(side_effect=OSError("connection refused"))

        with patch.object(run_trading_bot, 'PostgresTradeStore', postgres):
            store = await run_trading_bot.init_trade_store(
                {'database': {'dsn': 'postgresql://localhost/motiftrader'}}
            )

        assert isinstance(store, InMemoryTradeStore)
        postgres.assert_called_once_with('postgresql://localhost/motiftrader', table='trades')


# =============================================================================
# Wiring Tests
# =============================================================================

class TestBuildBots:
    """Test bot construction from configuration."""

    def test_single_bot(self, loader, demo_client, mock_trade_store):
        bot = run_trading_bot.build_single_bot(loader, demo_client, mock_trade_store, 'BTC/USDT')

        assert bot.symbol == 'BTC/USDT'
        assert bot.check_interval == 60.0
        assert bot.engine.candle_interval == '15m'
        assert bot.engine.risk_manager.get_account_balance() == 10000
        assert bot.trade_store is mock_trade_store

    def test_single_bot_symbol_from_config(self, loader, demo_client):
        bot = run_trading_bot.build_single_bot(loader, demo_client, None, None)
        assert bot.symbol == 'ETH/USDT'

    def test_multi_bot(self, loader, demo_client):
        bot = run_trading_bot.build_multi_bot(loader, demo_client, None)

        assert bot.rotation.symbols == ['BTC/USDT', 'ETH/USDT']
        assert bot.max_concurrent_positions == 5
        assert bot.rotation.max_allocation == 0.2

    @pytest.mark.asyncio
    async def test_both_bots_get_their_own_client(self, loader, mock_trade_store):
        args = run_trading_bot.parse_args(['--mode', 'both'])

        bots, clients = await run_trading_bot.build_bots(
            args, loader, loader.get_exchange_config(), TradingMode.DEMO, mock_trade_store
        )

        assert len(bots) == 2
        assert len(clients) == 2
        assert clients[0] is not clients[1]
        assert [bot.exchange_client for bot in bots] == clients

    @pytest.mark.asyncio
    async def test_single_mode_builds_one_bot(self, loader):
        args = run_trading_bot.parse_args([])

        bots, clients = await run_trading_bot.build_bots(
            args, loader, loader.get_exchange_config(), TradingMode.DEMO, None
        )

        assert len(bots) == 1
        assert bots[0].exchange_client is clients[0]


# =============================================================================
# Main Tests
# =============================================================================

class TestMain:
    """Test startup failures."""

    @pytest.mark.asyncio
    async def test_missing_config_dir(self, tmp_path):
        assert await run_trading_bot.main(['--config-dir', str(tmp_path / 'missing')]) == 1

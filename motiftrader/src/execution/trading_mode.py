"""
Trading Mode - Demo vs Live execution control.

CRITICAL SAFETY:
- Demo trading is the DEFAULT mode
- Live trading requires dual confirmation (env + config)
- Live trading additionally requires exchange credentials
"""

import logging
import os
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

MODE_ENV_VAR = "MOTIFTRADER_TRADING_MODE"


class TradingMode(Enum):
    """Trading execution mode."""
    DEMO = "demo"
    LIVE = "live"


class TradingModeError(Exception):
    """Raised when trading mode validation fails."""
    pass


def get_trading_mode(config: Optional[dict] = None) -> TradingMode:
    """
    Get the current trading mode.

    Defaults to DEMO unless both MOTIFTRADER_TRADING_MODE=live and the
    exchange config's trading_mode is live.

    Args:
        config: Exchange configuration dict (contents of exchange.yaml)

    Returns:
        TradingMode.DEMO or TradingMode.LIVE
    """
    config = config or {}

    env_mode = os.environ.get(MODE_ENV_VAR, "demo").lower().strip()
    config_mode = str(config.get("trading_mode", "demo")).lower().strip()

    if env_mode == "live" and config_mode == "live":
        logger.warning("LIVE TRADING MODE ENABLED - REAL MONEY AT RISK")
        return TradingMode.LIVE

    if env_mode == "live" or config_mode == "live":
        logger.warning(
            f"Live mode requested but not confirmed in both env and config. "
            f"Env: {env_mode}, Config: {config_mode}. Defaulting to DEMO."
        )

    return TradingMode.DEMO


def validate_trading_mode_on_startup(config: Optional[dict] = None) -> TradingMode:
    """
    Resolve and validate the trading mode at startup.

    Args:
        config: Exchange configuration dict

    Returns:
        Current TradingMode

    Raises:
        TradingModeError: If LIVE mode is requested without credentials
    """
    config = config or {}
    mode = get_trading_mode(config)

    if mode == TradingMode.LIVE:
        exchange = config.get("exchange", {})
        if not exchange.get("api_key"):
            raise TradingModeError("exchange.api_key required for live trading")
        if not exchange.get("api_secret"):
            raise TradingModeError("exchange.api_secret required for live trading")
        logger.critical("LIVE TRADING MODE - REAL ORDERS WILL BE PLACED")
    else:
        logger.info("DEMO TRADING MODE - SIMULATED EXECUTION")

    return mode


def is_demo_mode(config: Optional[dict] = None) -> bool:
    """Check if currently in demo trading mode."""
    return get_trading_mode(config) == TradingMode.DEMO

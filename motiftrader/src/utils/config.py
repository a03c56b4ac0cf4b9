"""
Configuration Loading Utility - Centralized config management for MotifTrader.

This module provides:
- YAML configuration loading with validation
- Environment variable substitution
- Config validation per file
- Cached config access
- Thread-safe global config instance
"""

import logging
import math
import os
import re
import threading
from pathlib import Path
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)

# Thread lock for global config loader access
_config_lock = threading.Lock()


class ConfigError(Exception):
    """Configuration loading or validation error."""
    pass


class ConfigLoader:
    """
    Centralized configuration loader for MotifTrader.

    Loads YAML configs with environment variable substitution
    and validation.
    """

    # Environment variable pattern: ${VAR_NAME:-default_value}
    ENV_VAR_PATTERN = re.compile(r'\$\{([^}:]+)(?::-([^}]*))?\}')

    def __init__(self, config_dir: str | Path):
        """
        Initialize ConfigLoader.

        Args:
            config_dir: Path to configuration directory
        """
        self.config_dir = Path(config_dir)
        self._cache: dict[str, dict] = {}

        if not self.config_dir.exists():
            raise ConfigError(f"Config directory not found: {self.config_dir}")

    def load(self, config_name: str, validate: bool = True) -> dict:
        """
        Load a configuration file.

        Args:
            config_name: Config file name (without .yaml extension)
            validate: Whether to validate the config

        Returns:
            Configuration dictionary
        """
        if config_name in self._cache:
            return self._cache[config_name]

        config_path = self.config_dir / f"{config_name}.yaml"
        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")

        try:
            with open(config_path, 'r') as f:
                raw_content = f.read()

            substituted_content = self._substitute_env_vars(raw_content)
            config = yaml.safe_load(substituted_content) or {}

            # Env vars come in as strings
            config = self._coerce_types(config)

            if validate:
                self._validate_config(config_name, config)

            self._cache[config_name] = config
            logger.info(f"Loaded config: {config_name}")
            return config

        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}")

    def load_all(self) -> dict[str, dict]:
        """Load all configuration files in the config directory."""
        configs = {}

        for config_file in sorted(self.config_dir.glob("*.yaml")):
            config_name = config_file.stem
            try:
                configs[config_name] = self.load(config_name)
            except ConfigError as e:
                logger.warning(f"Failed to load {config_name}: {e}")

        return configs

    def get_risk_config(self) -> dict:
        """Get the risk manager configuration."""
        return self.load('risk').get('risk', {})

    def get_strategy_config(self) -> dict:
        """Get the strategy engine configuration."""
        return self.load('strategy').get('strategy', {})

    def get_learning_config(self) -> dict:
        """Get the adaptive learning configuration."""
        return self.load('learning').get('learning', {})

    def get_exchange_config(self) -> dict:
        """Get the exchange client configuration."""
        return self.load('exchange')

    def get_bot_config(self) -> dict:
        """Get the trading bot configuration."""
        return self.load('bot')

    def get_rotation_config(self) -> dict:
        """Get the market rotation / dynamic risk configuration."""
        return self.load('rotation')

    def clear_cache(self) -> None:
        """Clear the configuration cache."""
        self._cache.clear()

    def _substitute_env_vars(self, content: str) -> str:
        """
        Substitute environment variables in config content.

        Supports ${VAR_NAME} and ${VAR_NAME:-default_value} syntax.
        """
        def replace_match(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else ''
            return os.environ.get(var_name, default_value)

        return self.ENV_VAR_PATTERN.sub(replace_match, content)

    def _coerce_types(self, value: Any) -> Any:
        """
        Recursively coerce string values to appropriate types.

        Handles numeric strings, boolean strings and nested containers.
        """
        if isinstance(value, dict):
            return {k: self._coerce_types(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [self._coerce_types(item) for item in value]
        elif isinstance(value, str):
            if value.lower() in ('true', 'yes', 'on'):
                return True
            if value.lower() in ('false', 'no', 'off'):
                return False

            if value.lower() in ('inf', '-inf', 'nan', 'infinity', '-infinity'):
                return value

            if value.lstrip('-').isdigit():
                try:
                    return int(value)
                except ValueError:
                    pass

            try:
                float_val = float(value)
                if math.isfinite(float_val):
                    return float_val
            except ValueError:
                pass

            return value
        return value

    def _validate_config(self, config_name: str, config: dict) -> None:
        """
        Validate configuration based on schema.

        Args:
            config_name: Name of the config file
            config: Loaded configuration dict
        """
        validators = {
            'risk': self._validate_risk_config,
            'strategy': self._validate_strategy_config,
            'learning': self._validate_learning_config,
            'exchange': self._validate_exchange_config,
            'bot': self._validate_bot_config,
        }

        validator = validators.get(config_name)
        if validator:
            validator(config)

    def _validate_risk_config(self, config: dict) -> None:
        """Validate risk configuration."""
        risk = config.get('risk')
        if not isinstance(risk, dict):
            raise ConfigError("Missing 'risk' section in risk config")

        limits = risk.get('limits', {})
        for key in ('max_position_risk', 'max_total_risk', 'max_position_value_pct',
                    'max_position_notional_pct'):
            value = limits.get(key)
            if value is not None and not (isinstance(value, (int, float)) and 0 < value <= 1):
                raise ConfigError(f"Invalid risk limit {key}: {value} (must be in (0, 1])")

        stops = risk.get('stops', {})
        for key in ('atr_multiplier', 'trailing_atr_multiplier', 'min_risk_reward',
                    'default_risk_reward'):
            value = stops.get(key)
            if value is not None and not (isinstance(value, (int, float)) and value > 0):
                raise ConfigError(f"Invalid stop setting {key}: {value} (must be positive)")

        balance = risk.get('initial_balance', 10000)
        if not isinstance(balance, (int, float)) or balance <= 0:
            raise ConfigError(f"Invalid initial_balance: {balance}")

        logger.debug("Risk config validated successfully")

    def _validate_strategy_config(self, config: dict) -> None:
        """Validate strategy configuration."""
        strategy = config.get('strategy')
        if not isinstance(strategy, dict):
            raise ConfigError("Missing 'strategy' section in strategy config")

        weights = strategy.get('motif_weights', {})
        if weights:
            if any(not isinstance(w, (int, float)) or w < 0 for w in weights.values()):
                raise ConfigError("Motif weights must be non-negative numbers")
            if sum(weights.values()) <= 0:
                raise ConfigError("Motif weights must not all be zero")

        history = strategy.get('max_history_length', 200)
        if not isinstance(history, int) or history <= 1:
            raise ConfigError(f"Invalid max_history_length: {history}")

        logger.debug("Strategy config validated successfully")

    def _validate_learning_config(self, config: dict) -> None:
        """Validate learning configuration."""
        learning = config.get('learning')
        if not isinstance(learning, dict):
            raise ConfigError("Missing 'learning' section in learning config")

        q_config = learning.get('q_learning', {})
        for key in ('learning_rate', 'discount_factor', 'epsilon'):
            value = q_config.get(key)
            if value is not None and not (isinstance(value, (int, float)) and 0 <= value <= 1):
                raise ConfigError(f"Invalid q_learning.{key}: {value} (must be in [0, 1])")

        logger.debug("Learning config validated successfully")

    def _validate_exchange_config(self, config: dict) -> None:
        """Validate exchange configuration."""
        exchange = config.get('exchange', {})
        if not exchange.get('id'):
            raise ConfigError("Missing exchange.id in exchange config")

        timeout = exchange.get('timeout_seconds', 10)
        if not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ConfigError(f"Invalid exchange timeout_seconds: {timeout}")

        logger.debug("Exchange config validated successfully")

    def _validate_bot_config(self, config: dict) -> None:
        """Validate bot configuration."""
        for section in ('single', 'multi'):
            bot = config.get(section, {})
            interval = bot.get('check_interval_seconds', 60)
            if not isinstance(interval, (int, float)) or interval <= 0:
                raise ConfigError(f"Invalid {section}.check_interval_seconds: {interval}")

        logger.debug("Bot config validated successfully")


# Global config instance (lazy-loaded, thread-safe)
_config_loader: Optional[ConfigLoader] = None


def get_config_loader(config_dir: str | Path | None = None) -> ConfigLoader:
    """
    Get or create the global ConfigLoader instance (thread-safe).

    Args:
        config_dir: Path to config directory (uses default if not provided)

    Returns:
        ConfigLoader instance
    """
    global _config_loader

    if _config_loader is None:
        with _config_lock:
            if _config_loader is None:
                if config_dir is None:
                    # Default to config/ relative to project root
                    project_root = Path(__file__).parent.parent.parent.parent
                    config_dir = project_root / 'config'

                _config_loader = ConfigLoader(config_dir)

    return _config_loader


def reset_config_loader() -> None:
    """
    Reset the global ConfigLoader instance (for testing).

    Thread-safe.
    """
    global _config_loader
    with _config_lock:
        _config_loader = None
        logger.debug("Global config loader reset")


def load_config(config_name: str) -> dict:
    """
    Convenience function to load a config file.

    Args:
        config_name: Config file name (without .yaml extension)

    Returns:
        Configuration dictionary
    """
    return get_config_loader().load(config_name)

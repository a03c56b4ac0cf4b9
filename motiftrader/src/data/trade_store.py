"""
Trade Store - Persistence sink for closed trades.

Two implementations share the TradeStore protocol:
- InMemoryTradeStore: bounded list, default for demo runs and tests
- PostgresTradeStore: asyncpg connection pool, one row per closed trade

The bots treat persistence as fire-and-forget: failures are logged by the
caller and never interrupt trading.
"""

import json
import logging
import re
from collections import deque
from datetime import datetime
from typing import Optional, Protocol

import asyncpg

logger = logging.getLogger(__name__)

_TABLE_NAME_PATTERN = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


class TradeStore(Protocol):
    """Persistence interface used by the bots."""

    async def insert_trade(self, record: dict) -> None:
        ...

    async def get_trades(self, symbol: Optional[str] = None, limit: int = 100) -> list[dict]:
        ...


class InMemoryTradeStore:
    """Keeps the most recent trade records in memory."""

    def __init__(self, max_records: int = 10000):
        self._records: deque[dict] = deque(maxlen=max_records)

    async def insert_trade(self, record: dict) -> None:
        self._records.append(dict(record))

    async def get_trades(self, symbol: Optional[str] = None, limit: int = 100) -> list[dict]:
        """Return newest-first records, optionally filtered by symbol."""
        matches = [
            r for r in reversed(self._records)
            if symbol is None or r.get('symbol') == symbol
        ]
        return matches[:limit]

    def __len__(self) -> int:
        return len(self._records)


class PostgresTradeStore:
    """
    PostgreSQL-backed trade store.

    The table is created on connect if missing. The full record is kept
    in a JSONB payload column next to the indexed fields.
    """

    def __init__(
        self,
        dsn: str,
        table: str = 'trades',
        min_connections: int = 1,
        max_connections: int = 5,
        command_timeout: int = 30,
    ):
        """
        Initialize PostgresTradeStore.

        Args:
            dsn: PostgreSQL connection string
            table: Table name
            min_connections: Pool minimum size
            max_connections: Pool maximum size
            command_timeout: Per-command timeout in seconds
        """
        if not _TABLE_NAME_PATTERN.match(table):
            raise ValueError(f"Invalid table name: {table}")

        self.dsn = dsn
        self.table = table
        self.min_connections = min_connections
        self.max_connections = max_connections
        self.command_timeout = command_timeout
        self._pool: Optional[asyncpg.Pool] = None

    @property
    def is_connected(self) -> bool:
        return self._pool is not None

    async def connect(self) -> None:
        """Create the connection pool and the table."""
        if self._pool is not None:
            return

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.dsn,
                min_size=self.min_connections,
                max_size=self.max_connections,
                command_timeout=self.command_timeout,
            )
        except Exception as e:
            logger.error(f"Failed to create database pool: {e}")
            raise

        async with self._pool.acquire() as conn:
            await conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.table} (
                    id TEXT NOT NULL,
                    symbol TEXT NOT NULL,
                    side TEXT NOT NULL,
                    entry_price DOUBLE PRECISION NOT NULL,
                    exit_price DOUBLE PRECISION NOT NULL,
                    quantity DOUBLE PRECISION NOT NULL,
                    pnl DOUBLE PRECISION NOT NULL,
                    pnl_percent DOUBLE PRECISION NOT NULL,
                    closed_at TIMESTAMPTZ NOT NULL,
                    payload JSONB NOT NULL
                )
            """)
        logger.info(f"Trade store connected (table {self.table})")

    async def disconnect(self) -> None:
        """Close the connection pool."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("Trade store disconnected")

    async def insert_trade(self, record: dict) -> None:
        """Insert one closed-trade record."""
        if self._pool is None:
            raise RuntimeError("Trade store not connected")

        closed_at = record.get('closed_at')
        if isinstance(closed_at, str):
            closed_at = datetime.fromisoformat(closed_at)

        await self._pool.execute(
            f"""
            INSERT INTO {self.table}
                (id, symbol, side, entry_price, exit_price, quantity, pnl,
                 pnl_percent, closed_at, payload)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10::jsonb)
            """,
            record['id'],
            record['symbol'],
            record['side'],
            float(record['entry_price']),
            float(record['exit_price']),
            float(record['closed_quantity']),
            float(record['pnl']),
            float(record['pnl_percent']),
            closed_at,
            json.dumps(record, default=str),
        )

    async def get_trades(self, symbol: Optional[str] = None, limit: int = 100) -> list[dict]:
        """Return newest-first records, optionally filtered by symbol."""
        if self._pool is None:
            raise RuntimeError("Trade store not connected")

        if symbol is None:
            rows = await self._pool.fetch(
                f"SELECT payload FROM {self.table} ORDER BY closed_at DESC LIMIT $1",
                limit,
            )
        else:
            rows = await self._pool.fetch(
                f"SELECT payload FROM {self.table} WHERE symbol = $1 "
                f"ORDER BY closed_at DESC LIMIT $2",
                symbol,
                limit,
            )
        return [json.loads(row['payload']) for row in rows]

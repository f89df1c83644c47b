"""
Database abstraction layer for supporting both SQLite and PostgreSQL backends.

This module provides a unified interface for database operations that can work
with both SQLite (via aiosqlite) and PostgreSQL (via asyncpg). Queries are
written once with `?` placeholders; the PostgreSQL wrapper rewrites them.
"""

from __future__ import annotations
import re
from abc import ABC, abstractmethod
from typing import Optional, Tuple, List, Any
from dataclasses import dataclass

# Import database-specific modules
try:
    import aiosqlite
    SQLITE_AVAILABLE = True
except ImportError:
    SQLITE_AVAILABLE = False

try:
    import asyncpg
    POSTGRES_AVAILABLE = True
except ImportError:
    POSTGRES_AVAILABLE = False


@dataclass
class DatabaseConfig:
    """Configuration for database connections."""
    backend: str = "sqlite"  # "sqlite" or "postgresql"

    # SQLite configuration
    sqlite_path: str = ""
    sqlite_busy_timeout: float = 30.0

    # PostgreSQL configuration
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_database: str = "sitesearch"
    postgres_user: str = "sitesearch"
    postgres_password: str = ""


_PLACEHOLDER = re.compile(r"\?")


def to_postgres_placeholders(query: str) -> str:
    """Rewrite `?` placeholders to asyncpg's positional `$1, $2, ...`."""
    counter = iter(range(1, 10_000_000))
    return _PLACEHOLDER.sub(lambda _m: f"${next(counter)}", query)


class DatabaseConnection(ABC):
    """Abstract base class for database connections."""

    @abstractmethod
    async def execute(self, query: str, *args) -> Any:
        """Execute a query and return the result."""
        pass

    @abstractmethod
    async def executemany(self, query: str, args_list: List[Tuple]) -> Any:
        """Execute a query multiple times with different parameters."""
        pass

    @abstractmethod
    async def fetchone(self, query: str, *args) -> Optional[Tuple]:
        """Fetch one row from a query."""
        pass

    @abstractmethod
    async def fetchall(self, query: str, *args) -> List[Tuple]:
        """Fetch all rows from a query."""
        pass

    @abstractmethod
    async def begin(self) -> None:
        """Start a transaction that the next commit() will close."""
        pass

    @abstractmethod
    async def commit(self) -> None:
        """Commit the current transaction."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the database connection."""
        pass

    @abstractmethod
    async def __aenter__(self):
        """Async context manager entry."""
        pass

    @abstractmethod
    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        pass


class SQLiteConnection(DatabaseConnection):
    """SQLite database connection wrapper."""

    def __init__(self, db_path: str, busy_timeout: float = 30.0):
        self.db_path = db_path
        self.busy_timeout = busy_timeout
        self.conn: Optional[aiosqlite.Connection] = None

    async def __aenter__(self):
        if not SQLITE_AVAILABLE:
            raise ImportError("aiosqlite is not available")
        self.conn = await aiosqlite.connect(self.db_path, timeout=self.busy_timeout)
        await self._optimize_connection()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.conn:
            await self.conn.close()
            self.conn = None

    async def _optimize_connection(self):
        """Apply SQLite performance optimizations."""
        if self.conn:
            await self.conn.execute("PRAGMA journal_mode=WAL")
            await self.conn.execute("PRAGMA synchronous=NORMAL")
            await self.conn.execute("PRAGMA foreign_keys=ON")
            await self.conn.execute("PRAGMA temp_store=MEMORY")

    async def execute(self, query: str, *args) -> aiosqlite.Cursor:
        if not self.conn:
            raise RuntimeError("Connection not established")
        return await self.conn.execute(query, args)

    async def executemany(self, query: str, args_list: List[Tuple]) -> aiosqlite.Cursor:
        if not self.conn:
            raise RuntimeError("Connection not established")
        return await self.conn.executemany(query, args_list)

    async def executescript(self, script: str) -> None:
        if not self.conn:
            raise RuntimeError("Connection not established")
        await self.conn.executescript(script)

    async def fetchone(self, query: str, *args) -> Optional[Tuple]:
        if not self.conn:
            raise RuntimeError("Connection not established")
        cursor = await self.conn.execute(query, args)
        row = await cursor.fetchone()
        await cursor.close()
        return row

    async def fetchall(self, query: str, *args) -> List[Tuple]:
        if not self.conn:
            raise RuntimeError("Connection not established")
        cursor = await self.conn.execute(query, args)
        rows = await cursor.fetchall()
        await cursor.close()
        return rows

    async def begin(self) -> None:
        # sqlite3 opens the transaction implicitly on the first write
        pass

    async def commit(self) -> None:
        if self.conn:
            await self.conn.commit()

    async def close(self) -> None:
        if self.conn:
            await self.conn.close()
            self.conn = None


class PostgreSQLConnection(DatabaseConnection):
    """PostgreSQL database connection wrapper."""

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self.conn: Optional[asyncpg.Connection] = None
        self._transaction = None

    async def __aenter__(self):
        if not POSTGRES_AVAILABLE:
            raise ImportError("asyncpg is not available")

        self.conn = await asyncpg.connect(
            host=self.config.postgres_host,
            port=self.config.postgres_port,
            database=self.config.postgres_database,
            user=self.config.postgres_user,
            password=self.config.postgres_password
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._transaction is not None:
            await self._transaction.rollback()
            self._transaction = None
        if self.conn:
            await self.conn.close()
            self.conn = None

    async def execute(self, query: str, *args) -> str:
        if not self.conn:
            raise RuntimeError("Connection not established")
        return await self.conn.execute(to_postgres_placeholders(query), *args)

    async def executemany(self, query: str, args_list: List[Tuple]) -> str:
        if not self.conn:
            raise RuntimeError("Connection not established")
        return await self.conn.executemany(to_postgres_placeholders(query), args_list)

    async def executescript(self, script: str) -> None:
        if not self.conn:
            raise RuntimeError("Connection not established")
        await self.conn.execute(script)

    async def fetchone(self, query: str, *args) -> Optional[Tuple]:
        if not self.conn:
            raise RuntimeError("Connection not established")
        return await self.conn.fetchrow(to_postgres_placeholders(query), *args)

    async def fetchall(self, query: str, *args) -> List[Tuple]:
        if not self.conn:
            raise RuntimeError("Connection not established")
        return await self.conn.fetch(to_postgres_placeholders(query), *args)

    async def begin(self) -> None:
        if not self.conn:
            raise RuntimeError("Connection not established")
        self._transaction = self.conn.transaction()
        await self._transaction.start()

    async def commit(self) -> None:
        # Outside begin()/commit() asyncpg auto-commits each statement
        if self._transaction is not None:
            await self._transaction.commit()
            self._transaction = None

    async def close(self) -> None:
        if self.conn:
            await self.conn.close()
            self.conn = None


class DatabaseFactory:
    """Factory for creating database connections."""

    @staticmethod
    def create_connection(config: DatabaseConfig) -> DatabaseConnection:
        """Create a database connection based on configuration."""
        if config.backend == "sqlite":
            if not SQLITE_AVAILABLE:
                raise ImportError("aiosqlite is not available")
            return SQLiteConnection(config.sqlite_path, config.sqlite_busy_timeout)
        elif config.backend == "postgresql":
            if not POSTGRES_AVAILABLE:
                raise ImportError("asyncpg is not available")
            return PostgreSQLConnection(config)
        else:
            raise ValueError(f"Unsupported database backend: {config.backend}")

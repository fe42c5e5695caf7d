"""Database connection, configuration and schema migrations."""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

from .models import Inventory, Order

log = logging.getLogger(__name__)


class MigrationError(RuntimeError):
    """Raised when a table cannot be created."""


def _load_dotenv(path: str | os.PathLike[str] = ".env") -> None:
    """Load KEY=VALUE lines from a file into the environment without overriding."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as err:
        log.error("Error loading .env file, continuing with environment variables: %s", err)
        return
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        if line.startswith("export "):
            line = line[len("export "):]
        key, _, value = line.partition("=")
        key, value = key.strip(), value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        os.environ.setdefault(key, value)


@dataclass(frozen=True)
class DBConfig:
    """Connection settings for the database server."""

    host: str
    port: int
    user: str
    password: str
    name: str

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> DBConfig:
        """Read POSTGRES_* settings; with no mapping, load .env and use os.environ."""
        if environ is None:
            _load_dotenv()
            environ = os.environ
        port_text = environ.get("POSTGRES_PORT", "")
        try:
            port = int(port_text)
        except ValueError as err:
            log.error("Invalid POSTGRES_PORT value %r", port_text)
            raise ValueError(f"invalid POSTGRES_PORT: {port_text!r}") from err
        return cls(
            host=environ.get("POSTGRES_HOST", ""),
            port=port,
            user=environ.get("POSTGRES_USER", ""),
            password=environ.get("POSTGRES_PASSWORD", ""),
            name=environ.get("POSTGRES_DB", ""),
        )

    def dsn(self) -> str:
        return (
            f"postgres://{self.user}:{self.password}@{self.host}:{self.port}/"
            f"{self.name}?sslmode=disable"
        )


@dataclass(frozen=True)
class ExecResult:
    """Outcome of a statement that returns no rows."""

    rowcount: int
    lastrowid: int | None


class Database:
    """A thread-safe wrapper around one SQLite connection."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        connection.row_factory = sqlite3.Row
        self._conn = connection
        self._lock = threading.RLock()

    def execute(self, sql: str, params: Sequence[Any] | Mapping[str, Any] = ()) -> ExecResult:
        with self._lock:
            try:
                cursor = self._conn.execute(sql, params)
                self._conn.commit()
            except sqlite3.Error:
                if self._conn.in_transaction:
                    self._conn.rollback()
                raise
            return ExecResult(rowcount=cursor.rowcount, lastrowid=cursor.lastrowid)

    def query(
        self, sql: str, params: Sequence[Any] | Mapping[str, Any] = ()
    ) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(row) for row in self._conn.execute(sql, params).fetchall()]

    def ping(self) -> None:
        """Raise sqlite3.Error if the connection is unusable."""
        with self._lock:
            self._conn.execute("SELECT 1").fetchone()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def _open(path: str) -> Database:
    return Database(sqlite3.connect(path, check_same_thread=False))


def run_migrations(db: Database) -> None:
    """Create the orders and inventory tables if they do not exist."""
    log.info("Running migrations")
    for model, label in ((Order, "Orders"), (Inventory, "Inventory")):
        try:
            db.execute(model.schema)
        except sqlite3.Error as err:
            raise MigrationError(f"failed to create {label} table: {err}") from err
    log.info("Migrations completed")


def connect_database(
    path: str | os.PathLike[str] | None = None,
    attempts: int = 10,
    delay: float = 2.0,
) -> Database:
    """Open the database, retrying until it answers a ping or attempts run out."""
    if attempts < 1:
        raise ValueError("attempts must be at least 1")
    if path is None:
        path = os.environ.get("DATABASE_PATH", "sagaflow.db")
    log.info("Connecting to DB at %s", path)
    last_error: sqlite3.Error | None = None
    for attempt in range(1, attempts + 1):
        db: Database | None = None
        try:
            db = _open(str(path))
            db.ping()
        except sqlite3.Error as err:
            last_error = err
            if db is not None:
                db.close()
            log.warning("Failed to ping database, retrying (attempt %d): %s", attempt, err)
            if attempt < attempts:
                time.sleep(delay)
            continue
        log.info("Successfully connected and pinged database")
        return db
    raise ConnectionError(
        f"failed to connect to database after {attempts} attempts: {last_error}"
    ) from last_error


def new_memory_database(*models: Any) -> Database:
    """Return an in-memory database with tables created for the given models."""
    db = _open(":memory:")
    tables: Iterable[Any] = models
    for model in tables:
        db.execute(model.schema)
    return db
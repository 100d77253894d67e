"""
DICEFAIR — Database Abstraction Layer

Dual-mode: SQLite for local dev and tests, PostgreSQL for production.
Auto-detects based on the DATABASE_URL environment variable.

Usage:
    from config.database import connect, init_db

    init_db()
    with connect() as db:            # commits on success, rolls back on error
        db.execute("SELECT * FROM dice_players WHERE identity = ?", [who])
        row = db.fetchone()

    # Explicit path (tests, tools)
    init_db("/tmp/test.db")
    db = connect("/tmp/test.db")
"""

import logging
import sqlite3

from config.settings import DiceConfig

logger = logging.getLogger("dicefair.db")

# ── Detect database mode ──
DATABASE_URL = DiceConfig.DATABASE_URL
USE_POSTGRES = DATABASE_URL.startswith("postgres")

if USE_POSTGRES:
    try:
        import psycopg
        from psycopg.rows import dict_row
        from psycopg_pool import ConnectionPool
        HAS_PSYCOPG = True
    except ImportError:
        logger.warning("DATABASE_URL is set but psycopg3 not installed — falling back to SQLite")
        HAS_PSYCOPG = False
        USE_POSTGRES = False
else:
    HAS_PSYCOPG = False

SQLITE_PATH = DiceConfig.DB_PATH

# ── Connection pool (PostgreSQL only) ──
_pg_pool = None


def _get_pg_pool():
    """Lazy-init PostgreSQL connection pool."""
    global _pg_pool
    if _pg_pool is None:
        conninfo = DATABASE_URL
        # psycopg wants postgresql://
        if conninfo.startswith("postgres://"):
            conninfo = conninfo.replace("postgres://", "postgresql://", 1)
        _pg_pool = ConnectionPool(
            conninfo=conninfo,
            min_size=2,
            max_size=20,
            max_idle=300,
            kwargs={"row_factory": dict_row, "autocommit": False},
        )
        logger.info("PostgreSQL pool initialized (min=2, max=20)")
    return _pg_pool


def _sqlite_dict_factory(cursor, row):
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


def _open_sqlite(path: str):
    """Open a raw SQLite connection."""
    conn = sqlite3.connect(path, timeout=10, check_same_thread=False)
    conn.row_factory = _sqlite_dict_factory
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA busy_timeout=5000")
    return conn


# ═══════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════

class DatabaseConnection:
    """Unified wrapper around SQLite or PostgreSQL connections.

    - Accepts ? or %s placeholders, converted for the active backend
    - Returns dict rows
    - Supports .execute(), .fetchone(), .fetchall(), .commit(), .close()
    """

    def __init__(self, conn, is_pg=False):
        self._conn = conn
        self._is_pg = is_pg
        self._cursor = None

    @property
    def is_pg(self) -> bool:
        return self._is_pg

    def _adapt_sql(self, sql):
        if self._is_pg:
            return sql.replace("?", "%s")
        return sql.replace("%s", "?")

    def execute(self, sql, params=None):
        """Execute a query. Returns self for chaining."""
        self._cursor = self._conn.execute(self._adapt_sql(sql), params or [])
        return self

    def executescript(self, sql):
        """Execute multiple statements. For PG, splits on semicolons."""
        if self._is_pg:
            for stmt in sql.split(";"):
                stmt = stmt.strip()
                if stmt:
                    self._conn.execute(stmt)
        else:
            self._conn.executescript(sql)
        return self

    def begin_write(self):
        """Open a write transaction.

        SQLite takes the database write lock immediately so a read-then-update
        cannot interleave with another writer. PostgreSQL starts a transaction
        implicitly; callers lock rows with SELECT ... FOR UPDATE.
        """
        if not self._is_pg:
            if self._conn.in_transaction:
                self._conn.commit()
            self._conn.execute("BEGIN IMMEDIATE")
        return self

    def fetchone(self):
        """Fetch one row as dict, or None."""
        if self._cursor is None:
            return None
        row = self._cursor.fetchone()
        return dict(row) if row is not None else None

    def fetchall(self):
        """Fetch all rows as list[dict]."""
        if self._cursor is None:
            return []
        return [dict(r) for r in self._cursor.fetchall()]

    @property
    def rowcount(self) -> int:
        return self._cursor.rowcount if self._cursor is not None else -1

    def commit(self):
        self._conn.commit()

    def rollback(self):
        self._conn.rollback()

    def close(self):
        # PG: returns the connection to the pool
        if self._is_pg:
            _get_pg_pool().putconn(self._conn)
        else:
            self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            if exc_type:
                self.rollback()
            else:
                self.commit()
        finally:
            self.close()


def connect(db_path: str = None) -> DatabaseConnection:
    """Open a new connection. Caller closes it (or uses ``with``).

    An explicit ``db_path`` always means SQLite.
    """
    if db_path is None and USE_POSTGRES and HAS_PSYCOPG:
        return DatabaseConnection(_get_pg_pool().getconn(), is_pg=True)
    return DatabaseConnection(_open_sqlite(db_path or SQLITE_PATH), is_pg=False)


def is_contention_error(exc: Exception) -> bool:
    """True for lock timeouts and serialization failures worth retrying."""
    if isinstance(exc, sqlite3.OperationalError):
        msg = str(exc).lower()
        return "locked" in msg or "busy" in msg
    if HAS_PSYCOPG:
        return isinstance(exc, (psycopg.errors.LockNotAvailable,
                                psycopg.errors.SerializationFailure,
                                psycopg.errors.DeadlockDetected))
    return False


# ═══════════════════════════════════════════════════════════════
# Schema
# ═══════════════════════════════════════════════════════════════

# SQL that works for BOTH SQLite and PostgreSQL
SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS dice_players (
    identity TEXT PRIMARY KEY,
    last_nonce INTEGER NOT NULL DEFAULT 0,
    created_at TEXT DEFAULT (CURRENT_TIMESTAMP)
);

CREATE TABLE IF NOT EXISTS dice_epochs (
    id TEXT PRIMARY KEY,
    commitment TEXT NOT NULL,
    secret TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'active',
    created_at TEXT DEFAULT (CURRENT_TIMESTAMP),
    revealed_at TEXT
);

CREATE TABLE IF NOT EXISTS dice_rounds (
    id TEXT PRIMARY KEY,
    epoch_id TEXT NOT NULL,
    identity TEXT NOT NULL,
    player_value TEXT NOT NULL,
    nonce INTEGER NOT NULL,
    number INTEGER NOT NULL,
    win INTEGER NOT NULL,
    target INTEGER NOT NULL,
    wager REAL NOT NULL,
    payout REAL NOT NULL,
    created_at TEXT DEFAULT (CURRENT_TIMESTAMP),
    UNIQUE (identity, nonce),
    FOREIGN KEY (epoch_id) REFERENCES dice_epochs(id),
    FOREIGN KEY (identity) REFERENCES dice_players(identity)
);

CREATE INDEX IF NOT EXISTS idx_rounds_identity ON dice_rounds(identity);
CREATE INDEX IF NOT EXISTS idx_rounds_epoch ON dice_rounds(epoch_id);
CREATE INDEX IF NOT EXISTS idx_epochs_status ON dice_epochs(status)
"""


def init_db(db_path: str = None):
    """Initialize the database schema."""
    db = connect(db_path)
    try:
        db.executescript(SCHEMA_SQL)
        db.commit()
        logger.info(f"Database initialized ({'PostgreSQL' if db.is_pg else 'SQLite'})")
    finally:
        db.close()

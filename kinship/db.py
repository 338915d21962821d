"""KuzuDB embedded database: schema, transactions, and the FastAPI connection dependency."""
import os
import logging
import threading
from contextlib import contextmanager
from pathlib import Path

import kuzu

from .errors import StoreUnavailable

logger = logging.getLogger(__name__)

DB_PATH = Path(os.environ.get("DB_PATH", Path(__file__).resolve().parent.parent / "graph_data"))
_database = None
_SENTINEL_FILE = ".db_initialized"

# Kuzu admits a single write transaction per database.
_write_lock = threading.RLock()


def _sentinel_path():
    return DB_PATH.parent / _SENTINEL_FILE


def write_sentinel():
    """Write a sentinel file indicating the database holds people.
    Called after the first person is stored so we can detect silent DB resets."""
    path = _sentinel_path()
    if path.exists():
        return
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("initialized")
        logger.info("Database sentinel written to %s", path)
    except OSError as e:
        logger.warning("Could not write DB sentinel: %s", e)


def check_db_integrity(conn):
    """Check if the database was silently reset (e.g., persistent disk not mounted).
    If a sentinel file exists but the DB has 0 people, data was likely lost."""
    sentinel = _sentinel_path()
    if not sentinel.exists():
        return  # First-time setup, nothing to check
    result = conn.execute("MATCH (p:Person) RETURN count(*)")
    count = result.get_next()[0] if result.has_next() else 0
    if count == 0:
        logger.critical(
            "DATABASE INTEGRITY CHECK FAILED: Sentinel file exists at %s "
            "but database has 0 people. The persistent disk may not be mounted. "
            "Refusing to serve requests to prevent data loss.",
            sentinel
        )
        raise StoreUnavailable(
            "Database was previously initialized but now has 0 people. "
            "This likely means the persistent disk is not mounted. "
            "Check your deployment configuration."
        )
    logger.info("Database integrity check passed: %d people found", count)


def get_database():
    global _database
    if _database is None:
        try:
            DB_PATH.parent.mkdir(parents=True, exist_ok=True)
            database = kuzu.Database(str(DB_PATH))
        except (OSError, RuntimeError) as e:
            logger.error("Could not open database at %s: %s", DB_PATH, e)
            raise StoreUnavailable(f"Database at {DB_PATH} could not be opened") from e
        init_schema(database)
        _database = database
    return _database


def init_schema(db):
    conn = kuzu.Connection(db)
    conn.execute(
        "CREATE NODE TABLE IF NOT EXISTS Person("
        "id STRING, name STRING, surname STRING, maiden_name STRING, "
        "family STRING, gender STRING, marital_status STRING, "
        "father_id STRING, father_name STRING, "
        "mother_id STRING, mother_name STRING, "
        "spouse_id STRING, spouse_name STRING, "
        "birth_month STRING, birth_year STRING, "
        "profile_picture_url STRING, descr STRING, "
        "status STRING, deleted_at STRING, "
        "is_deceased BOOL, death_date STRING, "
        "PRIMARY KEY(id))"
    )


@contextmanager
def transaction(conn):
    """Run the enclosed statements as one atomic batch.

    Everything executed on `conn` inside the block commits together or not at all.
    """
    if conn is None:
        raise StoreUnavailable("No database connection")
    with _write_lock:
        try:
            conn.execute("BEGIN TRANSACTION")
        except RuntimeError as e:
            raise StoreUnavailable(f"Could not start a transaction: {e}") from e
        try:
            yield conn
        except BaseException:
            try:
                conn.execute("ROLLBACK")
            except RuntimeError as e:
                # Kuzu rolls back on its own when a statement fails mid-transaction.
                logger.warning("Rollback after failed transaction reported: %s", e)
            raise
        try:
            conn.execute("COMMIT")
        except RuntimeError as e:
            try:
                conn.execute("ROLLBACK")
            except RuntimeError as rollback_error:
                logger.warning("Rollback after failed commit reported: %s", rollback_error)
            raise StoreUnavailable(f"Could not commit transaction: {e}") from e


def get_conn():
    db = get_database()
    conn = kuzu.Connection(db)
    try:
        yield conn
    finally:
        conn.close()

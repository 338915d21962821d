"""Tests for kinship/db.py — schema init, transactions, get_conn, integrity checks."""
import kuzu
import pytest

from kinship.db import init_schema, get_conn, write_sentinel, check_db_integrity, transaction
from kinship.errors import StoreUnavailable


def _count(conn):
    result = conn.execute("MATCH (p:Person) RETURN count(*)")
    return result.get_next()[0]


class _FailingCommit:
    """Connection stand-in whose COMMIT fails."""

    def __init__(self):
        self.statements = []

    def execute(self, query, params=None):
        self.statements.append(query)
        if query == "COMMIT":
            raise RuntimeError("IO exception: could not write WAL")

    def close(self):
        self.statements.append("close")


def test_init_schema_creates_person_table(db):
    conn = kuzu.Connection(db)
    assert _count(conn) == 0


def test_init_schema_idempotent(db):
    """Calling init_schema twice doesn't error."""
    init_schema(db)
    init_schema(db)
    conn = kuzu.Connection(db)
    assert _count(conn) == 0


def test_person_columns(conn):
    conn.execute(
        "CREATE (p:Person {id: 'PAT-240101-001', name: 'RAVI', surname: 'PATEL', "
        "gender: 'male', marital_status: 'single', father_name: 'DINESH PATEL', "
        "descr: 'Farmer', status: 'approved', is_deceased: false})"
    )
    result = conn.execute(
        "MATCH (p:Person) WHERE p.id = 'PAT-240101-001' "
        "RETURN p.father_id, p.father_name, p.descr, p.is_deceased"
    )
    row = result.get_next()
    assert row[0] is None
    assert row[1] == "DINESH PATEL"
    assert row[2] == "Farmer"
    assert row[3] is False


def test_get_conn_yields_connection():
    """get_conn is a generator that yields a usable connection."""
    gen = get_conn()
    assert hasattr(gen, '__next__')


def test_get_conn_closes_connection(db, monkeypatch):
    fake = _FailingCommit()
    monkeypatch.setattr("kinship.db.get_database", lambda: db)
    monkeypatch.setattr("kinship.db.kuzu.Connection", lambda database: fake)
    gen = get_conn()
    assert next(gen) is fake
    gen.close()
    assert fake.statements == ["close"]


class TestTransaction:
    def test_commits(self, conn):
        with transaction(conn):
            conn.execute("CREATE (p:Person {id: 'a', name: 'A', surname: 'B', gender: 'male', status: 'approved'})")
        assert _count(conn) == 1

    def test_rolls_back_on_error(self, conn):
        with pytest.raises(ValueError):
            with transaction(conn):
                conn.execute("CREATE (p:Person {id: 'a', name: 'A', surname: 'B', gender: 'male', status: 'approved'})")
                raise ValueError("boom")
        assert _count(conn) == 0

    def test_rolls_back_on_failed_statement(self, conn):
        conn.execute("CREATE (p:Person {id: 'a', name: 'A', surname: 'B', gender: 'male', status: 'approved'})")
        with pytest.raises(RuntimeError):
            with transaction(conn):
                conn.execute("CREATE (p:Person {id: 'b', name: 'C', surname: 'D', gender: 'male', status: 'approved'})")
                # Duplicate primary key
                conn.execute("CREATE (p:Person {id: 'a', name: 'E', surname: 'F', gender: 'male', status: 'approved'})")
        assert _count(conn) == 1

    def test_usable_after_rollback(self, conn):
        with pytest.raises(ValueError):
            with transaction(conn):
                raise ValueError("boom")
        with transaction(conn):
            conn.execute("CREATE (p:Person {id: 'a', name: 'A', surname: 'B', gender: 'male', status: 'approved'})")
        assert _count(conn) == 1

    def test_no_connection(self):
        with pytest.raises(StoreUnavailable):
            with transaction(None):
                pass

    def test_failed_commit(self):
        conn = _FailingCommit()
        with pytest.raises(StoreUnavailable):
            with transaction(conn):
                conn.execute("CREATE (p:Person {id: 'a'})")
        assert conn.statements[-2:] == ["COMMIT", "ROLLBACK"]

    def test_lock_released_after_failed_commit(self, conn):
        with pytest.raises(StoreUnavailable):
            with transaction(_FailingCommit()):
                pass
        with transaction(conn):
            conn.execute("CREATE (p:Person {id: 'a', name: 'A', surname: 'B', gender: 'male', status: 'approved'})")
        assert _count(conn) == 1


class TestDbIntegrity:
    """Tests for database reset detection safeguard."""

    def test_no_sentinel_passes(self, db, db_path, monkeypatch):
        """Without a sentinel file, integrity check passes (first-time setup)."""
        import kinship.db as db_mod
        monkeypatch.setattr(db_mod, "DB_PATH", db_path)
        check_db_integrity(kuzu.Connection(db))

    def test_sentinel_with_people_passes(self, db, db_path, monkeypatch):
        import kinship.db as db_mod
        monkeypatch.setattr(db_mod, "DB_PATH", db_path)
        conn = kuzu.Connection(db)
        conn.execute("CREATE (p:Person {id: 'a', name: 'A', surname: 'B', gender: 'male', status: 'approved'})")
        write_sentinel()
        check_db_integrity(conn)

    def test_sentinel_with_no_people_fails(self, db, db_path, monkeypatch):
        """Sentinel exists but DB is empty: disk likely not mounted."""
        import kinship.db as db_mod
        monkeypatch.setattr(db_mod, "DB_PATH", db_path)
        write_sentinel()
        with pytest.raises(StoreUnavailable, match="0 people"):
            check_db_integrity(kuzu.Connection(db))

    def test_write_sentinel_idempotent(self, db_path, monkeypatch):
        import kinship.db as db_mod
        monkeypatch.setattr(db_mod, "DB_PATH", db_path)
        write_sentinel()
        write_sentinel()
        assert (db_path.parent / ".db_initialized").read_text() == "initialized"

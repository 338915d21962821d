"""Shared fixtures for the kinship test suite."""
import os
import tempfile

# Set env vars BEFORE any kinship imports
os.environ.setdefault("DB_PATH", os.path.join(tempfile.mkdtemp(prefix="kinship-tests-"), "graph_data"))

import pytest
import kuzu
from fastapi.testclient import TestClient

from kinship.db import init_schema, get_conn
from kinship import people
from kinship.models import Linked, Status

# Kuzu maps max_db_size of virtual memory per open Database; keep test databases small.
TEST_BUFFER_POOL = 64 * 1024 * 1024
TEST_MAX_DB_SIZE = 1 << 30


# ── Database fixtures ──

@pytest.fixture
def db_path(tmp_path):
    """Temp directory for a fresh KuzuDB."""
    return tmp_path / "test_db"


@pytest.fixture
def db(db_path):
    """Initialized KuzuDB with the Person schema."""
    database = kuzu.Database(str(db_path), buffer_pool_size=TEST_BUFFER_POOL,
                             max_db_size=TEST_MAX_DB_SIZE)
    init_schema(database)
    return database


@pytest.fixture
def conn(db):
    """KuzuDB connection for unit tests."""
    c = kuzu.Connection(db)
    yield c
    c.close()


# ── Person fixtures ──

@pytest.fixture
def make_person(conn):
    """Factory fixture: create an approved person with sensible defaults."""
    def _factory(name, surname="PATEL", gender="male", status=Status.APPROVED, **fields):
        data = {"name": name, "surname": surname, "maiden_name": surname,
                "gender": gender, **fields}
        return people.create_person(conn, data, status)
    return _factory


@pytest.fixture
def family(conn, make_person):
    """Three generations around ROHAN PATEL. Returns name -> id.

    RAMESH + SITA          KANTI SHAH
      ├─ VIJAY + ASHA SHAH    ├─ ASHA
      ├─ ANIL                 ├─ NIRAV
      └─ MEENA                └─ PRIYA
    VIJAY + ASHA -> ROHAN, NEHA;  VIJAY alone -> KIRAN (half-brother)
    ROHAN + DIVYA MEHTA, whose parents are JAYESH and HEMA MEHTA.
    """
    ids = {}
    ids["RAMESH"] = make_person("RAMESH").id
    ids["SITA"] = make_person("SITA", gender="female", spouse=Linked(ids["RAMESH"])).id
    ids["KANTI"] = make_person("KANTI", surname="SHAH").id
    parents_p = {"father": Linked(ids["RAMESH"]), "mother": Linked(ids["SITA"])}
    ids["VIJAY"] = make_person("VIJAY", **parents_p).id
    ids["ANIL"] = make_person("ANIL", **parents_p).id
    ids["MEENA"] = make_person("MEENA", gender="female", **parents_p).id
    parents_s = {"father": Linked(ids["KANTI"])}
    ids["ASHA"] = make_person("ASHA", surname="SHAH", gender="female",
                              spouse=Linked(ids["VIJAY"]), **parents_s).id
    ids["NIRAV"] = make_person("NIRAV", surname="SHAH", **parents_s).id
    ids["PRIYA"] = make_person("PRIYA", surname="SHAH", gender="female", **parents_s).id
    children = {"father": Linked(ids["VIJAY"]), "mother": Linked(ids["ASHA"])}
    ids["ROHAN"] = make_person("ROHAN", **children).id
    ids["NEHA"] = make_person("NEHA", gender="female", **children).id
    ids["KIRAN"] = make_person("KIRAN", father=Linked(ids["VIJAY"])).id
    ids["JAYESH"] = make_person("JAYESH", surname="MEHTA").id
    ids["HEMA"] = make_person("HEMA", surname="MEHTA", gender="female",
                              spouse=Linked(ids["JAYESH"])).id
    ids["DIVYA"] = make_person("DIVYA", surname="MEHTA", gender="female",
                               father=Linked(ids["JAYESH"]), mother=Linked(ids["HEMA"]),
                               spouse=Linked(ids["ROHAN"])).id
    return ids


def assert_spouses_symmetric(conn):
    """Every spouse link points back and both partners are married."""
    everyone = {p.id: p for p in people.snapshot(conn)}
    for person in everyone.values():
        if person.spouse_id is None:
            continue
        partner = everyone.get(person.spouse_id)
        assert partner is not None, f"{person.id} points at missing spouse {person.spouse_id}"
        assert partner.spouse_id == person.id
        assert person.marital_status.value == "married"
        assert partner.marital_status.value == "married"


# ── FastAPI app fixtures ──

@pytest.fixture
def app_with_db(db):
    """FastAPI app with dependency override pointing at test DB."""
    from kinship.main import app

    def override_get_conn():
        c = kuzu.Connection(db)
        try:
            yield c
        finally:
            c.close()

    app.dependency_overrides[get_conn] = override_get_conn
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app_with_db):
    return TestClient(app_with_db, raise_server_exceptions=False)

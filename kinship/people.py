"""Person records: the only place that writes relation edges.

Every mutating function runs as one transaction, so a spouse repair or a purge
cascade is applied completely or not at all. Spousal links are kept symmetric:
whenever A.spouse points at B, B.spouse points back at A and both are married.
"""
import os
import logging
from collections.abc import Callable, Iterable, Mapping

import kuzu

from . import lifecycle
from .db import transaction
from .errors import IdCollision, InvariantViolation, NotFound
from .identifiers import generate_id, id_exists
from .lifecycle import Action
from .models import (
    EDITABLE_FIELDS, Gender, Linked, MaritalStatus, Person, Slot, Status, Unlinked,
    linked_id, slot_from_columns, slot_to_columns,
)

logger = logging.getLogger(__name__)

PLACEHOLDER_PICTURE_URL = os.environ.get("PLACEHOLDER_PICTURE_URL", "https://placehold.co/150x150.png")
MAX_ID_ATTEMPTS = 3

_COLUMNS = (
    "id", "name", "surname", "maiden_name", "family", "gender", "marital_status",
    "father_id", "father_name", "mother_id", "mother_name", "spouse_id", "spouse_name",
    "birth_month", "birth_year", "profile_picture_url", "descr",
    "status", "deleted_at", "is_deceased", "death_date",
)
_RETURN = ", ".join(f"p.{c}" for c in _COLUMNS)
_REQUIRED_FIELDS = ("name", "surname", "gender")
_SLOT_FIELDS = {s.value for s in Slot}
_NON_NULL_FIELDS = frozenset({"name", "surname", "gender", "marital_status", "is_deceased"})


# ── Row mapping ──

def _row_to_person(row) -> Person:
    r = dict(zip(_COLUMNS, row))
    return Person(
        id=r["id"],
        name=r["name"] or "",
        surname=r["surname"] or "",
        gender=Gender(r["gender"]),
        maiden_name=r["maiden_name"] or "",
        family=r["family"] or "",
        marital_status=MaritalStatus(r["marital_status"] or MaritalStatus.SINGLE.value),
        father=slot_from_columns(r["father_id"], r["father_name"]),
        mother=slot_from_columns(r["mother_id"], r["mother_name"]),
        spouse=slot_from_columns(r["spouse_id"], r["spouse_name"]),
        birth_month=r["birth_month"] or "",
        birth_year=r["birth_year"] or "",
        profile_picture_url=r["profile_picture_url"] or "",
        description=r["descr"] or "",
        status=Status(r["status"]),
        deleted_at=r["deleted_at"] or None,
        is_deceased=bool(r["is_deceased"]),
        death_date=r["death_date"] or None,
    )


def _field_columns(field: str, value) -> dict:
    """Column values for one Person field. None means clear the column."""
    if field in _SLOT_FIELDS:
        rel_id, rel_name = slot_to_columns(value)
        return {f"{field}_id": rel_id, f"{field}_name": rel_name}
    if field == "description":
        return {"descr": value}
    if isinstance(value, (Gender, MaritalStatus, Status)):
        return {field: value.value}
    return {field: value}


def _person_columns(person: Person) -> dict:
    cols = {"id": person.id}
    for field in EDITABLE_FIELDS | {"status", "deleted_at"}:
        cols.update(_field_columns(field, getattr(person, field)))
    return cols


def _insert(conn: kuzu.Connection, person: Person):
    cols = {k: v for k, v in _person_columns(person).items() if v is not None}
    props = ", ".join(f"{k}: ${k}" for k in cols)
    conn.execute(f"CREATE (p:Person {{{props}}})", cols)


def _set_columns(conn: kuzu.Connection, person_id: str, cols: dict):
    if not cols:
        return
    assignments = []
    params = {"id": person_id}
    for col, value in cols.items():
        if value is None:
            assignments.append(f"p.{col} = NULL")
        else:
            assignments.append(f"p.{col} = ${col}")
            params[col] = value
    conn.execute(
        f"MATCH (p:Person) WHERE p.id = $id SET {', '.join(assignments)}",
        params
    )


def _ids_where(conn: kuzu.Connection, column: str, value: str) -> list[str]:
    result = conn.execute(
        f"MATCH (p:Person) WHERE p.{column} = $value RETURN p.id ORDER BY p.id",
        {"value": value}
    )
    ids = []
    while result.has_next():
        ids.append(result.get_next()[0])
    return ids


# ── Reads ──

def get_person(conn: kuzu.Connection, person_id: str) -> Person | None:
    if not person_id:
        return None
    result = conn.execute(
        f"MATCH (p:Person) WHERE p.id = $id RETURN {_RETURN}",
        {"id": person_id}
    )
    if result.has_next():
        return _row_to_person(result.get_next())
    return None


def _require(conn: kuzu.Connection, person_id: str) -> Person:
    person = get_person(conn, person_id)
    if person is None:
        raise NotFound(person_id)
    return person


def _query_people(conn, order_by: str, status: Status | None,
                  visible: Callable[[Person], bool] | None) -> list[Person]:
    if status is not None:
        result = conn.execute(
            f"MATCH (p:Person) WHERE p.status = $status RETURN {_RETURN} ORDER BY {order_by}",
            {"status": Status(status).value}
        )
    else:
        result = conn.execute(f"MATCH (p:Person) RETURN {_RETURN} ORDER BY {order_by}")
    people = []
    while result.has_next():
        person = _row_to_person(result.get_next())
        if visible is None or visible(person):
            people.append(person)
    return people


def list_people(conn: kuzu.Connection, status: Status | None = None,
                visible: Callable[[Person], bool] | None = None) -> list[Person]:
    """People for listings, alphabetical by surname then name."""
    return _query_people(conn, "p.surname, p.name, p.id", status, visible)


def snapshot(conn: kuzu.Connection, status: Status | None = None,
             visible: Callable[[Person], bool] | None = None) -> list[Person]:
    """Every person in id order, the input the relations module derives from.

    Admin views pass the full set; public views pass status=APPROVED.
    """
    return _query_people(conn, "p.id", status, visible)


# ── Field validation ──

def _coerce(field: str, value):
    try:
        if field == "gender":
            return Gender(value)
        if field == "marital_status":
            return MaritalStatus(value)
    except ValueError as e:
        raise InvariantViolation(f"Invalid {field}: {value!r}") from e
    if field in _SLOT_FIELDS:
        if value is not None and not isinstance(value, (Linked, Unlinked)):
            raise InvariantViolation(f"{field} must be a Linked or Unlinked relation")
        if isinstance(value, Unlinked) and not value.name.strip():
            return None
        return value
    if field == "is_deceased":
        return bool(value)
    return value


def _clean_fields(data: Mapping) -> dict:
    rejected = set(data) - EDITABLE_FIELDS
    if rejected:
        raise InvariantViolation(f"Fields cannot be written directly: {', '.join(sorted(rejected))}")
    return {
        field: _coerce(field, value) for field, value in data.items()
        if not (value is None and field in _NON_NULL_FIELDS)
    }


def _normalise_links(conn, person_id: str, gender: Gender, changes: dict) -> dict:
    """Validate linked relatives in `changes` and fill in missing labels."""
    for slot in Slot:
        value = changes.get(slot.value)
        if not isinstance(value, Linked):
            continue
        if value.id == person_id:
            raise InvariantViolation(f"A person cannot be their own {slot.value}")
        relative = get_person(conn, value.id)
        if slot is Slot.SPOUSE:
            if relative is None:
                raise NotFound(value.id)
            if relative.gender == gender:
                raise InvariantViolation("Spouses must be of different genders")
        elif relative is not None:
            expected = Gender.MALE if slot is Slot.FATHER else Gender.FEMALE
            if relative.gender != expected:
                raise InvariantViolation(
                    f"{relative.display_name} cannot be linked as {slot.value}"
                )
        if relative is not None and not value.label:
            changes[slot.value] = Linked(value.id, relative.display_name)
    return changes


# ── Spouse repair ──

def _clear_spouse(conn, person_id: str):
    if get_person(conn, person_id) is None:
        logger.warning("Spouse repair skipped: %s no longer exists", person_id)
        return
    _set_columns(conn, person_id, {
        "spouse_id": None, "spouse_name": None,
        "marital_status": MaritalStatus.SINGLE.value,
    })


def _link_spouse(conn, person_id: str, partner_id: str, partner_name: str):
    _set_columns(conn, person_id, {
        "spouse_id": partner_id, "spouse_name": partner_name or None,
        "marital_status": MaritalStatus.MARRIED.value,
    })


def _take_spouse(conn, spouse_id: str, person_id: str, display_name: str):
    """Point `spouse_id` back at `person_id`, freeing any other partner it had."""
    spouse = _require(conn, spouse_id)
    if spouse.spouse_id and spouse.spouse_id != person_id:
        _clear_spouse(conn, spouse.spouse_id)
    _link_spouse(conn, spouse_id, person_id, display_name)


# ── Creation ──

def _is_blank(value) -> bool:
    return value is None or not str(value).strip()


def _draft(fields: dict, status: Status) -> Person:
    missing = [f for f in _REQUIRED_FIELDS if _is_blank(fields.get(f))]
    if missing:
        raise InvariantViolation(f"Missing required fields: {', '.join(missing)}")
    values = dict(fields)
    if isinstance(values.get("spouse"), Linked):
        if values.get("marital_status") is MaritalStatus.SINGLE:
            raise InvariantViolation("A single person cannot have a linked spouse")
        values["marital_status"] = MaritalStatus.MARRIED
    if not values.get("profile_picture_url"):
        values["profile_picture_url"] = PLACEHOLDER_PICTURE_URL
    if values.get("death_date"):
        values["is_deceased"] = True
    for key in ("maiden_name", "family", "birth_month", "birth_year", "description"):
        if values.get(key) is None:
            values[key] = ""
    return Person(id="", status=status, **values)


def _allocate_id(conn, surname: str) -> str:
    person_id = generate_id(conn, surname)
    if id_exists(conn, person_id):
        raise IdCollision(person_id)
    return person_id


def _with_id_retry(conn, write):
    """Run `write` in a transaction, retrying when identifier allocation collides."""
    for attempt in range(1, MAX_ID_ATTEMPTS + 1):
        try:
            with transaction(conn):
                return write()
        except IdCollision as e:
            if attempt == MAX_ID_ATTEMPTS:
                raise
            logger.warning("Identifier %s collided, retrying (%d/%d)",
                           e.person_id, attempt, MAX_ID_ATTEMPTS)


def create_person(conn: kuzu.Connection, data: Mapping,
                  status: Status = Status.PENDING) -> Person:
    """Store a new person and link the named spouse back to them.

    Registration passes PENDING, admin creation APPROVED.
    """
    status = Status(status)
    if status is Status.DELETED:
        raise InvariantViolation("New records start pending or approved")
    draft = _draft(_clean_fields(data), status)

    def write():
        person_id = _allocate_id(conn, draft.surname)
        links = _normalise_links(conn, person_id, draft.gender,
                                 {s.value: draft.slot(s) for s in Slot})
        person = draft.with_changes(id=person_id, **links)
        _insert(conn, person)
        if person.spouse_id:
            _take_spouse(conn, person.spouse_id, person_id, person.display_name)
        return person_id

    person_id = _with_id_retry(conn, write)
    logger.info("Created %s person %s", status.value, person_id)
    return get_person(conn, person_id)


def import_batch(conn: kuzu.Connection, records: Iterable[Mapping]) -> int:
    """Store disconnected records as approved people with fresh ids.

    No spouse repair runs, so a linked spouse is kept only as the name it carries;
    parent slots are stored as given.
    """
    drafts = []
    for record in records:
        fields = {k: v for k, v in record.items() if k not in ("id", "status", "deleted_at")}
        fields = _clean_fields(fields)
        spouse = fields.get("spouse")
        if isinstance(spouse, Linked):
            if not spouse.label.strip():
                raise InvariantViolation(f"Imported spouse {spouse.id} needs a name")
            fields["spouse"] = Unlinked(spouse.label)
        if fields.get("spouse") is not None:
            fields.setdefault("marital_status", MaritalStatus.MARRIED)
        drafts.append(_draft(fields, Status.APPROVED))
    if not drafts:
        return 0

    def write():
        for draft in drafts:
            _insert(conn, draft.with_changes(id=_allocate_id(conn, draft.surname)))
        return len(drafts)

    count = _with_id_retry(conn, write)
    logger.info("Imported %d people", count)
    return count


# ── Updates ──

def update_person(conn: kuzu.Connection, person_id: str, patch: Mapping) -> Person:
    """Apply `patch` (field name -> value) and repair spouse links it disturbs.

    A spouse change frees the previous spouse, frees the new spouse's previous
    partner, and points the new spouse back here. Setting marital_status to single
    drops the spouse the same way.
    """
    changes = _clean_fields(patch)
    blank = [f for f in _REQUIRED_FIELDS if f in changes and _is_blank(changes[f])]
    if blank:
        raise InvariantViolation(f"Required fields cannot be blank: {', '.join(blank)}")
    with transaction(conn):
        current = _require(conn, person_id)
        if changes.get("marital_status") is MaritalStatus.SINGLE:
            changes["spouse"] = None
        gender = changes.get("gender", current.gender)
        changes = _normalise_links(conn, person_id, gender, changes)

        old_spouse_id = current.spouse_id
        new_spouse_id = linked_id(changes["spouse"]) if "spouse" in changes else old_spouse_id
        if new_spouse_id:
            changes.setdefault("marital_status", MaritalStatus.MARRIED)
            if "spouse" not in changes and "gender" in changes:
                spouse = get_person(conn, new_spouse_id)
                if spouse is not None and spouse.gender == gender:
                    raise InvariantViolation("Spouses must be of different genders")

        display_name = current.with_changes(
            name=changes.get("name", current.name),
            surname=changes.get("surname", current.surname),
        ).display_name
        if new_spouse_id != old_spouse_id:
            if old_spouse_id:
                _clear_spouse(conn, old_spouse_id)
            if new_spouse_id:
                _take_spouse(conn, new_spouse_id, person_id, display_name)
        elif new_spouse_id and display_name != current.display_name:
            _link_spouse(conn, new_spouse_id, person_id, display_name)

        if changes.get("death_date"):
            changes["is_deceased"] = True
        cols = {}
        for field, value in changes.items():
            cols.update(_field_columns(field, value))
        _set_columns(conn, person_id, cols)
    return get_person(conn, person_id)


def bulk_set_deceased(conn: kuzu.Connection, person_ids: Iterable[str], is_deceased: bool) -> int:
    ids = list(dict.fromkeys(person_ids))
    with transaction(conn):
        for person_id in ids:
            _require(conn, person_id)
            _set_columns(conn, person_id, {"is_deceased": bool(is_deceased)})
    return len(ids)


# ── Lifecycle ──

def _transition(conn, person_id: str, action: Action, cols: dict) -> Person:
    with transaction(conn):
        current = _require(conn, person_id)
        target = lifecycle.next_status(current.status, action)
        _set_columns(conn, person_id, {"status": target.value, **cols})
    logger.info("%s %s: %s -> %s", action.value, person_id, current.status.value, target.value)
    return get_person(conn, person_id)


def set_approval(conn: kuzu.Connection, person_id: str, approved: bool) -> Person:
    action = Action.APPROVE if approved else Action.UNAPPROVE
    return _transition(conn, person_id, action, {})


def soft_delete(conn: kuzu.Connection, person_id: str) -> Person:
    """Move a person to the dustbin. Edges pointing at them stay until purge."""
    return _transition(conn, person_id, Action.SOFT_DELETE, {"deleted_at": lifecycle.now_iso()})


def recover(conn: kuzu.Connection, person_id: str) -> Person:
    return _transition(conn, person_id, Action.RECOVER, {"deleted_at": None})


def purge(conn: kuzu.Connection, person_id: str):
    """Remove a person for good and clear every edge that pointed at them."""
    with transaction(conn):
        person = _require(conn, person_id)
        lifecycle.next_status(person.status, Action.PURGE)
        if person.status is not Status.DELETED:
            logger.warning("Purging %s while still %s", person_id, person.status.value)

        partners = _ids_where(conn, "spouse_id", person_id)
        children_of_father = _ids_where(conn, "father_id", person_id)
        children_of_mother = _ids_where(conn, "mother_id", person_id)

        for partner_id in partners:
            _clear_spouse(conn, partner_id)
        for child_id in children_of_father:
            _set_columns(conn, child_id, {"father_id": None})
        for child_id in children_of_mother:
            _set_columns(conn, child_id, {"mother_id": None})
        conn.execute(
            "MATCH (p:Person) WHERE p.id = $id DETACH DELETE p",
            {"id": person_id}
        )
    logger.info("Purged %s (%d spouse, %d child links cleared)", person_id,
                len(partners), len(children_of_father) + len(children_of_mother))

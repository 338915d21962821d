"""Human-readable person identifiers of the form SUR-YYMMDD-NNN.

The sequence is read from the database, so `generate_id` must run inside the same
write transaction (`db.transaction`) that stores the new record. Write transactions
are serialised, which makes allocation for a prefix+date partition race-free within
the process; `id_exists` lets callers detect a clash from any other writer.
"""
from datetime import date, datetime, timezone

import kuzu

PLACEHOLDER_PREFIX = "UNK"
PREFIX_LENGTH = 3
SEQUENCE_WIDTH = 3


def surname_prefix(surname: str) -> str:
    """First three letters of the surname, uppercased; short surnames are padded with X."""
    cleaned = "".join(ch for ch in (surname or "") if not ch.isspace()).upper()
    if not cleaned:
        return PLACEHOLDER_PREFIX
    return cleaned[:PREFIX_LENGTH].ljust(PREFIX_LENGTH, "X")


def id_prefix(surname: str, today: date | None = None) -> str:
    today = today or datetime.now(timezone.utc).date()
    return f"{surname_prefix(surname)}-{today:%y%m%d}"


def next_sequence(existing_ids, prefix: str) -> int:
    """One past the highest sequence already used under `prefix`.

    Uses the maximum rather than a count so that purged records never free a number
    that a surviving record still holds.
    """
    highest = 0
    head = f"{prefix}-"
    for pid in existing_ids:
        if not pid.startswith(head):
            continue
        tail = pid[len(head):]
        if tail.isdigit():
            highest = max(highest, int(tail))
    return highest + 1


def format_id(prefix: str, sequence: int) -> str:
    return f"{prefix}-{sequence:0{SEQUENCE_WIDTH}d}"


def generate_id(conn: kuzu.Connection, surname: str, today: date | None = None) -> str:
    prefix = id_prefix(surname, today)
    result = conn.execute(
        "MATCH (p:Person) WHERE p.id STARTS WITH $head RETURN p.id",
        {"head": f"{prefix}-"}
    )
    existing = []
    while result.has_next():
        existing.append(result.get_next()[0])
    return format_id(prefix, next_sequence(existing, prefix))


def id_exists(conn: kuzu.Connection, person_id: str) -> bool:
    result = conn.execute(
        "MATCH (p:Person) WHERE p.id = $id RETURN count(*)",
        {"id": person_id}
    )
    return result.has_next() and result.get_next()[0] > 0

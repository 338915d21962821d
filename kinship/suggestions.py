"""Relative suggestions from an external scoring oracle.

The oracle sees one person's profile and the approved community and answers with
guesses. Answers are unverified: each is validated, must name someone from the pool
it was given, and is applied only through `people.update_person` like any manual link.
"""
import logging
from typing import Literal, Protocol

import kuzu
from pydantic import BaseModel, ValidationError

from . import people
from .errors import NotFound
from .models import Linked, Person, Slot, Status

logger = logging.getLogger(__name__)


class PersonProfile(BaseModel):
    id: str
    name: str
    surname: str
    gender: Literal["male", "female"]
    marital_status: Literal["single", "married"]
    father_name: str | None = None
    mother_name: str | None = None
    spouse_name: str | None = None


class CandidateProfile(BaseModel):
    id: str
    name: str
    surname: str
    gender: Literal["male", "female"]
    birth_year: str = ""
    spouse_id: str | None = None


class Suggestion(BaseModel):
    candidate_id: str
    name: str = ""
    relationship: Literal["father", "mother", "spouse"]
    rationale: str = ""


class SuggestionOracle(Protocol):
    def suggest(self, profile: PersonProfile,
                candidates: list[CandidateProfile]) -> list[dict | Suggestion]:
        ...


def _slot_name(person: Person, slot: Slot) -> str | None:
    value = person.slot(slot)
    if value is None:
        return None
    return getattr(value, "label", None) or getattr(value, "name", None) or None


def build_profile(person: Person) -> PersonProfile:
    return PersonProfile(
        id=person.id,
        name=person.display_name,
        surname=person.surname,
        gender=person.gender.value,
        marital_status=person.marital_status.value,
        father_name=_slot_name(person, Slot.FATHER),
        mother_name=_slot_name(person, Slot.MOTHER),
        spouse_name=_slot_name(person, Slot.SPOUSE),
    )


def build_candidates(person: Person, community: list[Person]) -> list[CandidateProfile]:
    return [
        CandidateProfile(
            id=p.id,
            name=p.display_name,
            surname=p.surname,
            gender=p.gender.value,
            birth_year=p.birth_year,
            spouse_id=p.spouse_id,
        )
        for p in community
        if p.id != person.id and p.status is Status.APPROVED
    ]


def vet_suggestions(raw, candidates: list[CandidateProfile]) -> list[Suggestion]:
    """Keep only well-formed suggestions that name a candidate from the pool."""
    pool = {c.id for c in candidates}
    vetted = []
    for item in raw or []:
        try:
            suggestion = Suggestion.model_validate(item)
        except ValidationError as e:
            logger.warning("Discarding malformed suggestion: %s", e)
            continue
        if suggestion.candidate_id not in pool:
            logger.warning("Discarding suggestion for %s: not in the candidate pool",
                           suggestion.candidate_id)
            continue
        vetted.append(suggestion)
    return vetted


def suggest_connections(conn: kuzu.Connection, person_id: str,
                        oracle: SuggestionOracle) -> list[Suggestion]:
    person = people.get_person(conn, person_id)
    if person is None:
        raise NotFound(person_id)
    candidates = build_candidates(person, people.snapshot(conn, status=Status.APPROVED))
    raw = oracle.suggest(build_profile(person), candidates)
    return vet_suggestions(raw, candidates)


def accept_suggestion(conn: kuzu.Connection, person_id: str, suggestion: Suggestion) -> Person:
    slot = Slot(suggestion.relationship)
    return people.update_person(conn, person_id, {slot.value: Linked(suggestion.candidate_id)})

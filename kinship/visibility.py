"""Which person records an actor may see.

An actor's scope comes from the identity provider. Super-admins and scopes with
access "all" see every record; a "specific" scope sees a person only when one of the
person's surnames is granted and the person's family is granted under that surname.
"""
from dataclasses import dataclass, field
from typing import Literal

from .models import Person, Status


@dataclass(frozen=True)
class ActorScope:
    role: Literal["super-admin", "editor"] = "editor"
    access: Literal["all", "specific"] = "all"
    surnames: tuple[str, ...] = ()
    families: dict[str, tuple[str, ...]] = field(default_factory=dict)


FULL_ACCESS = ActorScope(role="super-admin", access="all")


def is_visible(person: Person, scope: ActorScope) -> bool:
    if scope.role == "super-admin" or scope.access == "all":
        return True
    person_surnames = [s for s in (person.maiden_name, person.surname) if s]
    if not any(s in scope.surnames for s in person_surnames):
        return False
    surname = person.surname if person.surname in scope.surnames else person.maiden_name
    allowed_families = scope.families.get(surname)
    if not allowed_families or not person.family:
        return False
    return person.family in allowed_families


def visible_to(scope: ActorScope):
    """Predicate form of `is_visible`, for `people.list_people` and `people.snapshot`."""
    return lambda person: is_visible(person, scope)


def is_public(person: Person) -> bool:
    return person.status is Status.APPROVED

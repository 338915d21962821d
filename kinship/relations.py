"""Derived family relations computed from a snapshot of person records.

Every function here is pure: it takes the full list of people (as returned by
`people.snapshot`) and never touches the database. Missing people or references
give empty results, never errors. Visibility is the caller's concern: public pages
pass an approved-only snapshot, admin pages pass everything they may see.

Lists come back in snapshot order.
"""
from dataclasses import dataclass, field

from .models import Gender, MaritalStatus, Person, Slot, Status


@dataclass(frozen=True)
class Parents:
    father: Person | None = None
    mother: Person | None = None


@dataclass(frozen=True)
class Grandparents:
    paternal_grandfather: Person | None = None
    paternal_grandmother: Person | None = None
    maternal_grandfather: Person | None = None
    maternal_grandmother: Person | None = None


@dataclass(frozen=True)
class InLaws:
    father_in_law: Person | None = None
    mother_in_law: Person | None = None


@dataclass(frozen=True)
class UnclesAndAunts:
    uncles: list[Person] = field(default_factory=list)
    aunts: list[Person] = field(default_factory=list)


@dataclass(frozen=True)
class FamilyView:
    person: Person
    parents: Parents
    spouse: Person | None
    children: list[Person]
    siblings: list[Person]
    grandparents: Grandparents
    in_laws: InLaws
    paternal: UnclesAndAunts
    maternal: UnclesAndAunts


def find_by_id(person_id: str | None, people: list[Person]) -> Person | None:
    if not person_id:
        return None
    for person in people:
        if person.id == person_id:
            return person
    return None


def find_by_name(full_name: str | None, people: list[Person]) -> Person | None:
    """Approved person whose name + surname matches, ignoring case and spacing."""
    if not full_name:
        return None
    wanted = "".join(full_name.split()).lower()
    for person in people:
        if person.status is not Status.APPROVED:
            continue
        if f"{person.name}{person.surname}".replace(" ", "").lower() == wanted:
            return person
    return None


def find_children(parent: Person | None, people: list[Person]) -> list[Person]:
    if parent is None:
        return []
    return [p for p in people if parent.id in (p.father_id, p.mother_id)]


def find_siblings(person: Person | None, people: list[Person]) -> list[Person]:
    """Everyone else sharing a father or a mother, half-siblings included."""
    if person is None or not (person.father_id or person.mother_id):
        return []
    return [
        p for p in people
        if p.id != person.id and (
            (person.father_id and p.father_id == person.father_id)
            or (person.mother_id and p.mother_id == person.mother_id)
        )
    ]


def find_parents(person: Person | None, people: list[Person]) -> Parents:
    if person is None:
        return Parents()
    return Parents(
        father=find_by_id(person.father_id, people),
        mother=find_by_id(person.mother_id, people),
    )


def find_grandparents(person: Person | None, people: list[Person]) -> Grandparents:
    parents = find_parents(person, people)
    paternal = find_parents(parents.father, people)
    maternal = find_parents(parents.mother, people)
    return Grandparents(
        paternal_grandfather=paternal.father,
        paternal_grandmother=paternal.mother,
        maternal_grandfather=maternal.father,
        maternal_grandmother=maternal.mother,
    )


def find_spouse(person: Person | None, people: list[Person]) -> Person | None:
    if person is None:
        return None
    return find_by_id(person.spouse_id, people)


def find_in_laws(person: Person | None, people: list[Person]) -> InLaws:
    spouse_parents = find_parents(find_spouse(person, people), people)
    return InLaws(father_in_law=spouse_parents.father, mother_in_law=spouse_parents.mother)


def _uncles_and_aunts(person: Person, grandfather: Person | None,
                      grandmother: Person | None, people: list[Person]) -> UnclesAndAunts:
    # Children of either grandparent, minus the person and their own parents.
    excluded = {person.id, person.father_id, person.mother_id}
    child_ids = {
        child.id
        for grandparent in (grandfather, grandmother)
        for child in find_children(grandparent, people)
    }
    pool = [p for p in people if p.id in child_ids and p.id not in excluded]
    return UnclesAndAunts(
        uncles=[p for p in pool if p.gender is Gender.MALE],
        aunts=[p for p in pool if p.gender is Gender.FEMALE],
    )


def find_paternal_uncles_and_aunts(person: Person | None, people: list[Person]) -> UnclesAndAunts:
    if person is None:
        return UnclesAndAunts()
    grandparents = find_grandparents(person, people)
    return _uncles_and_aunts(person, grandparents.paternal_grandfather,
                             grandparents.paternal_grandmother, people)


def find_maternal_uncles_and_aunts(person: Person | None, people: list[Person]) -> UnclesAndAunts:
    if person is None:
        return UnclesAndAunts()
    grandparents = find_grandparents(person, people)
    return _uncles_and_aunts(person, grandparents.maternal_grandfather,
                             grandparents.maternal_grandmother, people)


def family_view(person: Person, people: list[Person]) -> FamilyView:
    return FamilyView(
        person=person,
        parents=find_parents(person, people),
        spouse=find_spouse(person, people),
        children=find_children(person, people),
        siblings=find_siblings(person, people),
        grandparents=find_grandparents(person, people),
        in_laws=find_in_laws(person, people),
        paternal=find_paternal_uncles_and_aunts(person, people),
        maternal=find_maternal_uncles_and_aunts(person, people),
    )


def relative_candidates(person: Person | None, slot: Slot, people: list[Person]) -> list[Person]:
    """Approved people who could fill `slot` for `person`.

    Fathers are male, mothers female; spouses are not yet linked to anyone and of
    the opposite gender.
    """
    if person is None:
        return []
    pool = [p for p in people if p.id != person.id and p.status is Status.APPROVED]
    if slot is Slot.FATHER:
        return [p for p in pool if p.gender is Gender.MALE]
    if slot is Slot.MOTHER:
        return [p for p in pool if p.gender is Gender.FEMALE]
    return [p for p in pool if not p.spouse_id and p.gender is not person.gender]


def has_unlinked_spouse(person: Person) -> bool:
    """Married, but with no spouse record linked."""
    return person.marital_status is MaritalStatus.MARRIED and not person.spouse_id


def is_unlinked(person: Person) -> bool:
    """Still needs linking: a parent without a record, or a married person without one."""
    return not person.father_id or not person.mother_id or has_unlinked_spouse(person)

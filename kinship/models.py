import enum
from dataclasses import dataclass, fields, replace


class Gender(str, enum.Enum):
    MALE = "male"
    FEMALE = "female"


class MaritalStatus(str, enum.Enum):
    SINGLE = "single"
    MARRIED = "married"


class Status(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DELETED = "deleted"


class Slot(str, enum.Enum):
    """The three relation slots a person record carries."""
    FATHER = "father"
    MOTHER = "mother"
    SPOUSE = "spouse"


@dataclass(frozen=True)
class Linked:
    """Relation slot pointing at another person record.

    `label` caches the relative's display name for listings; the id is authoritative.
    """
    id: str
    label: str = ""


@dataclass(frozen=True)
class Unlinked:
    """Relation slot naming a relative who has no record yet."""
    name: str


RelationSlot = Linked | Unlinked | None


@dataclass
class Person:
    id: str
    name: str
    surname: str
    gender: Gender
    maiden_name: str = ""
    family: str = ""
    marital_status: MaritalStatus = MaritalStatus.SINGLE
    father: RelationSlot = None
    mother: RelationSlot = None
    spouse: RelationSlot = None
    birth_month: str = ""
    birth_year: str = ""
    profile_picture_url: str = ""
    description: str = ""
    status: Status = Status.PENDING
    deleted_at: str | None = None
    is_deceased: bool = False
    death_date: str | None = None

    @property
    def display_name(self) -> str:
        return f"{self.name} {self.surname}".strip()

    @property
    def father_id(self) -> str | None:
        return linked_id(self.father)

    @property
    def mother_id(self) -> str | None:
        return linked_id(self.mother)

    @property
    def spouse_id(self) -> str | None:
        return linked_id(self.spouse)

    def slot(self, slot: Slot) -> RelationSlot:
        return getattr(self, slot.value)

    def with_changes(self, **changes) -> "Person":
        return replace(self, **changes)


# Fields a patch may touch. id, status and deleted_at move only through lifecycle operations.
LIFECYCLE_FIELDS = frozenset({"id", "status", "deleted_at"})
EDITABLE_FIELDS = frozenset(f.name for f in fields(Person)) - LIFECYCLE_FIELDS


def linked_id(slot: RelationSlot) -> str | None:
    return slot.id if isinstance(slot, Linked) else None


def slot_to_columns(slot: RelationSlot) -> tuple[str | None, str | None]:
    """Encode a relation slot as its (<rel>_id, <rel>_name) column pair."""
    if isinstance(slot, Linked):
        return slot.id, slot.label or None
    if isinstance(slot, Unlinked):
        return None, slot.name
    return None, None


def slot_from_columns(rel_id: str | None, rel_name: str | None) -> RelationSlot:
    if rel_id:
        return Linked(rel_id, rel_name or "")
    if rel_name:
        return Unlinked(rel_name)
    return None

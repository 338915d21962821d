from pydantic import BaseModel, Field, field_validator
from typing import Annotated, Literal, Optional, Union

from .models import Linked, Person, Unlinked
from .relations import FamilyView


class LinkedSlot(BaseModel):
    kind: Literal["linked"]
    id: str
    label: str = ""


class UnlinkedSlot(BaseModel):
    kind: Literal["unlinked"]
    name: str


SlotIn = Annotated[Union[LinkedSlot, UnlinkedSlot], Field(discriminator="kind")]

_SLOTS = ("father", "mother", "spouse")


def slot_from_schema(slot):
    if isinstance(slot, LinkedSlot):
        return Linked(slot.id, slot.label)
    if isinstance(slot, UnlinkedSlot):
        return Unlinked(slot.name)
    return None


def slot_to_schema(slot):
    if isinstance(slot, Linked):
        return LinkedSlot(kind="linked", id=slot.id, label=slot.label)
    if isinstance(slot, Unlinked):
        return UnlinkedSlot(kind="unlinked", name=slot.name)
    return None


def _uppercase_letters(v):
    if v is None:
        return v
    v = v.strip()
    if v and not (v.isalpha() and v.isupper()):
        raise ValueError("must contain uppercase letters only")
    return v


class _PersonFields(BaseModel):
    family: str = ""
    gender: Literal["male", "female"]
    marital_status: Optional[Literal["single", "married"]] = None
    father: Optional[SlotIn] = None
    mother: Optional[SlotIn] = None
    spouse: Optional[SlotIn] = None
    birth_month: str = ""
    birth_year: str = ""
    profile_picture_url: str = ""
    description: str = ""
    is_deceased: bool = False
    death_date: Optional[str] = None

    def to_fields(self) -> dict:
        fields = self.model_dump(exclude=set(_SLOTS))
        for slot in _SLOTS:
            fields[slot] = slot_from_schema(getattr(self, slot))
        return fields


class PersonCreate(_PersonFields):
    name: str = Field(min_length=1)
    surname: str = Field(min_length=1)
    maiden_name: str = Field(min_length=1)

    @field_validator("name", "surname", "maiden_name")
    @classmethod
    def validate_names(cls, v):
        v = _uppercase_letters(v)
        if not v:
            raise ValueError("must not be blank")
        return v


class PersonImport(_PersonFields):
    """Spreadsheet row: names are upper-cased rather than rejected."""
    name: str = Field(min_length=1)
    surname: str = Field(min_length=1)
    maiden_name: str = ""

    @field_validator("name", "surname", "maiden_name", mode="before")
    @classmethod
    def normalise_names(cls, v):
        return v.strip().upper() if isinstance(v, str) else v


class PersonUpdate(BaseModel):
    name: Optional[str] = None
    surname: Optional[str] = None
    maiden_name: Optional[str] = None
    family: Optional[str] = None
    gender: Optional[Literal["male", "female"]] = None
    marital_status: Optional[Literal["single", "married"]] = None
    father: Optional[SlotIn] = None
    mother: Optional[SlotIn] = None
    spouse: Optional[SlotIn] = None
    birth_month: Optional[str] = None
    birth_year: Optional[str] = None
    profile_picture_url: Optional[str] = None
    description: Optional[str] = None
    is_deceased: Optional[bool] = None
    death_date: Optional[str] = None

    @field_validator("name", "surname", "maiden_name")
    @classmethod
    def validate_names(cls, v):
        v = _uppercase_letters(v)
        if v is not None and not v:
            raise ValueError("must not be blank")
        return v

    def to_patch(self) -> dict:
        """Only the fields the client sent. An explicit null slot clears it."""
        patch = self.model_dump(exclude_unset=True, exclude=set(_SLOTS))
        for slot in _SLOTS:
            if slot in self.model_fields_set:
                patch[slot] = slot_from_schema(getattr(self, slot))
        return patch


class PersonOut(BaseModel):
    id: str
    display_name: str
    name: str
    surname: str
    maiden_name: str
    family: str
    gender: str
    marital_status: str
    father: Optional[SlotIn] = None
    mother: Optional[SlotIn] = None
    spouse: Optional[SlotIn] = None
    birth_month: str = ""
    birth_year: str = ""
    profile_picture_url: str = ""
    description: str = ""
    status: str
    deleted_at: Optional[str] = None
    is_deceased: bool = False
    death_date: Optional[str] = None

    @classmethod
    def from_person(cls, p: Person, **extra):
        return cls(
            id=p.id, display_name=p.display_name, name=p.name, surname=p.surname,
            maiden_name=p.maiden_name, family=p.family, gender=p.gender.value,
            marital_status=p.marital_status.value,
            father=slot_to_schema(p.father), mother=slot_to_schema(p.mother),
            spouse=slot_to_schema(p.spouse),
            birth_month=p.birth_month, birth_year=p.birth_year,
            profile_picture_url=p.profile_picture_url, description=p.description,
            status=p.status.value, deleted_at=p.deleted_at,
            is_deceased=p.is_deceased, death_date=p.death_date,
            **extra,
        )


class DustbinEntryOut(PersonOut):
    days_remaining: int


def _out(p):
    return PersonOut.from_person(p) if p is not None else None


def _out_list(people):
    return [PersonOut.from_person(p) for p in people]


class FamilyViewOut(BaseModel):
    person: PersonOut
    father: Optional[PersonOut] = None
    mother: Optional[PersonOut] = None
    spouse: Optional[PersonOut] = None
    children: list[PersonOut] = []
    siblings: list[PersonOut] = []
    paternal_grandfather: Optional[PersonOut] = None
    paternal_grandmother: Optional[PersonOut] = None
    maternal_grandfather: Optional[PersonOut] = None
    maternal_grandmother: Optional[PersonOut] = None
    father_in_law: Optional[PersonOut] = None
    mother_in_law: Optional[PersonOut] = None
    paternal_uncles: list[PersonOut] = []
    paternal_aunts: list[PersonOut] = []
    maternal_uncles: list[PersonOut] = []
    maternal_aunts: list[PersonOut] = []

    @classmethod
    def from_view(cls, view: FamilyView):
        g = view.grandparents
        return cls(
            person=PersonOut.from_person(view.person),
            father=_out(view.parents.father), mother=_out(view.parents.mother),
            spouse=_out(view.spouse),
            children=_out_list(view.children), siblings=_out_list(view.siblings),
            paternal_grandfather=_out(g.paternal_grandfather),
            paternal_grandmother=_out(g.paternal_grandmother),
            maternal_grandfather=_out(g.maternal_grandfather),
            maternal_grandmother=_out(g.maternal_grandmother),
            father_in_law=_out(view.in_laws.father_in_law),
            mother_in_law=_out(view.in_laws.mother_in_law),
            paternal_uncles=_out_list(view.paternal.uncles),
            paternal_aunts=_out_list(view.paternal.aunts),
            maternal_uncles=_out_list(view.maternal.uncles),
            maternal_aunts=_out_list(view.maternal.aunts),
        )


class BulkDeceasedIn(BaseModel):
    ids: list[str] = Field(min_length=1)
    is_deceased: bool


class ImportIn(BaseModel):
    records: list[PersonImport] = Field(min_length=1)


class ImportOut(BaseModel):
    count: int
    message: str

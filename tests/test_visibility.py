"""Tests for kinship/visibility.py — which records an admin scope may see."""
from kinship.models import Gender, Person, Status
from kinship.visibility import FULL_ACCESS, ActorScope, is_public, is_visible, visible_to


def _person(surname="PATEL", maiden_name="", family="KHEDA", status=Status.APPROVED):
    return Person(id="x", name="ASHA", surname=surname, maiden_name=maiden_name,
                  family=family, gender=Gender.FEMALE, status=status)


SPECIFIC = ActorScope(access="specific", surnames=("PATEL",), families={"PATEL": ("KHEDA",)})


class TestIsVisible:
    def test_full_access(self):
        assert is_visible(_person(surname="SHAH", family=""), FULL_ACCESS)

    def test_editor_with_all_access(self):
        assert is_visible(_person(surname="SHAH"), ActorScope(role="editor", access="all"))

    def test_super_admin_ignores_specific(self):
        scope = ActorScope(role="super-admin", access="specific")
        assert is_visible(_person(surname="SHAH"), scope)

    def test_granted_surname_and_family(self):
        assert is_visible(_person(), SPECIFIC)

    def test_other_family(self):
        assert not is_visible(_person(family="ANAND"), SPECIFIC)

    def test_other_surname(self):
        assert not is_visible(_person(surname="SHAH"), SPECIFIC)

    def test_maiden_name_grants(self):
        assert is_visible(_person(surname="SHAH", maiden_name="PATEL"), SPECIFIC)

    def test_no_family_recorded(self):
        assert not is_visible(_person(family=""), SPECIFIC)

    def test_surname_without_families(self):
        scope = ActorScope(access="specific", surnames=("PATEL",))
        assert not is_visible(_person(), scope)


def test_visible_to_predicate():
    predicate = visible_to(SPECIFIC)
    assert predicate(_person())
    assert not predicate(_person(family="ANAND"))


def test_is_public():
    assert is_public(_person())
    assert not is_public(_person(status=Status.PENDING))
    assert not is_public(_person(status=Status.DELETED))

"""
tests/test_badge_case_service.py — Badge Case Curation
========================================================
"""

from __future__ import annotations

import pytest
from conftest import make_template, make_user

from viaguild.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from viaguild.services import badge_case_service as cases
from viaguild.services import instance_service
from viaguild.services.award_service import give_badge


@pytest.fixture
def bob_badges(db_engine):
    """bob holds three badges from alice; returns (bob_id, [ids])."""
    alice = make_user(db_engine, "alice")
    bob = make_user(db_engine, "bob")
    template_id = make_template(db_engine, alice)
    ids = [give_badge(db_engine, alice, template_id, "bob").id for _ in range(3)]
    return bob, ids


def _order(case) -> list[str]:
    return [i.badge_instance_id for i in sorted(case.items, key=lambda i: i.display_order)]


class TestCaseLifecycle:
    def test_created_lazily(self, db_engine):
        make_user(db_engine, "bob")
        case = cases.get_or_create_case(db_engine, "bob")
        assert case.title == "bob's Badge Case"
        assert case.is_public is True
        assert case.items == []
        assert cases.get_or_create_case(db_engine, "Bob").id == case.id

    def test_unknown_user(self, db_engine):
        with pytest.raises(NotFoundError):
            cases.get_or_create_case(db_engine, "ghost")

    def test_private_case_hidden_from_public(self, db_engine):
        bob = make_user(db_engine, "bob")
        cases.set_visibility(db_engine, "bob", False, bob)
        with pytest.raises(ForbiddenError, match="private"):
            cases.get_public_case(db_engine, "bob")
        assert cases.get_or_create_case(db_engine, "bob").is_public is False

    def test_visibility_toggle(self, db_engine):
        bob = make_user(db_engine, "bob")
        cases.set_visibility(db_engine, "bob", False, bob)
        case = cases.set_visibility(db_engine, "bob", True, bob)
        assert case.is_public is True
        assert cases.get_public_case(db_engine, "bob").id == case.id

    def test_visibility_owner_only(self, db_engine):
        make_user(db_engine, "bob")
        mallory = make_user(db_engine, "mallory")
        with pytest.raises(ForbiddenError):
            cases.set_visibility(db_engine, "bob", False, mallory)


class TestAddRemove:
    def test_add_appends(self, db_engine, bob_badges):
        bob, ids = bob_badges
        cases.add_to_case(db_engine, "bob", ids[0], bob)
        case = cases.add_to_case(db_engine, "bob", ids[1], bob)
        assert _order(case) == ids[:2]
        assert [i.display_order for i in case.items] == [1, 2]
        assert instance_service.get_instance(db_engine, ids[0]).api_visible is True

    def test_add_same_badge_twice_conflicts(self, db_engine, bob_badges):
        bob, ids = bob_badges
        cases.add_to_case(db_engine, "bob", ids[0], bob)
        with pytest.raises(ConflictError, match="already in the case"):
            cases.add_to_case(db_engine, "bob", ids[0], bob)
        assert len(cases.get_or_create_case(db_engine, "bob").items) == 1

    def test_add_someone_elses_badge(self, db_engine, bob_badges):
        _, ids = bob_badges
        carol = make_user(db_engine, "carol")
        with pytest.raises(NotFoundError, match="not owned"):
            cases.add_to_case(db_engine, "carol", ids[0], carol)

    def test_add_revoked_badge(self, db_engine, bob_badges):
        bob, ids = bob_badges
        instance_service.revoke(db_engine, ids[0], bob)
        with pytest.raises(NotFoundError):
            cases.add_to_case(db_engine, "bob", ids[0], bob)

    def test_add_to_other_users_case_forbidden(self, db_engine, bob_badges):
        _, ids = bob_badges
        mallory = make_user(db_engine, "mallory")
        with pytest.raises(ForbiddenError):
            cases.add_to_case(db_engine, "bob", ids[0], mallory)

    def test_remove(self, db_engine, bob_badges):
        bob, ids = bob_badges
        cases.add_to_case(db_engine, "bob", ids[0], bob)
        cases.add_to_case(db_engine, "bob", ids[1], bob)
        case = cases.remove_from_case(db_engine, "bob", ids[0], bob)
        assert _order(case) == [ids[1]]
        assert instance_service.get_instance(db_engine, ids[0]).api_visible is False

    def test_remove_missing_item(self, db_engine, bob_badges):
        bob, ids = bob_badges
        cases.get_or_create_case(db_engine, "bob")
        with pytest.raises(NotFoundError, match="Badge not found in case"):
            cases.remove_from_case(db_engine, "bob", ids[0], bob)

    def test_remove_without_case(self, db_engine, bob_badges):
        bob, ids = bob_badges
        with pytest.raises(NotFoundError, match="Badge case not found"):
            cases.remove_from_case(db_engine, "bob", ids[0], bob)


class TestReorder:
    def test_swap(self, db_engine, bob_badges):
        bob, ids = bob_badges
        a, b = ids[0], ids[1]
        cases.add_to_case(db_engine, "bob", a, bob)
        cases.add_to_case(db_engine, "bob", b, bob)

        cases.reorder(db_engine, "bob", [
            {"badge_instance_id": a, "display_order": 2},
            {"badge_instance_id": b, "display_order": 1},
        ], bob)

        assert _order(cases.get_or_create_case(db_engine, "bob")) == [b, a]

    def test_unmentioned_items_keep_order(self, db_engine, bob_badges):
        bob, ids = bob_badges
        for instance_id in ids:
            cases.add_to_case(db_engine, "bob", instance_id, bob)
        case = cases.reorder(db_engine, "bob", [
            {"badge_instance_id": ids[2], "display_order": 0},
        ], bob)
        assert _order(case) == [ids[2], ids[0], ids[1]]

    def test_duplicate_resulting_order_rejected(self, db_engine, bob_badges):
        bob, ids = bob_badges
        cases.add_to_case(db_engine, "bob", ids[0], bob)
        cases.add_to_case(db_engine, "bob", ids[1], bob)
        with pytest.raises(ValidationError):
            cases.reorder(db_engine, "bob", [
                {"badge_instance_id": ids[0], "display_order": 2},
            ], bob)
        assert _order(cases.get_or_create_case(db_engine, "bob")) == ids[:2]

    def test_item_not_in_case(self, db_engine, bob_badges):
        bob, ids = bob_badges
        cases.add_to_case(db_engine, "bob", ids[0], bob)
        with pytest.raises(NotFoundError):
            cases.reorder(db_engine, "bob", [
                {"badge_instance_id": ids[1], "display_order": 5},
            ], bob)

    @pytest.mark.parametrize("entries", [
        {"badge_instance_id": "x", "display_order": 1},
        [{"badge_instance_id": "x"}],
        [{"badge_instance_id": "x", "display_order": "1"}],
        [{"badge_instance_id": "x", "display_order": 1},
         {"badge_instance_id": "x", "display_order": 2}],
        ["x"],
    ])
    def test_malformed_entries(self, db_engine, bob_badges, entries):
        bob, _ = bob_badges
        with pytest.raises(ValidationError):
            cases.reorder(db_engine, "bob", entries, bob)

    def test_owner_only(self, db_engine, bob_badges):
        _, ids = bob_badges
        mallory = make_user(db_engine, "mallory")
        with pytest.raises(ForbiddenError):
            cases.reorder(db_engine, "bob", [], mallory)


class TestSerializeCase:
    def test_shape(self, db_engine, bob_badges):
        bob, ids = bob_badges
        cases.add_to_case(db_engine, "bob", ids[1], bob)
        case = cases.add_to_case(db_engine, "bob", ids[0], bob)
        data = cases.serialize_case(db_engine, case)
        assert data["user_id"] == bob
        assert data["is_public"] is True
        assert [b["id"] for b in data["badges"]] == [ids[1], ids[0]]
        first = data["badges"][0]
        assert first["display_order"] == 1
        assert first["is_in_case"] is True
        assert first["giver"]["username"] == "alice"
        assert first["display_props"]["name"] == "Helper"
        assert first["added_at"] is not None

"""
tests/test_award_service.py — Allocations and Awards
======================================================
Tier scarcity, override handling, notification side effect and bulk
awards.
"""

from __future__ import annotations

from types import SimpleNamespace

import pytest
from conftest import make_template, make_user
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from viaguild.database.models import BadgeInstance, Notification, UserBadgeAllocation
from viaguild.engine.display import resolve_display_props
from viaguild.errors import (
    ErrorKind,
    ForbiddenError,
    InsufficientAllocationError,
    NotFoundError,
    ValidationError,
)
from viaguild.services import award_service
from viaguild.services.notification_service import list_notifications


def _instance_count(engine) -> int:
    with Session(engine) as session:
        return session.scalar(select(func.count()).select_from(BadgeInstance))


def _remaining(engine, user_id: str, tier: str) -> int:
    with Session(engine) as session:
        return session.get(UserBadgeAllocation, (user_id, tier)).remaining


# ===========================================================================
# Allocations
# ===========================================================================
class TestAllocations:
    def test_created_lazily_with_defaults(self, db_engine):
        alice = make_user(db_engine, "alice")
        allocations = award_service.get_allocations(db_engine, alice)
        assert [(a.tier, a.remaining) for a in allocations] == [
            ("GOLD", 5), ("SILVER", 10), ("BRONZE", 20),
        ]

    def test_configured_defaults(self, db_engine):
        alice = make_user(db_engine, "alice")
        allocations = award_service.get_allocations(
            db_engine, alice, {"GOLD": 1, "SILVER": 2, "BRONZE": 3},
        )
        assert [a.remaining for a in allocations] == [1, 2, 3]

    def test_second_read_does_not_reset(self, db_engine):
        alice = make_user(db_engine, "alice")
        award_service.get_allocations(db_engine, alice)
        award_service.set_allocation(db_engine, alice, "GOLD", 1)
        allocations = award_service.get_allocations(db_engine, alice)
        assert allocations[0].remaining == 1

    def test_set_allocation_validates(self, db_engine):
        alice = make_user(db_engine, "alice")
        with pytest.raises(ValidationError):
            award_service.set_allocation(db_engine, alice, "PLATINUM", 1)
        with pytest.raises(ValidationError):
            award_service.set_allocation(db_engine, alice, "GOLD", -1)

    def test_allocation_to_dict(self, db_engine):
        alice = make_user(db_engine, "alice")
        data = award_service.allocation_to_dict(award_service.get_allocations(db_engine, alice)[0])
        assert data["tier"] == "GOLD"
        assert data["remaining"] == 5
        assert data["last_replenished_at"] is not None


# ===========================================================================
# give_badge
# ===========================================================================
class TestGiveBadge:
    def test_untiered_award(self, db_engine):
        alice = make_user(db_engine, "alice")
        bob = make_user(db_engine, "bob")
        template_id = make_template(db_engine, alice)

        instance = award_service.give_badge(
            db_engine, alice, template_id, "Bob", {"message": "Thanks!"},
        )

        assert instance.receiver_id == bob
        assert instance.giver_id == alice
        assert instance.award_status == "ACCEPTED"
        assert instance.message == "Thanks!"
        assert instance.revoked_at is None
        assert instance.template.template_slug == "helper"

    def test_untiered_award_does_not_touch_allocations(self, db_engine):
        alice = make_user(db_engine, "alice")
        make_user(db_engine, "bob")
        template_id = make_template(db_engine, alice)
        award_service.give_badge(db_engine, alice, template_id, "bob")
        with Session(db_engine) as session:
            assert session.scalar(select(func.count()).select_from(UserBadgeAllocation)) == 0

    def test_tiered_award_decrements(self, db_engine):
        alice = make_user(db_engine, "alice")
        make_user(db_engine, "bob")
        template_id = make_template(db_engine, alice, inherent_tier="SILVER")
        award_service.give_badge(db_engine, alice, template_id, "bob")
        assert _remaining(db_engine, alice, "SILVER") == 9
        assert _remaining(db_engine, alice, "GOLD") == 5

    def test_zero_allocation_creates_nothing(self, db_engine):
        alice = make_user(db_engine, "alice")
        make_user(db_engine, "bob")
        template_id = make_template(db_engine, alice, inherent_tier="GOLD")
        award_service.set_allocation(db_engine, alice, "GOLD", 0)

        with pytest.raises(InsufficientAllocationError) as exc_info:
            award_service.give_badge(db_engine, alice, template_id, "bob")

        assert exc_info.value.kind == ErrorKind.INSUFFICIENT_ALLOCATION
        assert _instance_count(db_engine) == 0
        assert _remaining(db_engine, alice, "GOLD") == 0

    def test_lost_race_rolls_back_instance_and_notification(self, db_engine, monkeypatch):
        alice = make_user(db_engine, "alice")
        make_user(db_engine, "bob")
        template_id = make_template(db_engine, alice, inherent_tier="GOLD")
        award_service.set_allocation(db_engine, alice, "GOLD", 0)
        # Pre-check sees a row another request has since spent
        stale = {"GOLD": SimpleNamespace(tier="GOLD", remaining=1)}
        monkeypatch.setattr(
            award_service, "_ensure_allocations", lambda session, user_id, defaults=None: stale,
        )

        with pytest.raises(InsufficientAllocationError):
            award_service.give_badge(db_engine, alice, template_id, "bob")

        assert _instance_count(db_engine) == 0
        assert _remaining(db_engine, alice, "GOLD") == 0
        with Session(db_engine) as session:
            assert session.scalar(select(func.count()).select_from(Notification)) == 0

    def test_allocation_runs_out(self, db_engine):
        alice = make_user(db_engine, "alice")
        make_user(db_engine, "bob")
        template_id = make_template(db_engine, alice, inherent_tier="GOLD")
        defaults = {"GOLD": 2, "SILVER": 0, "BRONZE": 0}
        award_service.give_badge(db_engine, alice, template_id, "bob", defaults=defaults)
        award_service.give_badge(db_engine, alice, template_id, "bob", defaults=defaults)
        with pytest.raises(InsufficientAllocationError):
            award_service.give_badge(db_engine, alice, template_id, "bob", defaults=defaults)
        assert _instance_count(db_engine) == 2
        assert _remaining(db_engine, alice, "GOLD") == 0

    def test_gold_tier_wins_over_black_override(self, db_engine):
        alice = make_user(db_engine, "alice")
        make_user(db_engine, "bob")
        template_id = make_template(db_engine, alice, inherent_tier="GOLD")
        instance = award_service.give_badge(
            db_engine, alice, template_id, "bob",
            {"override_border_config": {"type": "simple-color", "color": "#000000"}},
        )
        assert instance.override_border_color == "#000000"
        assert resolve_display_props(instance).border_color == "#FFD700"

    def test_overrides_and_measure(self, db_engine):
        alice = make_user(db_engine, "alice")
        make_user(db_engine, "bob")
        template_id = make_template(db_engine, alice, defines_measure=True, measure_label="Score")
        instance = award_service.give_badge(
            db_engine, alice, template_id, "bob",
            {"override_badge_name": "Top Helper", "measure_value": 42.0,
             "override_background_type": "SOLID_COLOR",
             "override_background_value": "#ABCDEF",
             "giver_id": "spoofed"},
        )
        assert instance.giver_id == alice
        assert instance.measure_value == 42.0
        assert instance.override_background_config == {
            "type": "simple-color", "version": 1, "color": "#ABCDEF",
        }
        props = resolve_display_props(instance)
        assert props.name == "Top Helper"
        assert props.background_color == "#ABCDEF"

    def test_metadata_values(self, db_engine):
        alice = make_user(db_engine, "alice")
        make_user(db_engine, "bob")
        template_id = make_template(
            db_engine, alice,
            metadata_fields=[{"field_key": "event", "label": "Event"},
                             {"field_key": "year", "label": "Year"}],
        )
        instance = award_service.give_badge(
            db_engine, alice, template_id, "bob",
            {"metadata_values": {"event": "Hackathon", "year": 2026}},
        )
        values = {mv.data_key: mv.data_value for mv in instance.metadata_values}
        assert values == {"event": "Hackathon", "year": "2026"}

    def test_unknown_metadata_key_rejected(self, db_engine):
        alice = make_user(db_engine, "alice")
        make_user(db_engine, "bob")
        template_id = make_template(db_engine, alice)
        with pytest.raises(ValidationError):
            award_service.give_badge(
                db_engine, alice, template_id, "bob",
                {"metadata_values": [{"data_key": "nope", "data_value": "x"}]},
            )
        assert _instance_count(db_engine) == 0

    def test_invalid_override_config_rejected(self, db_engine):
        alice = make_user(db_engine, "alice")
        make_user(db_engine, "bob")
        template_id = make_template(db_engine, alice)
        with pytest.raises(ValidationError):
            award_service.give_badge(
                db_engine, alice, template_id, "bob",
                {"override_border_config": {"type": "rainbow", "version": 1}},
            )

    def test_missing_template(self, db_engine):
        alice = make_user(db_engine, "alice")
        make_user(db_engine, "bob")
        with pytest.raises(NotFoundError, match="Badge template not found"):
            award_service.give_badge(db_engine, alice, "nope", "bob")

    def test_missing_recipient(self, db_engine):
        alice = make_user(db_engine, "alice")
        template_id = make_template(db_engine, alice)
        with pytest.raises(NotFoundError, match="Recipient user not found"):
            award_service.give_badge(db_engine, alice, template_id, "ghost")

    def test_non_owner_cannot_award(self, db_engine):
        alice = make_user(db_engine, "alice")
        bob = make_user(db_engine, "bob")
        template_id = make_template(db_engine, alice)
        with pytest.raises(ForbiddenError):
            award_service.give_badge(db_engine, bob, template_id, "alice")

    def test_notification_created(self, db_engine):
        alice = make_user(db_engine, "alice")
        bob = make_user(db_engine, "bob")
        template_id = make_template(db_engine, alice)
        instance = award_service.give_badge(db_engine, alice, template_id, "bob")

        notifications = list_notifications(db_engine, bob)
        assert len(notifications) == 1
        note = notifications[0]
        assert note.type == "BADGE_RECEIVED"
        assert note.title == "You received a badge!"
        assert note.content == 'alice gave you the "Helper" badge'
        assert note.link_url == "/users/bob/badges"
        assert note.source_id == instance.id
        assert note.source_type == "BADGE_INSTANCE"
        assert note.actor_id == alice

    def test_failed_award_leaves_no_notification(self, db_engine):
        alice = make_user(db_engine, "alice")
        bob = make_user(db_engine, "bob")
        template_id = make_template(db_engine, alice, inherent_tier="BRONZE")
        award_service.set_allocation(db_engine, alice, "BRONZE", 0)
        with pytest.raises(InsufficientAllocationError):
            award_service.give_badge(db_engine, alice, template_id, "bob")
        assert list_notifications(db_engine, bob) == []


# ===========================================================================
# give_badges_bulk
# ===========================================================================
class TestGiveBadgesBulk:
    def test_partial_success(self, db_engine):
        alice = make_user(db_engine, "alice")
        make_user(db_engine, "r1")
        make_user(db_engine, "r3")
        template_id = make_template(db_engine, alice)

        result = award_service.give_badges_bulk(
            db_engine, alice, template_id, ["r1", "r2", "r3"],
        )

        assert len(result.successful) == 2
        assert result.failed == [{"username": "r2", "error": "Recipient user not found"}]
        assert _instance_count(db_engine) == 2

    def test_allocation_exhausted_mid_batch(self, db_engine):
        alice = make_user(db_engine, "alice")
        for name in ("r1", "r2", "r3"):
            make_user(db_engine, name)
        template_id = make_template(db_engine, alice, inherent_tier="GOLD")
        award_service.get_allocations(db_engine, alice)
        award_service.set_allocation(db_engine, alice, "GOLD", 2)

        result = award_service.give_badges_bulk(
            db_engine, alice, template_id, ["r1", "r2", "r3"],
        )

        assert len(result.successful) == 2
        assert result.failed == [{"username": "r3", "error": "Insufficient allocations"}]

    def test_empty_batch(self, db_engine):
        alice = make_user(db_engine, "alice")
        template_id = make_template(db_engine, alice)
        result = award_service.give_badges_bulk(db_engine, alice, template_id, [])
        assert result.successful == []
        assert result.failed == []

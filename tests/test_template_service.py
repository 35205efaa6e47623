"""
tests/test_template_service.py — Badge Template Store
=======================================================
"""

from __future__ import annotations

import pytest
from conftest import make_template, make_user
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from viaguild.database.models import BadgeInstance, EntityType, UploadedAsset
from viaguild.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from viaguild.services import storage_service, template_service
from viaguild.services.award_service import give_badge


def _payload(**kwargs) -> dict:
    data = {"template_slug": "mvp", "default_badge_name": "MVP"}
    data.update(kwargs)
    return data


class TestCreateTemplate:
    def test_border_color_derived_from_config(self, db_engine):
        alice = make_user(db_engine, "alice")
        template = template_service.create_template(
            db_engine,
            _payload(default_border_config={"type": "simple-color", "color": "#FF5722"}),
            actor_id=alice,
        )
        assert template.default_border_color == "#FF5722"
        assert template.default_border_config == {
            "type": "simple-color", "version": 1, "color": "#FF5722",
        }

    def test_owner_defaults_to_actor(self, db_engine):
        alice = make_user(db_engine, "alice")
        template = template_service.create_template(db_engine, _payload(), actor_id=alice)
        assert template.owner_type == EntityType.USER
        assert template.owner_id == alice
        assert template.authored_by_user_id == alice
        assert template.template_slug_ci == "mvp"
        assert template.is_modifiable_by_issuer is False

    def test_slug_collision_suffixes(self, db_engine):
        alice = make_user(db_engine, "alice")
        first = template_service.create_template(db_engine, _payload(), actor_id=alice)
        second = template_service.create_template(
            db_engine, _payload(template_slug="MVP"), actor_id=alice,
        )
        third = template_service.create_template(db_engine, _payload(), actor_id=alice)
        assert first.template_slug == "mvp"
        assert second.template_slug == "MVP-1"
        assert third.template_slug == "mvp-2"

    def test_same_slug_different_owner_allowed(self, db_engine):
        alice = make_user(db_engine, "alice")
        bob = make_user(db_engine, "bob")
        template_service.create_template(db_engine, _payload(), actor_id=alice)
        other = template_service.create_template(db_engine, _payload(), actor_id=bob)
        assert other.template_slug == "mvp"

    @pytest.mark.parametrize("data", [
        {"template_slug": "", "default_badge_name": "X"},
        {"template_slug": "x", "default_badge_name": "  "},
        {"template_slug": "x", "default_badge_name": "X", "inherent_tier": "PLATINUM"},
        {"template_slug": "x", "default_badge_name": "X", "default_outer_shape": "BLOB"},
        {"template_slug": "x", "default_badge_name": "X",
         "default_background_config": {"type": "simple-color", "color": "white"}},
        {"template_slug": "x", "default_badge_name": "X",
         "metadata_fields": [{"field_key": "a", "label": "A"},
                             {"field_key": "a", "label": "Again"}]},
    ])
    def test_invalid_payloads_rejected(self, db_engine, data):
        alice = make_user(db_engine, "alice")
        with pytest.raises(ValidationError):
            template_service.create_template(db_engine, data, actor_id=alice)

    def test_user_template_for_someone_else_forbidden(self, db_engine):
        alice = make_user(db_engine, "alice")
        bob = make_user(db_engine, "bob")
        with pytest.raises(ForbiddenError):
            template_service.create_template(
                db_engine, _payload(owner_type="USER", owner_id=bob), actor_id=alice,
            )

    def test_guild_template(self, db_engine):
        alice = make_user(db_engine, "alice")
        template = template_service.create_template(
            db_engine, _payload(owner_type="GUILD", owner_id="guild-1"), actor_id=alice,
        )
        assert template.owner_type == "GUILD"
        assert template.owner_id == "guild-1"
        assert template.authored_by_user_id == alice

    def test_metadata_fields_created_in_order(self, db_engine):
        alice = make_user(db_engine, "alice")
        template = template_service.create_template(
            db_engine,
            _payload(metadata_fields=[
                {"field_key": "event", "label": "Event"},
                {"field_key": "year", "label": "Year", "prefix": "'"},
            ]),
            actor_id=alice,
        )
        data = template_service.template_to_dict(template)
        assert [f["field_key"] for f in data["metadata_fields"]] == ["event", "year"]
        assert data["metadata_fields"][1]["display_order"] == 1

    def test_unknown_columns_ignored(self, db_engine):
        alice = make_user(db_engine, "alice")
        template = template_service.create_template(
            db_engine, _payload(id="forced", owner_id=alice, bogus=True), actor_id=alice,
        )
        assert template.id != "forced"


def _temp_asset(engine, upload_dir, user_id, name="abc.png"):
    (upload_dir / "temp").mkdir(exist_ok=True)
    (upload_dir / "temp" / name).write_bytes(b"png")
    return storage_service.register_temp_asset(
        engine, storage_key=f"temp/{name}", original_name=name,
        content_type="image/png", size_bytes=3, uploader_id=user_id, ttl_hours=24,
    )


def _stored_files(upload_dir) -> list[str]:
    return sorted(str(p.relative_to(upload_dir)) for p in upload_dir.rglob("*") if p.is_file())


class TestUploadCommit:
    def test_upload_reference_moved_to_permanent(self, db_engine, upload_dir):
        alice = make_user(db_engine, "alice")
        asset = _temp_asset(db_engine, upload_dir, alice)

        template = template_service.create_template(
            db_engine,
            _payload(default_background_config={
                "type": "hosted-asset", "version": 1,
                "url": storage_service.upload_reference(asset.id),
            }),
            actor_id=alice,
        )

        url = template.default_background_config["url"]
        assert url.startswith(f"/api/uploads/badge-templates/{template.id}/background-")
        assert url.endswith(".png")
        assert template.default_background_type == "HOSTED_IMAGE"
        assert template.default_background_value == url
        assert (upload_dir / url.removeprefix("/api/uploads/")).read_bytes() == b"png"
        assert not (upload_dir / "temp" / "abc.png").exists()

        with Session(db_engine) as session:
            stored = session.get(UploadedAsset, asset.id)
            assert stored.status == "PERMANENT"
            assert stored.expires_at is None

    def test_failed_create_keeps_upload_reusable(self, db_engine, upload_dir):
        alice = make_user(db_engine, "alice")
        asset = _temp_asset(db_engine, upload_dir, alice)
        reference = storage_service.upload_reference(asset.id)
        payload = _payload(
            default_background_type="HOSTED_IMAGE",
            default_background_value=reference,
            default_border_config={"type": "simple-color", "version": 1, "color": "red"},
        )

        with pytest.raises(ValidationError):
            template_service.create_template(db_engine, payload, actor_id=alice)

        assert _stored_files(upload_dir) == ["temp/abc.png"]
        with Session(db_engine) as session:
            stored = session.get(UploadedAsset, asset.id)
            assert stored.status == "TEMP"
            assert stored.storage_key == "temp/abc.png"

        payload["default_border_config"] = {"type": "simple-color", "version": 1,
                                            "color": "#FF0000"}
        template = template_service.create_template(db_engine, payload, actor_id=alice)
        assert template.default_background_value.startswith(
            f"/api/uploads/badge-templates/{template.id}/background-"
        )
        assert _stored_files(upload_dir) == [
            template.default_background_value.removeprefix("/api/uploads/")
        ]

    def test_failed_create_removes_svg_content(self, db_engine, upload_dir):
        alice = make_user(db_engine, "alice")
        with pytest.raises(ValidationError):
            template_service.create_template(
                db_engine,
                _payload(
                    foreground_svg_content="<svg/>",
                    default_foreground_config={"type": "customizable-svg", "version": 1,
                                               "colorMappings": {}},
                    default_border_config={"type": "simple-color", "version": 1,
                                           "color": "red"},
                ),
                actor_id=alice,
            )
        assert _stored_files(upload_dir) == []

    def test_failed_update_keeps_existing_art(self, db_engine, upload_dir):
        alice = make_user(db_engine, "alice")
        first = _temp_asset(db_engine, upload_dir, alice, "first.png")
        template = template_service.create_template(
            db_engine,
            _payload(default_background_type="HOSTED_IMAGE",
                     default_background_value=storage_service.upload_reference(first.id)),
            actor_id=alice,
        )
        original_url = template.default_background_value

        second = _temp_asset(db_engine, upload_dir, alice, "second.png")
        with pytest.raises(ValidationError):
            template_service.update_template(
                db_engine, template.id,
                {"default_background_value": storage_service.upload_reference(second.id),
                 "default_border_config": {"type": "simple-color", "version": 1,
                                           "color": "red"}},
                actor_id=alice,
            )

        assert _stored_files(upload_dir) == sorted([
            original_url.removeprefix("/api/uploads/"), "temp/second.png",
        ])
        assert template_service.get_template(
            db_engine, template.id
        ).default_background_value == original_url

    def test_missing_upload_is_not_found(self, db_engine, upload_dir):
        alice = make_user(db_engine, "alice")
        with pytest.raises(NotFoundError):
            template_service.create_template(
                db_engine,
                _payload(default_background_value="upload://missing",
                         default_background_type="HOSTED_IMAGE"),
                actor_id=alice,
            )

    def test_svg_content_stored_as_foreground(self, db_engine, upload_dir):
        alice = make_user(db_engine, "alice")
        template = template_service.create_template(
            db_engine,
            _payload(
                default_foreground_config={"type": "customizable-svg", "version": 1,
                                           "colorMappings": {"#p": {"fill": {"current": "#F00"}}}},
                foreground_svg_content="<svg/>",
            ),
            actor_id=alice,
        )
        url = template.default_foreground_config["url"]
        assert url.startswith(f"/api/uploads/badge-templates/{template.id}/foreground-")
        assert template.default_foreground_value == url
        assert template.default_foreground_color == "#F00"
        stored = upload_dir / url.removeprefix("/api/uploads/")
        assert stored.read_text() == "<svg/>"


class TestReads:
    def test_get_template(self, db_engine):
        alice = make_user(db_engine, "alice")
        template_id = make_template(db_engine, alice)
        assert template_service.get_template(db_engine, template_id).default_badge_name == "Helper"

    def test_get_missing_template(self, db_engine):
        with pytest.raises(NotFoundError, match="Badge template not found"):
            template_service.get_template(db_engine, "nope")

    def test_user_templates(self, db_engine):
        alice = make_user(db_engine, "Alice")
        bob = make_user(db_engine, "bob")
        make_template(db_engine, alice, template_slug="one")
        make_template(db_engine, alice, template_slug="two")
        make_template(db_engine, bob)
        slugs = {t.template_slug for t in template_service.get_user_templates(db_engine, "alice")}
        assert slugs == {"one", "two"}

    def test_user_templates_unknown_user(self, db_engine):
        with pytest.raises(NotFoundError, match="User not found"):
            template_service.get_user_templates(db_engine, "ghost")


class TestUpdateTemplate:
    def test_patch_fields_and_resync(self, db_engine):
        alice = make_user(db_engine, "alice")
        template_id = make_template(db_engine, alice)
        updated = template_service.update_template(
            db_engine, template_id,
            {"default_badge_name": "Super Helper",
             "default_border_config": {"type": "simple-color", "version": 1, "color": "#00FF00"}},
            actor_id=alice,
        )
        assert updated.default_badge_name == "Super Helper"
        assert updated.default_border_color == "#00FF00"

    def test_legacy_patch_updates_config(self, db_engine):
        alice = make_user(db_engine, "alice")
        template_id = make_template(db_engine, alice)
        updated = template_service.update_template(
            db_engine, template_id,
            {"default_background_type": "SOLID_COLOR", "default_background_value": "#EEEEEE"},
            actor_id=alice,
        )
        assert updated.default_background_config == {
            "type": "simple-color", "version": 1, "color": "#EEEEEE",
        }

    def test_slug_conflict_on_update(self, db_engine):
        alice = make_user(db_engine, "alice")
        make_template(db_engine, alice, template_slug="taken")
        template_id = make_template(db_engine, alice, template_slug="mine")
        with pytest.raises(ConflictError):
            template_service.update_template(
                db_engine, template_id, {"template_slug": "TAKEN"}, actor_id=alice,
            )

    def test_keeping_own_slug_is_fine(self, db_engine):
        alice = make_user(db_engine, "alice")
        template_id = make_template(db_engine, alice, template_slug="mine")
        updated = template_service.update_template(
            db_engine, template_id, {"template_slug": "Mine"}, actor_id=alice,
        )
        assert updated.template_slug == "Mine"
        assert updated.template_slug_ci == "mine"

    def test_other_user_forbidden(self, db_engine):
        alice = make_user(db_engine, "alice")
        bob = make_user(db_engine, "bob")
        template_id = make_template(db_engine, alice)
        with pytest.raises(ForbiddenError):
            template_service.update_template(
                db_engine, template_id, {"default_badge_name": "Mine now"}, actor_id=bob,
            )

    def test_guild_template_author_may_modify(self, db_engine):
        alice = make_user(db_engine, "alice")
        bob = make_user(db_engine, "bob")
        template = template_service.create_template(
            db_engine, _payload(owner_type="GUILD", owner_id="guild-1"), actor_id=alice,
        )
        updated = template_service.update_template(
            db_engine, template.id, {"default_subtitle_text": "Guild"}, actor_id=alice,
        )
        assert updated.default_subtitle_text == "Guild"
        with pytest.raises(ForbiddenError):
            template_service.update_template(
                db_engine, template.id, {"default_subtitle_text": "Nope"}, actor_id=bob,
            )

    def test_issuer_modifiable_forced_off(self, db_engine):
        alice = make_user(db_engine, "alice")
        template_id = make_template(db_engine, alice)
        updated = template_service.update_template(
            db_engine, template_id, {"is_modifiable_by_issuer": True}, actor_id=alice,
        )
        assert updated.is_modifiable_by_issuer is False

    def test_metadata_fields_replaced(self, db_engine):
        alice = make_user(db_engine, "alice")
        template_id = make_template(
            db_engine, alice, metadata_fields=[{"field_key": "old", "label": "Old"}],
        )
        updated = template_service.update_template(
            db_engine, template_id,
            {"metadata_fields": [{"field_key": "new", "label": "New"}]},
            actor_id=alice,
        )
        assert [f.field_key for f in updated.metadata_fields] == ["new"]

    def test_blank_name_rejected(self, db_engine):
        alice = make_user(db_engine, "alice")
        template_id = make_template(db_engine, alice)
        with pytest.raises(ValidationError):
            template_service.update_template(
                db_engine, template_id, {"default_badge_name": ""}, actor_id=alice,
            )


class TestDeleteTemplate:
    def test_delete_unused(self, db_engine):
        alice = make_user(db_engine, "alice")
        template_id = make_template(db_engine, alice)
        template_service.delete_template(db_engine, template_id, actor_id=alice)
        with pytest.raises(NotFoundError):
            template_service.get_template(db_engine, template_id)

    def test_delete_awarded_conflicts(self, db_engine):
        alice = make_user(db_engine, "alice")
        make_user(db_engine, "bob")
        template_id = make_template(db_engine, alice)
        give_badge(db_engine, alice, template_id, "bob")
        with pytest.raises(ConflictError, match="awarded"):
            template_service.delete_template(db_engine, template_id, actor_id=alice)

        with Session(db_engine) as session:
            assert session.scalar(select(func.count()).select_from(BadgeInstance)) == 1

    def test_delete_forbidden_for_non_owner(self, db_engine):
        alice = make_user(db_engine, "alice")
        bob = make_user(db_engine, "bob")
        template_id = make_template(db_engine, alice)
        with pytest.raises(ForbiddenError):
            template_service.delete_template(db_engine, template_id, actor_id=bob)

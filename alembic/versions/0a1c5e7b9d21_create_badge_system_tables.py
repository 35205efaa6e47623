"""Create badge system tables

Revision ID: 0a1c5e7b9d21
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0a1c5e7b9d21"
down_revision = None
branch_labels = None
depends_on = None


def _ts(name: str, **kwargs) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), **kwargs)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("username", sa.String(50), nullable=False),
        sa.Column("username_ci", sa.String(50), nullable=False, unique=True),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("avatar_url", sa.String(500), nullable=True),
        _ts("created_at", server_default=sa.func.now()),
    )

    op.create_table(
        "badge_templates",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("template_slug", sa.String(100), nullable=False),
        sa.Column("template_slug_ci", sa.String(100), nullable=False),
        sa.Column("owner_type", sa.String(10), nullable=False),
        sa.Column("owner_id", sa.String(36), nullable=False),
        sa.Column("authored_by_user_id", sa.String(36),
                  sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("default_badge_name", sa.String(100), nullable=False),
        sa.Column("default_subtitle_text", sa.String(200), nullable=True),
        sa.Column("default_display_description", sa.Text(), nullable=True),
        sa.Column("default_outer_shape", sa.String(20), nullable=False),
        sa.Column("default_text_font", sa.String(100), nullable=True),
        sa.Column("default_text_size", sa.Integer(), nullable=True),
        sa.Column("default_border_config", postgresql.JSONB(), nullable=True),
        sa.Column("default_background_config", postgresql.JSONB(), nullable=True),
        sa.Column("default_foreground_config", postgresql.JSONB(), nullable=True),
        sa.Column("default_border_color", sa.String(20), nullable=True),
        sa.Column("default_background_type", sa.String(20), nullable=True),
        sa.Column("default_background_value", sa.Text(), nullable=True),
        sa.Column("default_foreground_type", sa.String(20), nullable=True),
        sa.Column("default_foreground_value", sa.Text(), nullable=True),
        sa.Column("default_foreground_color", sa.String(20), nullable=True),
        sa.Column("inherent_tier", sa.String(10), nullable=True),
        sa.Column("defines_measure", sa.Boolean(), nullable=True),
        sa.Column("measure_label", sa.String(100), nullable=True),
        sa.Column("measure_best", sa.Float(), nullable=True),
        sa.Column("measure_worst", sa.Float(), nullable=True),
        sa.Column("measure_notes", sa.Text(), nullable=True),
        sa.Column("measure_is_normalizable", sa.Boolean(), nullable=True),
        sa.Column("higher_is_better", sa.Boolean(), nullable=True),
        sa.Column("measure_best_label", sa.String(100), nullable=True),
        sa.Column("measure_worst_label", sa.String(100), nullable=True),
        sa.Column("is_modifiable_by_issuer", sa.Boolean(), nullable=True),
        sa.Column("allows_pushed_instance_updates", sa.Boolean(), nullable=True),
        _ts("created_at", server_default=sa.func.now()),
        _ts("updated_at", server_default=sa.func.now()),
        sa.UniqueConstraint("template_slug_ci", "owner_type", "owner_id",
                            name="uq_badge_templates_owner_slug"),
    )
    op.create_index("ix_badge_templates_owner", "badge_templates", ["owner_type", "owner_id"])

    op.create_table(
        "metadata_field_definitions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("badge_template_id", sa.String(36),
                  sa.ForeignKey("badge_templates.id", ondelete="CASCADE"), nullable=False),
        sa.Column("field_key", sa.String(100), nullable=False),
        sa.Column("label", sa.String(100), nullable=False),
        sa.Column("prefix", sa.String(20), nullable=True),
        sa.Column("suffix", sa.String(20), nullable=True),
        sa.Column("style", sa.String(50), nullable=True),
        sa.Column("display_order", sa.Integer(), nullable=True),
        sa.UniqueConstraint("badge_template_id", "field_key", name="uq_metadata_fields_key"),
    )

    op.create_table(
        "badge_instances",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("template_id", sa.String(36),
                  sa.ForeignKey("badge_templates.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("giver_type", sa.String(10), nullable=False),
        sa.Column("giver_id", sa.String(36), nullable=False),
        sa.Column("receiver_type", sa.String(10), nullable=False),
        sa.Column("receiver_id", sa.String(36), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("award_status", sa.String(20), nullable=False),
        sa.Column("api_visible", sa.Boolean(), nullable=True),
        _ts("assigned_at", nullable=False),
        _ts("revoked_at", nullable=True),
        sa.Column("override_badge_name", sa.String(100), nullable=True),
        sa.Column("override_subtitle", sa.String(200), nullable=True),
        sa.Column("override_display_description", sa.Text(), nullable=True),
        sa.Column("override_outer_shape", sa.String(20), nullable=True),
        sa.Column("override_text_font", sa.String(100), nullable=True),
        sa.Column("override_text_size", sa.Integer(), nullable=True),
        sa.Column("override_border_config", postgresql.JSONB(), nullable=True),
        sa.Column("override_background_config", postgresql.JSONB(), nullable=True),
        sa.Column("override_foreground_config", postgresql.JSONB(), nullable=True),
        sa.Column("override_border_color", sa.String(20), nullable=True),
        sa.Column("override_background_type", sa.String(20), nullable=True),
        sa.Column("override_background_value", sa.Text(), nullable=True),
        sa.Column("override_foreground_type", sa.String(20), nullable=True),
        sa.Column("override_foreground_value", sa.Text(), nullable=True),
        sa.Column("override_foreground_color", sa.String(20), nullable=True),
        sa.Column("measure_value", sa.Float(), nullable=True),
        sa.Column("override_measure_best", sa.Float(), nullable=True),
        sa.Column("override_measure_worst", sa.Float(), nullable=True),
        sa.Column("override_measure_is_normalizable", sa.Boolean(), nullable=True),
        sa.Column("override_measure_best_label", sa.String(100), nullable=True),
        sa.Column("override_measure_worst_label", sa.String(100), nullable=True),
    )
    op.create_index("ix_badge_instances_receiver", "badge_instances",
                    ["receiver_type", "receiver_id", "assigned_at"])
    op.create_index("ix_badge_instances_giver", "badge_instances",
                    ["giver_type", "giver_id", "assigned_at"])
    op.create_index("ix_badge_instances_template", "badge_instances", ["template_id"])

    op.create_table(
        "metadata_values",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("badge_instance_id", sa.String(36),
                  sa.ForeignKey("badge_instances.id", ondelete="CASCADE"), nullable=False),
        sa.Column("data_key", sa.String(100), nullable=False),
        sa.Column("data_value", sa.Text(), nullable=False),
        sa.UniqueConstraint("badge_instance_id", "data_key", name="uq_metadata_values_key"),
    )

    op.create_table(
        "user_badge_allocations",
        sa.Column("user_id", sa.String(36),
                  sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("tier", sa.String(10), primary_key=True),
        sa.Column("remaining", sa.Integer(), nullable=False),
        _ts("last_replenished_at", server_default=sa.func.now()),
    )

    op.create_table(
        "user_badge_cases",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36),
                  sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("is_public", sa.Boolean(), nullable=True),
        _ts("created_at", server_default=sa.func.now()),
    )

    op.create_table(
        "user_badge_items",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("badge_case_id", sa.String(36),
                  sa.ForeignKey("user_badge_cases.id", ondelete="CASCADE"), nullable=False),
        sa.Column("badge_instance_id", sa.String(36),
                  sa.ForeignKey("badge_instances.id", ondelete="CASCADE"),
                  nullable=False, unique=True),
        sa.Column("display_order", sa.Integer(), nullable=False),
        _ts("added_at", nullable=False),
        sa.UniqueConstraint("badge_case_id", "badge_instance_id",
                            name="uq_badge_items_case_instance"),
    )
    op.create_index("ix_badge_items_case_order", "user_badge_items",
                    ["badge_case_id", "display_order"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36),
                  sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("link_url", sa.String(500), nullable=True),
        sa.Column("source_id", sa.String(36), nullable=True),
        sa.Column("source_type", sa.String(30), nullable=True),
        sa.Column("actor_id", sa.String(36), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=True),
        _ts("created_at", server_default=sa.func.now()),
    )
    op.create_index("ix_notifications_user_time", "notifications", ["user_id", "created_at"])

    op.create_table(
        "uploaded_assets",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("uploader_id", sa.String(36), nullable=True),
        sa.Column("original_name", sa.String(255), nullable=False),
        sa.Column("content_type", sa.String(100), nullable=True),
        sa.Column("size_bytes", sa.Integer(), nullable=False),
        sa.Column("storage_key", sa.String(500), nullable=False),
        sa.Column("hosted_url", sa.String(500), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        _ts("expires_at", nullable=True),
        _ts("created_at", server_default=sa.func.now()),
    )
    op.create_index("ix_uploaded_assets_status_expiry", "uploaded_assets",
                    ["status", "expires_at"])

    op.create_table(
        "system_icons",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("svg_content", sa.Text(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("system_icons")
    op.drop_index("ix_uploaded_assets_status_expiry", table_name="uploaded_assets")
    op.drop_table("uploaded_assets")
    op.drop_index("ix_notifications_user_time", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_badge_items_case_order", table_name="user_badge_items")
    op.drop_table("user_badge_items")
    op.drop_table("user_badge_cases")
    op.drop_table("user_badge_allocations")
    op.drop_table("metadata_values")
    op.drop_index("ix_badge_instances_template", table_name="badge_instances")
    op.drop_index("ix_badge_instances_giver", table_name="badge_instances")
    op.drop_index("ix_badge_instances_receiver", table_name="badge_instances")
    op.drop_table("badge_instances")
    op.drop_table("metadata_field_definitions")
    op.drop_index("ix_badge_templates_owner", table_name="badge_templates")
    op.drop_table("badge_templates")
    op.drop_table("users")

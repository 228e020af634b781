"""Initial schema: profiles, facilities, visits, completions, audit events.

Revision ID: a7c3e91d2f40
Revises:
Create Date: 2026-10-17
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a7c3e91d2f40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("full_name", sa.String(128), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("must_change_password", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("full_name"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("idx_profiles_full_name", "profiles", ["full_name"])

    op.create_table(
        "facilities",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("facility_name", sa.String(255), nullable=False),
        sa.Column("type", sa.String(64), nullable=False, server_default=""),
        sa.Column("address", sa.String(255), nullable=True),
        sa.Column("city", sa.String(128), nullable=True),
        sa.Column("state", sa.String(32), nullable=True),
        sa.Column("zip", sa.String(20), nullable=True),
        sa.Column("county", sa.String(128), nullable=True),
        sa.Column("company", sa.String(128), nullable=True),
        sa.Column("team", sa.String(128), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("created_by_profile_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["created_by_profile_id"], ["profiles.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_facilities_name", "facilities", ["facility_name"])
    op.create_index("idx_facilities_type", "facilities", ["type"])
    op.create_index("idx_facilities_company", "facilities", ["company"])
    op.create_index("idx_facilities_team", "facilities", ["team"])

    op.create_table(
        "visits",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("profile_id", sa.Integer(), nullable=False),
        sa.Column("facility_id", sa.Integer(), nullable=False),
        sa.Column("visit_date", sa.Date(), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("photo_key", sa.String(512), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["profile_id"], ["profiles.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["facility_id"], ["facilities.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_visits_profile_date", "visits", ["profile_id", "visit_date"])
    op.create_index("idx_visits_facility", "visits", ["facility_id"])

    op.create_table(
        "facility_completions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("profile_id", sa.Integer(), nullable=False),
        sa.Column("facility_id", sa.Integer(), nullable=False),
        sa.Column("first_visit_id", sa.Integer(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["profile_id"], ["profiles.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["facility_id"], ["facilities.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["first_visit_id"], ["visits.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("profile_id", "facility_id", name="uq_completion_profile_facility"),
    )

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.Column("actor_profile_id", sa.Integer(), nullable=True),
        sa.Column("actor_name", sa.String(128), nullable=True),
        sa.Column("action", sa.String(128), nullable=False),
        sa.Column("entity_type", sa.String(128), nullable=True),
        sa.Column("entity_id", sa.String(128), nullable=True),
        sa.Column("reason", sa.String(512), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
        sa.Column("client_ip", sa.String(45), nullable=True),
        sa.ForeignKeyConstraint(["actor_profile_id"], ["profiles.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_audit_events_created_at", "audit_events", ["created_at"])
    op.create_index("idx_audit_events_action", "audit_events", ["action"])


def downgrade() -> None:
    op.drop_index("idx_audit_events_action", table_name="audit_events")
    op.drop_index("idx_audit_events_created_at", table_name="audit_events")
    op.drop_table("audit_events")
    op.drop_table("facility_completions")
    op.drop_index("idx_visits_facility", table_name="visits")
    op.drop_index("idx_visits_profile_date", table_name="visits")
    op.drop_table("visits")
    op.drop_index("idx_facilities_team", table_name="facilities")
    op.drop_index("idx_facilities_company", table_name="facilities")
    op.drop_index("idx_facilities_type", table_name="facilities")
    op.drop_index("idx_facilities_name", table_name="facilities")
    op.drop_table("facilities")
    op.drop_index("idx_profiles_full_name", table_name="profiles")
    op.drop_table("profiles")

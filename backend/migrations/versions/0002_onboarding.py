"""Create onboarding_profiles table

Revision ID: 0002_onboarding
Revises: 0001_initial
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "0002_onboarding"
down_revision = "0001_initial"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "onboarding_profiles",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        # -- phone verification ------------------------------------------
        sa.Column("phone_number", sa.String(20), nullable=True),
        sa.Column("pending_phone_number", sa.String(20), nullable=True),
        sa.Column("otp_digest", sa.String(64), nullable=True),
        sa.Column("otp_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("otp_sent_at", sa.DateTime(timezone=True), nullable=True),
        # -- personal profile --------------------------------------------
        sa.Column("title", sa.String(32), nullable=True),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("gender", sa.String(16), nullable=True),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("blood_group", sa.String(8), nullable=True),
        sa.Column("education", sa.String(255), nullable=True),
        sa.Column("occupation", sa.String(255), nullable=True),
        sa.Column("marital_status", sa.String(32), nullable=True),
        # -- address -----------------------------------------------------
        sa.Column("street", sa.String(255), nullable=True),
        sa.Column("city", sa.String(255), nullable=True),
        sa.Column("state", sa.String(255), nullable=True),
        sa.Column("country", sa.String(255), nullable=True),
        sa.Column("postal_code", sa.String(32), nullable=True),
        sa.Column("formatted_address", sa.String(1024), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("onboarding_complete", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("profile_complete", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_index("ix_onboarding_profiles_user_id", "onboarding_profiles", ["user_id"], unique=True)
    op.create_index("uq_onboarding_profiles_phone_number", "onboarding_profiles", ["phone_number"], unique=True)


def downgrade() -> None:
    op.drop_index("uq_onboarding_profiles_phone_number", table_name="onboarding_profiles")
    op.drop_index("ix_onboarding_profiles_user_id", table_name="onboarding_profiles")
    op.drop_table("onboarding_profiles")

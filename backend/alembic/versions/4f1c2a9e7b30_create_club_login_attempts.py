"""create club_login_attempts

Revision ID: 4f1c2a9e7b30
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "4f1c2a9e7b30"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create the sign-in attempt log."""
    op.create_table(
        "club_login_attempts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=255), nullable=True),
        sa.Column("account_identifier", sa.String(length=255), nullable=False),
        sa.Column("anonymized_address", sa.String(length=255), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_club_login_attempts")),
    )
    op.create_index(
        "ix_club_login_attempts_account_created",
        "club_login_attempts",
        ["account_identifier", "created_at"],
        unique=False,
    )
    op.create_index(
        "ix_club_login_attempts_address_created",
        "club_login_attempts",
        ["anonymized_address", "created_at"],
        unique=False,
    )
    op.create_index(
        "ix_club_login_attempts_created_at", "club_login_attempts", ["created_at"], unique=False
    )


def downgrade() -> None:
    """Drop the sign-in attempt log."""
    op.drop_index("ix_club_login_attempts_created_at", table_name="club_login_attempts")
    op.drop_index("ix_club_login_attempts_address_created", table_name="club_login_attempts")
    op.drop_index("ix_club_login_attempts_account_created", table_name="club_login_attempts")
    op.drop_table("club_login_attempts")

"""Add deal board tables for deals and their prospects.

Revision ID: 001_deal_board
Revises:
Create Date: 2026-10-19

Creates two tables:
- deals: one row per deal, owned by user_id, stage stored as registry id
- deal_prospects: leads of partner deals, removed with their deal
  (foreign key with ON DELETE CASCADE)

The composite (user_id, created_at) index serves the board's only fetch:
all deals of one user, newest first.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

# revision identifiers, used by Alembic.
revision: str = "001_deal_board"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── deals table ─────────────────────────────────────────────────────

    op.create_table(
        "deals",
        sa.Column(
            "id",
            UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column(
            "stage_id",
            sa.String(32),
            server_default=sa.text("'suspect'"),
            nullable=False,
        ),
        sa.Column("organization", sa.String(300), nullable=False),
        sa.Column(
            "deal_type",
            sa.String(16),
            server_default=sa.text("'customer'"),
            nullable=False,
        ),
        sa.Column("amount", sa.Float(), nullable=True),
        sa.Column("next_action_at", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("company_url", sa.String(500), nullable=True),
        sa.Column("contact_url", sa.String(500), nullable=True),
        sa.Column(
            "last_activity_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_deals_user_created", "deals", ["user_id", "created_at"])

    # ── deal_prospects table ────────────────────────────────────────────

    op.create_table(
        "deal_prospects",
        sa.Column(
            "id",
            UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column(
            "deal_id",
            UUID(as_uuid=True),
            sa.ForeignKey("deals.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(300), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_deal_prospects_deal_id", "deal_prospects", ["deal_id"])


def downgrade() -> None:
    op.drop_index("ix_deal_prospects_deal_id", table_name="deal_prospects")
    op.drop_table("deal_prospects")
    op.drop_index("ix_deals_user_created", table_name="deals")
    op.drop_table("deals")

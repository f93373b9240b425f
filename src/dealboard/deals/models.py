"""Deal board persistence models.

Two SQLAlchemy models:
- DealModel: one row per deal, scoped to its owner by user_id
- ProspectModel: leads attached to a partner deal; deleted with their deal
  (ON DELETE CASCADE plus ORM delete-orphan cascade)
"""

from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import (
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.dealboard.core.database import Base


class DealModel(Base):
    """A sales opportunity on the board.

    stage_id stores a registry stage id as plain text; the registry is
    defined in code, so validity is enforced by the application layer.
    """

    __tablename__ = "deals"
    __table_args__ = (
        Index("ix_deals_user_created", "user_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    stage_id: Mapped[str] = mapped_column(
        String(32), nullable=False, server_default=text("'suspect'")
    )
    organization: Mapped[str] = mapped_column(String(300), nullable=False)
    deal_type: Mapped[str] = mapped_column(
        String(16), nullable=False, server_default=text("'customer'")
    )
    amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    next_action_at: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    company_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    contact_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    last_activity_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    prospects: Mapped[list[ProspectModel]] = relationship(
        back_populates="deal",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
        order_by="ProspectModel.created_at",
    )


class ProspectModel(Base):
    """Named lead associated with a partner deal."""

    __tablename__ = "deal_prospects"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    deal_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("deals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    deal: Mapped[DealModel] = relationship(back_populates="prospects")

"""Grant opportunity, decision link and alert models."""

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from deliberate.database import Base


class GrantOpportunityRecord(Base):
    """Cached grant opportunity, keyed by the upstream identifier when present."""

    __tablename__ = "grant_opportunities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[str | None] = mapped_column(Text, unique=True, nullable=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    agency: Mapped[str | None] = mapped_column(Text, nullable=True)
    funding_category: Mapped[str | None] = mapped_column(Text, nullable=True)
    award_floor: Mapped[int | None] = mapped_column(Integer, nullable=True)
    award_ceiling: Mapped[int | None] = mapped_column(Integer, nullable=True)
    open_date: Mapped[str | None] = mapped_column(Text, nullable=True)
    close_date: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    raw_data: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    fetched_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class DecisionGrant(Base):
    """Grant opportunity linked to a decision for coaching context."""

    __tablename__ = "decision_grants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    decision_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("decisions.id", ondelete="CASCADE"), nullable=False
    )
    grant_opportunity_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("grant_opportunities.id", ondelete="CASCADE"), nullable=False
    )
    added_by: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False), ForeignKey("users.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class GrantAlert(Base):
    __tablename__ = "grant_alerts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    grant_opportunity_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("grant_opportunities.id", ondelete="CASCADE"), nullable=False
    )
    relevance_score: Mapped[float] = mapped_column(Float, nullable=False)
    relevance_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    matched_keywords: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, server_default="new")
    notified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    grant: Mapped[GrantOpportunityRecord] = relationship(lazy="joined")

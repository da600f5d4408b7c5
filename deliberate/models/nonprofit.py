"""Nonprofit profile, decision link and organization grant history models."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from deliberate.database import Base


class NonprofitProfile(Base):
    """Cached charity lookup result, keyed by dashless EIN."""

    __tablename__ = "nonprofit_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ein: Mapped[str] = mapped_column(String(9), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    city: Mapped[str | None] = mapped_column(Text, nullable=True)
    state: Mapped[str | None] = mapped_column(String(2), nullable=True)
    tax_status: Mapped[str | None] = mapped_column(Text, nullable=True)
    ntee_code: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_public_charity: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    is_tax_deductible: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    revenue: Mapped[float | None] = mapped_column(Float, nullable=True)
    expenses: Mapped[float | None] = mapped_column(Float, nullable=True)
    assets: Mapped[float | None] = mapped_column(Float, nullable=True)
    employee_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    raw_data: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    fetched_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class DecisionNonprofit(Base):
    """Nonprofit linked to a decision for coaching context."""

    __tablename__ = "decision_nonprofits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    decision_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("decisions.id", ondelete="CASCADE"), nullable=False
    )
    nonprofit_profile_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("nonprofit_profiles.id"), nullable=False
    )
    added_by: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False), ForeignKey("users.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class OrgGrantHistory(Base):
    """Grants previously awarded to the home organization."""

    __tablename__ = "org_grant_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    funder_name: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    source_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

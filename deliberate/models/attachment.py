"""Attachment model."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from deliberate.database import Base


class Attachment(Base):
    """Uploaded supporting document with a visibility context tag."""

    __tablename__ = "attachments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    decision_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("decisions.id", ondelete="CASCADE"), nullable=True, index=True
    )
    user_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("users.id"), nullable=False
    )
    file_name: Mapped[str] = mapped_column(Text, nullable=False)
    file_type: Mapped[str] = mapped_column(Text, nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    object_path: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    extracted_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    context: Mapped[str] = mapped_column(
        String(20), nullable=False, default="decision"
    )  # decision|judgment|comment|coaching
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    decision: Mapped["Decision"] = relationship(back_populates="attachments")  # noqa: F821

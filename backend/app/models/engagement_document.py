from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin


class EngagementDocument(Base, TimestampMixin):
    """Key-value row holding the latest saved JSON document for a storage key.

    Writes are last-write-wins; there is no version column.
    """

    __tablename__ = "engagement_documents"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[dict | list | None] = mapped_column(JSONB, nullable=True)

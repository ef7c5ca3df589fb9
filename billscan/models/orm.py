# billscan/models/orm.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Index,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from billscan.core.db import Base


# ---------- Leads (one per submitted bill) ----------
class Lead(Base):
    __tablename__ = "leads"

    # opaque uuid4 hex
    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    # public routing key, e.g. "k3v9x0qa" -> /bill/k3v9x0qa
    slug: Mapped[str] = mapped_column(String(32), unique=True, index=True)

    # Contact information (free-form beyond the submission checks)
    name: Mapped[str] = mapped_column(String(160), default="")
    email: Mapped[str] = mapped_column(String(160), default="")
    phone: Mapped[str] = mapped_column(String(60), default="")

    # Set once at submission, never updated
    document_url: Mapped[str] = mapped_column(Text)

    # Lifecycle: processing -> completed | failed (see models/lead_state.py)
    status: Mapped[str] = mapped_column(String(16), default="processing", index=True)
    # none_as_null: a missing analysis is SQL NULL, not the JSON literal 'null'
    analysis: Mapped[Optional[dict]] = mapped_column(JSON(none_as_null=True), nullable=True)
    # "model" | "placeholder"
    analysis_source: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('processing', 'completed', 'failed')", name="chk_leads_status"
        ),
        CheckConstraint(
            "(status = 'completed' AND analysis IS NOT NULL) OR "
            "(status <> 'completed' AND analysis IS NULL)",
            name="chk_leads_analysis_iff_completed",
        ),
        CheckConstraint(
            "analysis_source IS NULL OR analysis_source IN ('model', 'placeholder')",
            name="chk_leads_analysis_source",
        ),
        Index("ix_leads_status_created", "status", "created_at"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "slug": self.slug,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "document_url": self.document_url,
            "status": self.status,
            "analysis": self.analysis,
            "analysis_source": self.analysis_source,
            "error": self.error,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

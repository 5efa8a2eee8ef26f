from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from attendance_admin.db import Base

EMPLOYEES_COLLECTION = "employees"
ATTENDANCE_SUBCOLLECTION = "attendance"
MASTER_SHEET_COLLECTION = "MasterSheet/Employee-Data/employees"
LINE_MANAGERS_COLLECTION = "line_managers"
PUSH_TOKENS_COLLECTION = "fcm_tokens"
CHECK_REQUESTS_COLLECTION = "check_out_requests"
PUSH_TOPICS_COLLECTION = "push_topics"
AUDIT_LOGS_COLLECTION = "audit_logs"


class WorkStatus(str, enum.Enum):
    PENDING = "Pending"
    COMPLETED = "Completed"


class CheckRequestStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class CheckRequestType(str, enum.Enum):
    CHECK_IN = "check-in"
    CHECK_OUT = "check-out"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StoredDocument(Base):
    __tablename__ = "documents"
    __table_args__ = (
        UniqueConstraint("collection_path", "document_id", name="uq_documents_collection_document"),
        Index("ix_documents_data", "data", postgresql_using="gin"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    collection_path: Mapped[str] = mapped_column(String(512), nullable=False, index=True)
    document_id: Mapped[str] = mapped_column(String(255), nullable=False)
    data: Mapped[dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=dict,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

"""SQLAlchemy models for all database tables."""

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Client(Base):
    """Client directory entry. Maintained outside this service; read-only here."""

    __tablename__ = "clients"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    org_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    code: Mapped[str | None] = mapped_column(String, nullable=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    tax_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)  # CPF
    social_insurance_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)  # NIT/NIS
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    links: Mapped[list["ClientObligation"]] = relationship(
        "ClientObligation", back_populates="client"
    )


class Obligation(Base):
    """Catalog template for a recurring fiscal obligation."""

    __tablename__ = "obligations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    org_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    frequency: Mapped[str] = mapped_column(String, nullable=False)  # weekly | monthly | annual
    internal_target_day: Mapped[int] = mapped_column(Integer, nullable=False)
    # Day of the due period (day of month, or ISO weekday for weekly). None = last day.
    legal_due_rule: Mapped[int | None] = mapped_column(Integer, nullable=True)
    due_period_offset: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    fiscal_code: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    anchor_month: Mapped[int | None] = mapped_column(Integer, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    links: Mapped[list["ClientObligation"]] = relationship(
        "ClientObligation", back_populates="obligation"
    )


class ClientObligation(Base):
    """Link that makes a client owe an obligation."""

    __tablename__ = "client_obligations"
    __table_args__ = (
        UniqueConstraint("client_id", "obligation_id", name="uq_client_obligation"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    client_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("clients.id"), nullable=False)
    obligation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("obligations.id"), nullable=False
    )
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    internal_target_day_override: Mapped[int | None] = mapped_column(Integer, nullable=True)
    legal_due_rule_override: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    client: Mapped["Client"] = relationship("Client", back_populates="links")
    obligation: Mapped["Obligation"] = relationship("Obligation", back_populates="links")


class ObligationInstance(Base):
    """One occurrence of an obligation for a client and competence period."""

    __tablename__ = "obligation_instances"
    __table_args__ = (
        UniqueConstraint(
            "client_id", "obligation_id", "competence", name="uq_obligation_instance_period"
        ),
        Index("ix_obligation_instances_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    client_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("clients.id"), nullable=False)
    obligation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("obligations.id"), nullable=False
    )
    competence: Mapped[str] = mapped_column(String(8), nullable=False)
    due_at: Mapped[date] = mapped_column(Date, nullable=False)
    internal_target_at: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default="pending"
    )  # pending | due_48h | overdue | on_time_done | late_done
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completion_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    notified_due_day: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    client: Mapped["Client"] = relationship("Client")
    obligation: Mapped["Obligation"] = relationship("Obligation")


class StagingUpload(Base):
    """Uploaded file waiting for OCR and classification."""

    __tablename__ = "staging_uploads"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    org_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    uploaded_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    file_name: Mapped[str] = mapped_column(String, nullable=False)
    file_path: Mapped[str] = mapped_column(String, nullable=False)
    file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    mime_type: Mapped[str | None] = mapped_column(String, nullable=True)
    state: Mapped[str] = mapped_column(
        String, nullable=False, default="pending"
    )  # pending | classified | sent | error
    ocr_status: Mapped[str] = mapped_column(
        String, nullable=False, default="pending"
    )  # pending | processing | success | needs_review | error
    ocr_data: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    ocr_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    document_type: Mapped[str | None] = mapped_column(String, nullable=True)
    client_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("clients.id"), nullable=True
    )
    obligation_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("obligations.id"), nullable=True
    )
    competence: Mapped[str | None] = mapped_column(String(8), nullable=True)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    due_at: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


class Document(Base):
    """Permanent document delivered to a client."""

    __tablename__ = "documents"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    org_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    client_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("clients.id"), nullable=False)
    obligation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("obligations.id"), nullable=False
    )
    source_upload_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("staging_uploads.id", ondelete="SET NULL"), nullable=True, unique=True
    )
    competence: Mapped[str] = mapped_column(String(8), nullable=False)
    file_name: Mapped[str] = mapped_column(String, nullable=False)
    file_path: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    due_at: Mapped[date | None] = mapped_column(Date, nullable=True)
    delivered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    delivered_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    delivery_state: Mapped[str] = mapped_column(
        String, nullable=False, default="sent"
    )  # sent | delivered | bounced | failed
    viewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    client: Mapped["Client"] = relationship("Client")
    obligation: Mapped["Obligation"] = relationship("Obligation")


class DeliveryQueueItem(Base):
    """Pending email notification for a delivered document."""

    __tablename__ = "delivery_queue"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(
        String, nullable=False, default="pending"
    )  # pending | processing | sent | failed
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    next_retry_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    email_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    document: Mapped["Document"] = relationship("Document")


class DeliveryEvent(Base):
    """Provider webhook event about a sent notification."""

    __tablename__ = "delivery_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String, nullable=False)
    recipient: Mapped[str | None] = mapped_column(String, nullable=True)
    payload: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

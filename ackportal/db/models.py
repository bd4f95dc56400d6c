"""SQLAlchemy ORM models."""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ackportal.db.base import Base
from ackportal.db.enums import BatchStatus, MilestoneState


class Business(Base):
    """Business units recipients belong to (reporting only)."""

    __tablename__ = "businesses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self):
        return f"<Business {self.id} {self.name}>"


class Batch(Base):
    """
    A named set of documents assigned to recipients with a due date.

    Deleting a batch cascades to its documents, recipients,
    acknowledgements and notification milestones.
    """

    __tablename__ = "batches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=BatchStatus.ACTIVE.value, nullable=False
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )

    # Relationships
    documents: Mapped[list["Document"]] = relationship(
        back_populates="batch",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Document.id",
    )
    recipients: Mapped[list["Recipient"]] = relationship(
        back_populates="batch",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Recipient.id",
    )
    acknowledgements: Mapped[list["Acknowledgement"]] = relationship(
        back_populates="batch",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    milestones: Mapped[list["NotificationMilestone"]] = relationship(
        back_populates="batch",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<Batch {self.id} {self.name}>"


class Document(Base):
    """
    A document inside a batch.

    Content is located either by a direct URL or by a pair of remote
    library identifiers (drive_id + item_id).
    """

    __tablename__ = "documents"
    __table_args__ = (Index("idx_documents_batch", "batch_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    batch_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("batches.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    url: Mapped[str | None] = mapped_column(Text, nullable=True)
    drive_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    item_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    source: Mapped[str | None] = mapped_column(String(20), nullable=True)  # "local", "sharepoint"
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    requires_signature: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    batch: Mapped["Batch"] = relationship(back_populates="documents")

    def __repr__(self):
        return f"<Document {self.id} {self.title}>"


class Recipient(Base):
    """A user a batch is assigned to. Email is stored lower-cased."""

    __tablename__ = "recipients"
    __table_args__ = (
        UniqueConstraint("batch_id", "email", name="uq_recipients_batch_email"),
        Index("idx_recipients_batch", "batch_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    batch_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("batches.id", ondelete="CASCADE"), nullable=False
    )
    business_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("businesses.id", ondelete="SET NULL"), nullable=True
    )
    user_principal: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Reporting metadata
    department: Mapped[str | None] = mapped_column(String(255), nullable=True)
    job_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    primary_group: Mapped[str | None] = mapped_column(String(255), nullable=True)

    batch: Mapped["Batch"] = relationship(back_populates="recipients")
    business: Mapped["Business | None"] = relationship()

    def __repr__(self):
        return f"<Recipient {self.id} {self.email}>"


class Acknowledgement(Base):
    """
    A recipient's acknowledgement of one document in one batch.

    Logically a set: at most one row per (batch_id, document_id, email);
    re-submission overwrites the row.
    """

    __tablename__ = "acknowledgements"
    __table_args__ = (
        UniqueConstraint(
            "batch_id", "document_id", "email", name="uq_acknowledgements_batch_document_email"
        ),
        Index("idx_acks_batch_email", "batch_id", "email"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    batch_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("batches.id", ondelete="CASCADE"), nullable=False
    )
    document_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    acknowledged: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    ack_date: Mapped[datetime | None] = mapped_column(nullable=True)

    batch: Mapped["Batch"] = relationship(back_populates="acknowledgements")
    document: Mapped["Document"] = relationship()

    def __repr__(self):
        return f"<Acknowledgement batch={self.batch_id} doc={self.document_id}>"


class NotificationMilestone(Base):
    """
    Shared idempotency ledger for completion notifications.

    One row per (batch, kind, subject). subject_email is the completing
    user's email for user milestones and "" for the batch milestone.
    State moves forward only; the completed -> notified transition is the
    dispatch claim and succeeds for exactly one caller.
    """

    __tablename__ = "notification_milestones"
    __table_args__ = (
        UniqueConstraint(
            "batch_id", "kind", "subject_email", name="uq_notification_milestones_subject"
        ),
        Index("idx_milestones_batch_state", "batch_id", "state"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    batch_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("batches.id", ondelete="CASCADE"), nullable=False
    )
    kind: Mapped[str] = mapped_column(String(30), nullable=False)
    subject_email: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    state: Mapped[str] = mapped_column(
        String(20), default=MilestoneState.NOT_STARTED.value, nullable=False
    )

    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    notified_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Dispatch outcome (best-effort delivery, no retry)
    dispatch_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )

    batch: Mapped["Batch"] = relationship(back_populates="milestones")

    def __repr__(self):
        return f"<NotificationMilestone {self.kind} batch={self.batch_id} {self.state}>"


class NotificationEmail(Base):
    """Administrator addresses that receive completion notifications."""

    __tablename__ = "notification_emails"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<NotificationEmail {self.email}>"

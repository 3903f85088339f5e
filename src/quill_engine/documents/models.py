"""SQLAlchemy models for signature documents, recipients, and fields."""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from quill_engine.common.models import Base, TimestampMixin, generate_uuid, utcnow
from quill_engine.documents import states


class DocumentModel(Base, TimestampMixin):
    __tablename__ = "signature_documents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    organization_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    template_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    document_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    timezone: Mapped[str | None] = mapped_column(String(100), nullable=True)
    locale: Mapped[str | None] = mapped_column(String(20), nullable=True)

    status: Mapped[str] = mapped_column(String(30), default=states.DRAFT, index=True)
    routing_mode: Mapped[str] = mapped_column(String(20), default=states.PARALLEL)
    expiration_days: Mapped[int] = mapped_column(Integer, default=30)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    sender_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    sender_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Source file
    file_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_location: Mapped[str | None] = mapped_column(String(10), nullable=True)
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    file_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    original_sha256: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Rendered result, set at completion
    signed_file_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    signed_file_location: Mapped[str | None] = mapped_column(String(10), nullable=True)
    signed_sha256: Mapped[str | None] = mapped_column(String(64), nullable=True)


class DocumentVersionModel(Base):
    __tablename__ = "signature_document_versions"
    __table_args__ = (
        UniqueConstraint("document_id", "version_number", name="uq_document_version"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    document_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("signature_documents.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    version_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    file_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_location: Mapped[str | None] = mapped_column(String(10), nullable=True)
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    file_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    original_sha256: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
        default=utcnow,
    )


class RecipientModel(Base, TimestampMixin):
    __tablename__ = "signature_recipients"
    __table_args__ = (
        UniqueConstraint("document_id", "email", name="uq_recipient_document_email"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    document_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("signature_documents.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    contact_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    signing_order: Mapped[int] = mapped_column(Integer, default=1)
    # Insertion rank, breaks signing_order ties
    position: Mapped[int] = mapped_column(Integer, default=0)
    role_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    identity_method: Mapped[str] = mapped_column(String(20), default="none")
    identity_verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    routing_status: Mapped[str] = mapped_column(String(20), default=states.LOCKED)
    status: Mapped[str] = mapped_column(String(20), default=states.PENDING, index=True)
    token_hash: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    token_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    viewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    signed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    declined_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    decline_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    ip_address: Mapped[str | None] = mapped_column(String(100), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)


class FieldModel(Base):
    __tablename__ = "signature_fields"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    document_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("signature_documents.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    recipient_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("signature_recipients.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    role_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    position: Mapped[int] = mapped_column(Integer, default=0)

    field_type: Mapped[str] = mapped_column(String(20), nullable=False)
    page_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    x_position: Mapped[float] = mapped_column(Float, nullable=False)
    y_position: Mapped[float] = mapped_column(Float, nullable=False)
    width: Mapped[float] = mapped_column(Float, nullable=False)
    height: Mapped[float] = mapped_column(Float, nullable=False)

    label: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_required: Mapped[bool] = mapped_column(Boolean, default=True)
    value: Mapped[str | None] = mapped_column(Text, nullable=True)
    font_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    font_family: Mapped[str | None] = mapped_column(String(100), nullable=True)
    text_align: Mapped[str | None] = mapped_column(String(10), nullable=True)
    locked: Mapped[bool] = mapped_column(Boolean, default=False)


class ReminderModel(Base):
    __tablename__ = "signature_reminders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    document_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("signature_documents.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    recipient_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("signature_recipients.id", ondelete="SET NULL"),
        nullable=True,
    )
    scheduled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=states.REMINDER_PENDING)

"""SQLAlchemy models for signature templates."""

from sqlalchemy import Boolean, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from quill_engine.common.models import Base, TimestampMixin, generate_uuid


class TemplateModel(Base, TimestampMixin):
    __tablename__ = "signature_templates"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    organization_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)

    file_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_location: Mapped[str | None] = mapped_column(String(10), nullable=True)
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    file_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    original_sha256: Mapped[str | None] = mapped_column(String(64), nullable=True)


class TemplateRoleModel(Base):
    __tablename__ = "signature_template_roles"
    __table_args__ = (
        UniqueConstraint("template_id", "role_name", name="uq_template_role_name"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    template_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("signature_templates.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    role_name: Mapped[str] = mapped_column(String(100), nullable=False)
    signing_order: Mapped[int] = mapped_column(Integer, default=1)
    position: Mapped[int] = mapped_column(Integer, default=0)


class TemplateFieldModel(Base):
    __tablename__ = "signature_template_fields"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    template_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("signature_templates.id", ondelete="CASCADE"),
        nullable=False, index=True,
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
    font_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    font_family: Mapped[str | None] = mapped_column(String(100), nullable=True)
    text_align: Mapped[str | None] = mapped_column(String(10), nullable=True)
    locked: Mapped[bool] = mapped_column(Boolean, default=False)

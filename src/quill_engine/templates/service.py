"""Template service — reusable stencils of roles and fields."""

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from quill_engine.audit.service import ActorContext
from quill_engine.common.config import QuillSettings
from quill_engine.common.exceptions import TemplateNotFoundError, ValidationFailedError
from quill_engine.documents import states
from quill_engine.documents.models import DocumentModel, DocumentVersionModel
from quill_engine.documents.service import (
    PDF_MIME,
    DocumentService,
    check_pdf_upload,
    validate_field_geometry,
    validate_title,
)
from quill_engine.storage.blob_store import BlobNotFoundError, BlobStore, FileLocation
from quill_engine.templates.models import TemplateFieldModel, TemplateModel, TemplateRoleModel
from quill_engine.tokens.codec import compute_checksum

logger = logging.getLogger(__name__)

_UPDATABLE = ("title", "description", "message")


@dataclass
class TemplateDetails:
    template: TemplateModel
    roles: list[TemplateRoleModel]
    fields: list[TemplateFieldModel]


class TemplateService:
    """Template CRUD and instantiation into concrete documents."""

    def __init__(
        self,
        settings: QuillSettings,
        document_service: DocumentService,
        blob_store: BlobStore,
    ):
        self.settings = settings
        self.documents = document_service
        self.blobs = blob_store

    async def create_template(
        self,
        session: AsyncSession,
        organization_id: str,
        title: str,
        description: str | None = None,
        message: str | None = None,
    ) -> TemplateModel:
        template = TemplateModel(
            organization_id=organization_id,
            title=validate_title(title),
            description=description,
            message=message,
        )
        session.add(template)
        await session.flush()
        return template

    async def get_template(
        self, session: AsyncSession, organization_id: str, template_id: str,
    ) -> TemplateModel:
        result = await session.execute(
            select(TemplateModel).where(
                TemplateModel.id == template_id,
                TemplateModel.organization_id == organization_id,
            )
        )
        template = result.scalar_one_or_none()
        if template is None:
            raise TemplateNotFoundError()
        return template

    async def get_details(
        self, session: AsyncSession, organization_id: str, template_id: str,
    ) -> TemplateDetails:
        template = await self.get_template(session, organization_id, template_id)
        return TemplateDetails(
            template=template,
            roles=await self._roles(session, template.id),
            fields=await self._fields(session, template.id),
        )

    async def list_templates(
        self, session: AsyncSession, organization_id: str,
    ) -> list[TemplateModel]:
        result = await session.execute(
            select(TemplateModel)
            .where(TemplateModel.organization_id == organization_id)
            .order_by(TemplateModel.created_at.desc())
        )
        return list(result.scalars().all())

    async def update_template(
        self, session: AsyncSession, organization_id: str, template_id: str, **updates: Any,
    ) -> TemplateModel:
        template = await self.get_template(session, organization_id, template_id)
        for field in _UPDATABLE:
            value = updates.get(field)
            if value is None:
                continue
            setattr(template, field, validate_title(value) if field == "title" else value)
        await session.flush()
        return template

    async def delete_template(
        self, session: AsyncSession, organization_id: str, template_id: str,
    ) -> FileLocation | None:
        """Delete the template; returns its file location for cleanup after commit."""
        template = await self.get_template(session, organization_id, template_id)
        location = FileLocation.from_columns(template.file_location, template.file_url)
        await session.delete(template)
        await session.flush()
        return location

    async def upload_file(
        self,
        session: AsyncSession,
        organization_id: str,
        template_id: str,
        data: bytes,
        file_name: str | None,
        content_type: str | None,
    ) -> tuple[TemplateModel, list[FileLocation]]:
        """Store a new template file; returns the replaced location for cleanup after commit."""
        template = await self.get_template(session, organization_id, template_id)
        check_pdf_upload(data, file_name, content_type, self.settings.max_upload_bytes)

        previous = FileLocation.from_columns(template.file_location, template.file_url)
        location = await self.blobs.save(data, f"templates/{organization_id}/{template.id}")
        try:
            template.file_url = location.url
            template.file_location = location.kind
            template.file_name = file_name or "template.pdf"
            template.file_size = len(data)
            template.file_type = PDF_MIME
            template.original_sha256 = compute_checksum(data)
            await session.flush()
        except Exception:
            await self.documents.discard_blobs([location])
            raise
        return template, [previous] if previous is not None else []

    async def replace_roles(
        self,
        session: AsyncSession,
        organization_id: str,
        template_id: str,
        roles: list[dict[str, Any]],
    ) -> list[TemplateRoleModel]:
        template = await self.get_template(session, organization_id, template_id)

        seen: set[str] = set()
        for role in roles:
            name = (role.get("role_name") or "").strip()
            if not name:
                raise ValidationFailedError("Role name is required")
            if name in seen:
                raise ValidationFailedError(f"Duplicate role name: {name}")
            if int(role.get("signing_order", 1)) < 1:
                raise ValidationFailedError("signing_order must be at least 1")
            seen.add(name)

        for old in await self._roles(session, template.id):
            await session.delete(old)
        await session.flush()

        created = []
        for position, role in enumerate(roles):
            model = TemplateRoleModel(
                template_id=template.id,
                role_name=role["role_name"].strip(),
                signing_order=int(role.get("signing_order", 1)),
                position=position,
            )
            session.add(model)
            created.append(model)
        await session.flush()
        return created

    async def replace_fields(
        self,
        session: AsyncSession,
        organization_id: str,
        template_id: str,
        fields: list[dict[str, Any]],
    ) -> list[TemplateFieldModel]:
        template = await self.get_template(session, organization_id, template_id)
        for item in fields:
            validate_field_geometry(item)

        for old in await self._fields(session, template.id):
            await session.delete(old)
        await session.flush()

        created = []
        for position, item in enumerate(fields):
            model = TemplateFieldModel(
                template_id=template.id,
                role_name=item.get("role_name"),
                position=position,
                field_type=item["field_type"],
                page_number=int(item.get("page_number") or 1),
                x_position=float(item["x_position"]),
                y_position=float(item["y_position"]),
                width=float(item["width"]),
                height=float(item["height"]),
                label=item.get("label"),
                is_required=bool(item.get("is_required", True)),
                font_size=item.get("font_size"),
                font_family=item.get("font_family"),
                text_align=item.get("text_align"),
                locked=bool(item.get("locked", False)),
            )
            session.add(model)
            created.append(model)
        await session.flush()
        return created

    async def instantiate(
        self,
        session: AsyncSession,
        organization_id: str,
        template_id: str,
        recipients: list[dict[str, Any]],
        title: str | None = None,
        description: str | None = None,
        message: str | None = None,
        routing_mode: str = states.PARALLEL,
        expiration_days: int | None = None,
        context: ActorContext | None = None,
    ) -> DocumentModel:
        """Create a draft document with recipients and fields from a template.

        A recipient's signing order comes from the template role of the same
        name when there is one. Template fields whose role has no recipient
        stay unbound.
        """
        details = await self.get_details(session, organization_id, template_id)
        template = details.template
        role_orders = {r.role_name: r.signing_order for r in details.roles}

        doc = await self.documents.create_document(
            session, organization_id,
            title=title or template.title,
            description=description or template.description,
            message=message or template.message,
            routing_mode=routing_mode,
            expiration_days=expiration_days,
            template_id=template.id,
            context=context,
        )

        entries = []
        for entry in recipients:
            order = role_orders.get(entry.get("role_name"), entry.get("signing_order", 1))
            entries.append({**entry, "signing_order": order})
        await self.documents.replace_recipients(session, organization_id, doc.id, entries)

        await self.documents.replace_fields(
            session, organization_id, doc.id,
            [
                {
                    "field_type": f.field_type,
                    "page_number": f.page_number,
                    "x_position": f.x_position,
                    "y_position": f.y_position,
                    "width": f.width,
                    "height": f.height,
                    "label": f.label,
                    "is_required": f.is_required,
                    "role_name": f.role_name,
                    "font_size": f.font_size,
                    "font_family": f.font_family,
                    "text_align": f.text_align,
                    "locked": f.locked,
                }
                for f in details.fields
            ],
        )

        source = FileLocation.from_columns(template.file_location, template.file_url)
        if source is not None:
            await self._copy_file(session, template, doc, source)

        logger.info("Template instantiated", extra={"document_id": doc.id})
        return doc

    async def _copy_file(
        self,
        session: AsyncSession,
        template: TemplateModel,
        doc: DocumentModel,
        source: FileLocation,
    ) -> None:
        # Each document owns its own copy so deleting one never touches the other.
        try:
            data = await self.blobs.read(source)
        except BlobNotFoundError as exc:
            raise ValidationFailedError("Template file is not available") from exc
        location = await self.blobs.save(data, f"documents/{doc.organization_id}/{doc.id}")
        try:
            doc.file_url = location.url
            doc.file_location = location.kind
            doc.file_name = template.file_name
            doc.file_size = template.file_size
            doc.file_type = template.file_type
            doc.original_sha256 = template.original_sha256
            session.add(DocumentVersionModel(
                document_id=doc.id,
                version_number=1,
                file_url=location.url,
                file_location=location.kind,
                file_name=template.file_name,
                file_size=template.file_size,
                file_type=template.file_type,
                original_sha256=template.original_sha256,
            ))
            await session.flush()
        except Exception:
            await self.documents.discard_blobs([location])
            raise

    async def _roles(self, session: AsyncSession, template_id: str) -> list[TemplateRoleModel]:
        result = await session.execute(
            select(TemplateRoleModel)
            .where(TemplateRoleModel.template_id == template_id)
            .order_by(TemplateRoleModel.signing_order.asc(), TemplateRoleModel.position.asc())
        )
        return list(result.scalars().all())

    async def _fields(self, session: AsyncSession, template_id: str) -> list[TemplateFieldModel]:
        result = await session.execute(
            select(TemplateFieldModel)
            .where(TemplateFieldModel.template_id == template_id)
            .order_by(TemplateFieldModel.position.asc())
        )
        return list(result.scalars().all())

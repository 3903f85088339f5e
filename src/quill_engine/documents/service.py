"""Document service — documents, their recipient ledger and field registry."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from quill_engine.audit import service as audit_events
from quill_engine.audit.models import AuditEventModel
from quill_engine.audit.service import ActorContext, AuditService
from quill_engine.common.config import QuillSettings
from quill_engine.common.exceptions import (
    DeleteConflictError,
    DocumentNotFoundError,
    DocumentStateError,
    FileNotReadyError,
    PayloadTooLargeError,
    UnsupportedFileError,
    ValidationFailedError,
)
from quill_engine.common.models import as_utc, utcnow
from quill_engine.documents import states
from quill_engine.documents.models import (
    DocumentModel,
    DocumentVersionModel,
    FieldModel,
    RecipientModel,
    ReminderModel,
)
from quill_engine.storage.blob_store import BlobNotFoundError, BlobStore, FileLocation
from quill_engine.tokens.codec import compute_checksum

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"

_UPDATABLE = (
    "title", "description", "message", "document_number",
    "timezone", "locale", "sender_name", "sender_email",
)
_DRAFT_ONLY_UPDATES = ("routing_mode", "expiration_days")


# ── Validation helpers (shared with templates) ──


def validate_title(title: Optional[str]) -> str:
    if title is None or not title.strip():
        raise ValidationFailedError("Title is required")
    return title.strip()


def normalize_email(email: Optional[str]) -> str:
    if not email or not email.strip():
        raise ValidationFailedError("Recipient email is required")
    try:
        return validate_email(email.strip(), check_deliverability=False).normalized.lower()
    except EmailNotValidError as exc:
        raise ValidationFailedError(f"Invalid recipient email: {email}") from exc


def validate_field_geometry(item: dict[str, Any]) -> None:
    """Reject unknown types, pages below 1 and coordinates outside [0, 100]."""
    if item.get("field_type") not in states.FIELD_TYPES:
        raise ValidationFailedError(f"Unknown field type: {item.get('field_type')!r}")
    if int(item.get("page_number") or 0) < 1:
        raise ValidationFailedError("Field page_number must be at least 1")
    for name in ("x_position", "y_position", "width", "height"):
        value = item.get(name)
        if value is None or not 0 <= float(value) <= 100:
            raise ValidationFailedError(f"Field {name} must be between 0 and 100")


def check_pdf_upload(
    data: bytes, file_name: Optional[str], content_type: Optional[str], max_bytes: int,
) -> None:
    if not data:
        raise UnsupportedFileError("Uploaded file is empty")
    if len(data) > max_bytes:
        raise PayloadTooLargeError(f"File exceeds the {max_bytes} byte upload limit")
    named_pdf = (file_name or "").lower().endswith(".pdf")
    if content_type != PDF_MIME and not named_pdf:
        raise UnsupportedFileError()
    if not data.startswith(b"%PDF"):
        raise UnsupportedFileError()


def effective_status(doc: DocumentModel, now: datetime | None = None) -> str:
    """Stored status, except a lapsed pre-completion document reads as expired."""
    now = now or utcnow()
    expires_at = as_utc(doc.expires_at)
    if (
        doc.status in (states.DRAFT, states.SENT, states.IN_PROGRESS)
        and expires_at is not None
        and now >= expires_at
    ):
        return states.EXPIRED
    return doc.status


@dataclass
class DocumentDetails:
    document: DocumentModel
    recipients: list[RecipientModel]
    fields: list[FieldModel]
    audit: list[AuditEventModel]


class DocumentService:
    """Operator-side document operations, scoped by organization id."""

    def __init__(
        self,
        settings: QuillSettings,
        audit_service: AuditService,
        blob_store: BlobStore,
    ):
        self.settings = settings
        self.audit = audit_service
        self.blobs = blob_store

    # ── Documents ──

    async def create_document(
        self,
        session: AsyncSession,
        organization_id: str,
        title: str,
        routing_mode: str = states.PARALLEL,
        expiration_days: int | None = None,
        template_id: str | None = None,
        context: ActorContext | None = None,
        **metadata: Any,
    ) -> DocumentModel:
        title = validate_title(title)
        if routing_mode not in states.ROUTING_MODES:
            raise ValidationFailedError(f"Unknown routing mode: {routing_mode!r}")
        if expiration_days is None:
            expiration_days = self.settings.default_expiration_days
        if expiration_days < 1:
            raise ValidationFailedError("expiration_days must be at least 1")

        doc = DocumentModel(
            organization_id=organization_id,
            template_id=template_id,
            title=title,
            routing_mode=routing_mode,
            expiration_days=expiration_days,
            status=states.DRAFT,
            **{k: v for k, v in metadata.items() if k in _UPDATABLE},
        )
        session.add(doc)
        await session.flush()

        await self.audit.record_event(
            session, doc.id, audit_events.CREATED,
            description="Document created",
            context=context,
            metadata={"template_id": template_id} if template_id else None,
        )
        return doc

    async def get_document(
        self,
        session: AsyncSession,
        organization_id: str,
        document_id: str,
        for_update: bool = False,
    ) -> DocumentModel:
        query = select(DocumentModel).where(
            DocumentModel.id == document_id,
            DocumentModel.organization_id == organization_id,
        )
        if for_update:
            query = query.with_for_update()
        result = await session.execute(query)
        doc = result.scalar_one_or_none()
        if doc is None:
            raise DocumentNotFoundError()
        return doc

    async def update_document(
        self,
        session: AsyncSession,
        organization_id: str,
        document_id: str,
        **updates: Any,
    ) -> DocumentModel:
        """Partial update; a ``None`` value keeps what is stored."""
        doc = await self.get_document(session, organization_id, document_id, for_update=True)
        if doc.status in (states.COMPLETED, states.CANCELLED):
            raise DocumentStateError(f"Cannot edit a {doc.status} document")

        changes = {k: v for k, v in updates.items() if v is not None}
        if "title" in changes:
            changes["title"] = validate_title(changes["title"])
        if any(k in changes for k in _DRAFT_ONLY_UPDATES) and doc.status != states.DRAFT:
            raise DocumentStateError("Routing mode and expiration can only change while draft")
        if changes.get("routing_mode", states.PARALLEL) not in states.ROUTING_MODES:
            raise ValidationFailedError(f"Unknown routing mode: {changes['routing_mode']!r}")
        if "expiration_days" in changes and changes["expiration_days"] < 1:
            raise ValidationFailedError("expiration_days must be at least 1")

        for field in _UPDATABLE + _DRAFT_ONLY_UPDATES:
            if field in changes:
                setattr(doc, field, changes[field])
        await session.flush()
        return doc

    async def list_documents(
        self,
        session: AsyncSession,
        organization_id: str,
        status: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[DocumentModel], int]:
        query = select(DocumentModel).where(DocumentModel.organization_id == organization_id)
        count_query = select(func.count(DocumentModel.id)).where(
            DocumentModel.organization_id == organization_id
        )
        if status:
            if status not in states.DOCUMENT_STATUSES:
                raise ValidationFailedError(f"Unknown status filter: {status!r}")
            now = utcnow()
            pre_completion = (states.DRAFT, states.SENT, states.IN_PROGRESS)
            if status == states.EXPIRED:
                condition = DocumentModel.status.in_(pre_completion) & (
                    DocumentModel.expires_at <= now
                )
            elif status in pre_completion:
                condition = (DocumentModel.status == status) & (
                    DocumentModel.expires_at.is_(None) | (DocumentModel.expires_at > now)
                )
            else:
                condition = DocumentModel.status == status
            query = query.where(condition)
            count_query = count_query.where(condition)

        total = (await session.execute(count_query)).scalar() or 0
        offset = (page - 1) * page_size
        result = await session.execute(
            query.order_by(DocumentModel.created_at.desc(), DocumentModel.id.desc())
            .offset(offset).limit(page_size)
        )
        return list(result.scalars().all()), total

    async def get_recipients(
        self, session: AsyncSession, document_id: str, for_update: bool = False,
    ) -> list[RecipientModel]:
        """Recipients in signing order, insertion rank breaking ties."""
        query = (
            select(RecipientModel)
            .where(RecipientModel.document_id == document_id)
            .order_by(RecipientModel.signing_order.asc(), RecipientModel.position.asc())
        )
        if for_update:
            query = query.with_for_update()
        result = await session.execute(query)
        return list(result.scalars().all())

    async def get_fields(self, session: AsyncSession, document_id: str) -> list[FieldModel]:
        result = await session.execute(
            select(FieldModel)
            .where(FieldModel.document_id == document_id)
            .order_by(FieldModel.position.asc())
        )
        return list(result.scalars().all())

    async def get_details(
        self, session: AsyncSession, organization_id: str, document_id: str,
    ) -> DocumentDetails:
        doc = await self.get_document(session, organization_id, document_id)
        return DocumentDetails(
            document=doc,
            recipients=await self.get_recipients(session, doc.id),
            fields=await self.get_fields(session, doc.id),
            audit=await self.audit.get_events(session, doc.id),
        )

    async def cancel_document(
        self,
        session: AsyncSession,
        organization_id: str,
        document_id: str,
        context: ActorContext | None = None,
    ) -> DocumentModel:
        """Operator cancel; recipient records are left as they are."""
        doc = await self.get_document(session, organization_id, document_id, for_update=True)
        if doc.status not in states.ROUTABLE_STATUSES:
            raise DocumentStateError(f"Cannot cancel a {doc.status} document")
        doc.status = states.CANCELLED
        await session.flush()
        await self.audit.record_event(
            session, doc.id, audit_events.CANCELLED,
            description="Document cancelled by sender",
            context=context,
        )
        return doc

    async def delete_document(
        self, session: AsyncSession, organization_id: str, document_id: str,
    ) -> list[FileLocation]:
        """Delete the document and everything it owns.

        Returns the stored file locations so the caller can remove the blobs
        once the delete has committed.
        """
        doc = await self.get_document(session, organization_id, document_id, for_update=True)
        if doc.status != states.DRAFT:
            signed = (await session.execute(
                select(func.count(RecipientModel.id)).where(
                    RecipientModel.document_id == doc.id,
                    RecipientModel.status == states.SIGNED,
                )
            )).scalar() or 0
            if signed:
                raise DeleteConflictError()

        locations = [
            loc for loc in (
                FileLocation.from_columns(doc.file_location, doc.file_url),
                FileLocation.from_columns(doc.signed_file_location, doc.signed_file_url),
            )
            if loc is not None
        ]
        await session.delete(doc)
        await session.flush()
        return locations

    async def discard_blobs(self, locations: list[FileLocation]) -> None:
        for location in locations:
            try:
                await self.blobs.delete(location)
            except OSError:
                logger.warning("Failed to delete blob %s", location.url, exc_info=True)

    # ── Files ──

    async def attach_file(
        self,
        session: AsyncSession,
        organization_id: str,
        document_id: str,
        data: bytes,
        file_name: str | None,
        content_type: str | None,
        context: ActorContext | None = None,
    ) -> DocumentModel:
        """Store a new source PDF and append a version row. Status is untouched."""
        doc = await self.get_document(session, organization_id, document_id, for_update=True)
        self._require_draft(doc, "replace the file of")
        check_pdf_upload(data, file_name, content_type, self.settings.max_upload_bytes)

        location = await self.blobs.save(data, f"documents/{organization_id}/{doc.id}")
        try:
            return await self._record_upload(session, doc, location, data, file_name, context)
        except Exception:
            await self.discard_blobs([location])
            raise

    async def _record_upload(
        self,
        session: AsyncSession,
        doc: DocumentModel,
        location: FileLocation,
        data: bytes,
        file_name: str | None,
        context: ActorContext | None,
    ) -> DocumentModel:
        checksum = compute_checksum(data)
        file_name = file_name or "document.pdf"

        doc.file_url = location.url
        doc.file_location = location.kind
        doc.file_name = file_name
        doc.file_size = len(data)
        doc.file_type = PDF_MIME
        doc.original_sha256 = checksum
        doc.signed_file_url = None
        doc.signed_file_location = None
        doc.signed_sha256 = None

        latest = (await session.execute(
            select(func.max(DocumentVersionModel.version_number))
            .where(DocumentVersionModel.document_id == doc.id)
        )).scalar() or 0
        session.add(DocumentVersionModel(
            document_id=doc.id,
            version_number=latest + 1,
            file_url=location.url,
            file_location=location.kind,
            file_name=file_name,
            file_size=len(data),
            file_type=PDF_MIME,
            original_sha256=checksum,
        ))
        await session.flush()

        await self.audit.record_event(
            session, doc.id, audit_events.FILE_UPLOADED,
            description=f"File uploaded: {file_name}",
            context=context,
            metadata={"version": latest + 1, "sha256": checksum, "size": len(data)},
        )
        return doc

    async def remove_file(
        self,
        session: AsyncSession,
        organization_id: str,
        document_id: str,
        context: ActorContext | None = None,
    ) -> tuple[DocumentModel, list[FileLocation]]:
        """Detach the source file.

        Returns the detached locations; the caller discards them once the
        change has committed.
        """
        doc = await self.get_document(session, organization_id, document_id, for_update=True)
        self._require_draft(doc, "remove the file of")

        stale = [
            loc for loc in (
                FileLocation.from_columns(doc.file_location, doc.file_url),
                FileLocation.from_columns(doc.signed_file_location, doc.signed_file_url),
            )
            if loc is not None
        ]

        doc.file_url = None
        doc.file_location = None
        doc.file_name = None
        doc.file_size = None
        doc.file_type = None
        doc.original_sha256 = None
        doc.signed_file_url = None
        doc.signed_file_location = None
        doc.signed_sha256 = None
        await session.flush()

        await self.audit.record_event(
            session, doc.id, audit_events.FILE_REMOVED,
            description="File removed",
            context=context,
        )
        return doc, stale

    async def list_versions(
        self, session: AsyncSession, organization_id: str, document_id: str,
    ) -> list[DocumentVersionModel]:
        doc = await self.get_document(session, organization_id, document_id)
        result = await session.execute(
            select(DocumentVersionModel)
            .where(DocumentVersionModel.document_id == doc.id)
            .order_by(DocumentVersionModel.version_number.asc())
        )
        return list(result.scalars().all())

    async def read_source_file(self, doc: DocumentModel) -> bytes:
        location = FileLocation.from_columns(doc.file_location, doc.file_url)
        if location is None:
            raise FileNotReadyError("Document has no file")
        try:
            return await self.blobs.read(location)
        except BlobNotFoundError as exc:
            raise FileNotReadyError("Document file is not available") from exc

    def signed_file(self, doc: DocumentModel) -> tuple[FileLocation, str]:
        """Location and download name of the rendered file of a completed document."""
        location = FileLocation.from_columns(doc.signed_file_location, doc.signed_file_url)
        if doc.status != states.COMPLETED or location is None:
            raise FileNotReadyError()
        base = (doc.file_name or "document.pdf").rsplit(".", 1)[0]
        return location, f"{base}-signed.pdf"

    async def read_signed_file(self, location: FileLocation) -> bytes:
        try:
            return await self.blobs.read(location)
        except BlobNotFoundError as exc:
            raise FileNotReadyError("Signed file is not available") from exc

    # ── Recipient ledger ──

    async def replace_recipients(
        self,
        session: AsyncSession,
        organization_id: str,
        document_id: str,
        recipients: list[dict[str, Any]],
    ) -> list[RecipientModel]:
        """Bulk replace; fields bound by role_name follow the new recipient."""
        doc = await self.get_document(session, organization_id, document_id, for_update=True)
        self._require_draft(doc, "change recipients of")

        cleaned = []
        seen_emails: set[str] = set()
        seen_orders: set[int] = set()
        for entry in recipients:
            email = normalize_email(entry.get("email"))
            if email in seen_emails:
                raise ValidationFailedError(f"Duplicate recipient email: {email}")
            seen_emails.add(email)

            order = int(entry.get("signing_order", 1))
            if order < 1:
                raise ValidationFailedError("signing_order must be at least 1")
            if doc.routing_mode == states.SEQUENTIAL:
                if order in seen_orders:
                    raise ValidationFailedError(
                        "Sequential routing requires a distinct signing_order per recipient"
                    )
                seen_orders.add(order)

            identity_method = entry.get("identity_method") or "none"
            if identity_method not in states.IDENTITY_METHODS:
                raise ValidationFailedError(f"Unknown identity method: {identity_method!r}")
            cleaned.append({**entry, "email": email, "signing_order": order,
                            "identity_method": identity_method})

        await session.execute(
            update(FieldModel)
            .where(FieldModel.document_id == doc.id)
            .values(recipient_id=None)
        )
        for old in await self.get_recipients(session, doc.id):
            await session.delete(old)
        await session.flush()

        created = []
        for position, entry in enumerate(cleaned):
            recipient = RecipientModel(
                document_id=doc.id,
                organization_id=organization_id,
                contact_id=entry.get("contact_id"),
                name=entry.get("name"),
                email=entry["email"],
                signing_order=entry["signing_order"],
                position=position,
                role_name=entry.get("role_name"),
                identity_method=entry["identity_method"],
                routing_status=states.LOCKED,
                status=states.PENDING,
            )
            session.add(recipient)
            created.append(recipient)
        await session.flush()

        for recipient in created:
            if recipient.role_name:
                await session.execute(
                    update(FieldModel)
                    .where(
                        FieldModel.document_id == doc.id,
                        FieldModel.role_name == recipient.role_name,
                    )
                    .values(recipient_id=recipient.id)
                )
        return await self.get_recipients(session, doc.id)

    # ── Field registry ──

    async def replace_fields(
        self,
        session: AsyncSession,
        organization_id: str,
        document_id: str,
        fields: list[dict[str, Any]],
    ) -> list[FieldModel]:
        doc = await self.get_document(session, organization_id, document_id, for_update=True)
        self._require_draft(doc, "change fields of")

        recipients = await self.get_recipients(session, doc.id)
        by_id = {r.id: r for r in recipients}
        by_role = {r.role_name: r for r in recipients if r.role_name}

        for item in fields:
            validate_field_geometry(item)
            recipient_id = item.get("recipient_id")
            if recipient_id and recipient_id not in by_id:
                raise ValidationFailedError(f"Recipient {recipient_id} does not belong to this document")

        existing = await self.get_fields(session, doc.id)
        for old in existing:
            await session.delete(old)
        await session.flush()

        created = []
        for position, item in enumerate(fields):
            recipient_id = item.get("recipient_id")
            role_name = item.get("role_name")
            if not recipient_id and role_name in by_role:
                recipient_id = by_role[role_name].id
            field = FieldModel(
                document_id=doc.id,
                recipient_id=recipient_id,
                role_name=role_name,
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
            session.add(field)
            created.append(field)
        await session.flush()
        return created

    # ── Reminders ──

    async def schedule_reminders(
        self,
        session: AsyncSession,
        organization_id: str,
        document_id: str,
        days: int | None = None,
        context: ActorContext | None = None,
    ) -> list[ReminderModel]:
        """Record one pending reminder per unresolved recipient. Dispatch is external."""
        doc = await self.get_document(session, organization_id, document_id, for_update=True)
        if effective_status(doc) not in states.ROUTABLE_STATUSES:
            raise DocumentStateError("Reminders can only be scheduled for sent documents")
        days = days if days is not None else self.settings.reminder_default_days
        if days < 1:
            raise ValidationFailedError("Reminder delay must be at least 1 day")

        scheduled_at = utcnow() + timedelta(days=days)
        reminders = []
        for recipient in await self.get_recipients(session, doc.id):
            if recipient.status in states.RESOLVED_RECIPIENT_STATUSES:
                continue
            reminder = ReminderModel(
                document_id=doc.id,
                recipient_id=recipient.id,
                scheduled_at=scheduled_at,
                status=states.REMINDER_PENDING,
            )
            session.add(reminder)
            reminders.append(reminder)
        await session.flush()

        await self.audit.record_event(
            session, doc.id, audit_events.REMINDER_SCHEDULED,
            description=f"Reminder scheduled in {days} day(s)",
            context=context,
            metadata={"count": len(reminders), "scheduled_at": scheduled_at.isoformat()},
        )
        return reminders

    async def list_reminders(
        self, session: AsyncSession, organization_id: str, document_id: str,
    ) -> list[ReminderModel]:
        doc = await self.get_document(session, organization_id, document_id)
        result = await session.execute(
            select(ReminderModel)
            .where(ReminderModel.document_id == doc.id)
            .order_by(ReminderModel.scheduled_at.asc())
        )
        return list(result.scalars().all())

    # ── Internal helpers ──

    @staticmethod
    def _require_draft(doc: DocumentModel, action: str) -> None:
        if doc.status != states.DRAFT:
            raise DocumentStateError(f"Cannot {action} a {doc.status} document")

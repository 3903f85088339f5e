"""Routing engine — send, signing-access gate, submit, decline, completion.

Every state change happens inside the caller's session so the audit events
commit or roll back with it. Notifications and rendering run afterwards, in
``after_commit``, and their failures are logged only.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Optional, Union

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from quill_engine.audit import service as audit_events
from quill_engine.audit.service import ActorContext, AuditService
from quill_engine.common.config import QuillSettings
from quill_engine.common.database import DatabaseManager
from quill_engine.common.exceptions import (
    DocumentStateError,
    InvalidSignatureDataError,
    MissingRequiredFieldsError,
    PayloadTooLargeError,
    SigningLinkInvalidError,
    ValidationFailedError,
)
from quill_engine.common.models import as_utc, utcnow
from quill_engine.documents import states
from quill_engine.documents.models import (
    DocumentModel,
    FieldModel,
    RecipientModel,
    ReminderModel,
)
from quill_engine.documents.service import DocumentService, effective_status
from quill_engine.notifications.email import Notifier, SignatureMessage
from quill_engine.rendering.renderer import (
    RenderAuditLine,
    RenderField,
    RenderRequest,
    RenderSigner,
    Renderer,
    decode_image_value,
)
from quill_engine.routing.visibility import visible_fields
from quill_engine.storage.blob_store import BlobStore, FileLocation
from quill_engine.tokens.codec import compute_checksum, hash_token, issue

logger = logging.getLogger(__name__)


@dataclass
class Activation:
    """A recipient that just received a fresh token. The token exists only here."""
    recipient: RecipientModel
    token: str


@dataclass
class SendResult:
    document: DocumentModel
    activations: list[Activation] = field(default_factory=list)
    reminder: bool = False


@dataclass
class SigningView:
    document: DocumentModel
    recipient: RecipientModel
    fields: list[FieldModel]


@dataclass
class SigningResult:
    document: DocumentModel
    recipient: RecipientModel
    recipients: list[RecipientModel] = field(default_factory=list)
    activations: list[Activation] = field(default_factory=list)
    completed: bool = False


@dataclass
class DeclineResult:
    document: DocumentModel
    recipient: RecipientModel


RoutingResult = Union[SendResult, SigningResult, DeclineResult]


def _coerce_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _is_blank(f: FieldModel, value: Any) -> bool:
    """An unchecked checkbox counts as missing, as does an empty or absent value."""
    if value is None or value is False:
        return True
    if isinstance(value, str):
        if not value:
            return True
        return f.field_type == "checkbox" and value.lower() == "false"
    return False


class RoutingEngine:
    """The document state machine on top of the recipient ledger."""

    def __init__(
        self,
        settings: QuillSettings,
        audit_service: AuditService,
        document_service: DocumentService,
        blob_store: BlobStore,
        notifier: Notifier | None = None,
        renderer: Renderer | None = None,
    ):
        self.settings = settings
        self.audit = audit_service
        self.documents = document_service
        self.blobs = blob_store
        self.notifier = notifier
        self.renderer = renderer

    # ── Operator side ──

    async def send(
        self,
        session: AsyncSession,
        organization_id: str,
        document_id: str,
        sender_name: str | None = None,
        sender_email: str | None = None,
        context: ActorContext | None = None,
    ) -> SendResult:
        """Activate the first addressable recipients and move the document to sent.

        ``sender_name``/``sender_email`` are organization defaults used only
        when the document carries none.
        """
        doc = await self.documents.get_document(
            session, organization_id, document_id, for_update=True,
        )
        if doc.status != states.DRAFT:
            raise DocumentStateError(f"Cannot send a {doc.status} document")

        recipients = await self.documents.get_recipients(session, doc.id, for_update=True)
        if not recipients:
            raise ValidationFailedError("Add at least one recipient before sending")
        if doc.routing_mode == states.SEQUENTIAL:
            orders = [r.signing_order for r in recipients]
            if len(set(orders)) != len(orders):
                raise ValidationFailedError(
                    "Sequential routing requires a distinct signing_order per recipient"
                )

        now = utcnow()
        doc.sent_at = now
        doc.expires_at = now + timedelta(days=doc.expiration_days)
        doc.sender_name = doc.sender_name or sender_name
        doc.sender_email = doc.sender_email or sender_email
        doc.status = states.SENT

        result = SendResult(document=doc)
        for index, recipient in enumerate(recipients):
            if doc.routing_mode == states.PARALLEL or index == 0:
                result.activations.append(
                    await self._activate(session, doc, recipient, context)
                )
            else:
                recipient.routing_status = states.LOCKED
                recipient.token_hash = None
                recipient.token_expires_at = None
        await session.flush()

        logger.info(
            "Document sent",
            extra={"document_id": doc.id, "event_type": audit_events.SENT},
        )
        return result

    async def remind(
        self,
        session: AsyncSession,
        organization_id: str,
        document_id: str,
        context: ActorContext | None = None,
    ) -> SendResult:
        """Re-mint tokens for every active, unresolved recipient.

        The previous token of each reminded recipient stops working.
        """
        doc = await self.documents.get_document(
            session, organization_id, document_id, for_update=True,
        )
        if effective_status(doc) not in states.ROUTABLE_STATUSES:
            raise DocumentStateError("Reminders can only be sent for documents awaiting signatures")

        result = SendResult(document=doc, reminder=True)
        for recipient in await self.documents.get_recipients(session, doc.id, for_update=True):
            if (
                recipient.routing_status == states.ACTIVE
                and recipient.status not in states.RESOLVED_RECIPIENT_STATUSES
            ):
                result.activations.append(await self._activate(
                    session, doc, recipient, context,
                    event_type=audit_events.REMINDER_SENT,
                    description="Signature reminder sent",
                ))

        reminded = [a.recipient.id for a in result.activations]
        if reminded:
            await session.execute(
                update(ReminderModel)
                .where(
                    ReminderModel.recipient_id.in_(reminded),
                    ReminderModel.status == states.REMINDER_PENDING,
                )
                .values(status=states.REMINDER_SENT, sent_at=utcnow())
            )
        return result

    # ── Signing-access gate ──

    async def _open(
        self, session: AsyncSession, raw_token: str,
    ) -> tuple[RecipientModel, DocumentModel]:
        """Resolve a bearer token to a locked (recipient, document) pair.

        Every failure raises the same SigningLinkInvalidError.
        """
        if not raw_token:
            raise SigningLinkInvalidError()
        token_hash = hash_token(raw_token)

        row = (await session.execute(
            select(RecipientModel.id, RecipientModel.document_id)
            .where(RecipientModel.token_hash == token_hash)
        )).first()
        if row is None:
            raise SigningLinkInvalidError()

        # Lock order is document then recipient, same as the operator paths.
        doc = (await session.execute(
            select(DocumentModel)
            .where(DocumentModel.id == row.document_id)
            .with_for_update()
        )).scalar_one_or_none()
        recipient = (await session.execute(
            select(RecipientModel)
            .where(RecipientModel.id == row.id, RecipientModel.token_hash == token_hash)
            .with_for_update()
        )).scalar_one_or_none()
        if doc is None or recipient is None:
            raise SigningLinkInvalidError()

        now = utcnow()
        token_expires_at = as_utc(recipient.token_expires_at)
        if token_expires_at is not None and now >= token_expires_at:
            raise SigningLinkInvalidError()
        doc_expires_at = as_utc(doc.expires_at)
        if doc_expires_at is not None and now >= doc_expires_at:
            raise SigningLinkInvalidError()
        if doc.status not in states.ROUTABLE_STATUSES:
            raise SigningLinkInvalidError()
        if recipient.status in states.RESOLVED_RECIPIENT_STATUSES:
            raise SigningLinkInvalidError()
        if doc.routing_mode == states.SEQUENTIAL and recipient.routing_status != states.ACTIVE:
            raise SigningLinkInvalidError()
        return recipient, doc

    async def open_document(self, session: AsyncSession, raw_token: str) -> DocumentModel:
        """Gate only, for file downloads."""
        _recipient, doc = await self._open(session, raw_token)
        return doc

    # ── Signer side ──

    async def view(
        self, session: AsyncSession, raw_token: str, context: ActorContext | None = None,
    ) -> SigningView:
        recipient, doc = await self._open(session, raw_token)
        context = context or ActorContext()

        if recipient.status in (states.PENDING, states.SENT):
            recipient.status = states.VIEWED
            recipient.viewed_at = utcnow()
            recipient.ip_address = context.ip_address
            recipient.user_agent = context.user_agent
            await session.flush()
            await self.audit.record_event(
                session, doc.id, audit_events.VIEWED,
                description="Recipient viewed document",
                recipient_id=recipient.id,
                context=context,
            )

        fields = visible_fields(await self.documents.get_fields(session, doc.id), recipient.id)
        return SigningView(document=doc, recipient=recipient, fields=fields)

    async def verify_identity(
        self, session: AsyncSession, raw_token: str, context: ActorContext | None = None,
    ) -> RecipientModel:
        """Placeholder identity step: stamps the recipient as verified."""
        recipient, doc = await self._open(session, raw_token)
        recipient.identity_verified_at = utcnow()
        await session.flush()
        await self.audit.record_event(
            session, doc.id, audit_events.IDENTITY_VERIFIED,
            description=f"Identity verified ({recipient.identity_method})",
            recipient_id=recipient.id,
            context=context,
        )
        return recipient

    def check_payload_size(self, values: list[dict[str, Any]]) -> None:
        limit = self.settings.max_field_value_chars
        for item in values:
            value = _coerce_value(item.get("value"))
            if value is not None and len(value) > limit:
                raise PayloadTooLargeError()

    async def submit(
        self,
        session: AsyncSession,
        raw_token: str,
        values: list[dict[str, Any]],
        context: ActorContext | None = None,
    ) -> SigningResult:
        """Record a recipient's signature and roll the document forward.

        ``values`` is a list of ``{"id": field_id, "value": ...}`` entries.
        Ids outside the recipient's visible fields are ignored.
        """
        self.check_payload_size(values)
        recipient, doc = await self._open(session, raw_token)
        context = context or ActorContext()

        raw_values = {
            str(item.get("id")): item.get("value")
            for item in values
            if item.get("id") is not None
        }
        submitted = {key: _coerce_value(value) for key, value in raw_values.items()}
        visible = visible_fields(await self.documents.get_fields(session, doc.id), recipient.id)

        for f in visible:
            if f.locked and f.value:
                continue
            if f.is_required and _is_blank(f, raw_values.get(f.id)):
                raise MissingRequiredFieldsError()
        for f in visible:
            value = submitted.get(f.id)
            if f.field_type in states.IMAGE_FIELD_TYPES and value:
                if decode_image_value(value) is None:
                    raise InvalidSignatureDataError()

        for f in visible:
            if f.id in submitted and not f.locked:
                f.value = submitted[f.id] if submitted[f.id] is not None else ""
        await session.flush()

        now = utcnow()
        claimed = await session.execute(
            update(RecipientModel)
            .where(
                RecipientModel.id == recipient.id,
                RecipientModel.status.notin_(states.RESOLVED_RECIPIENT_STATUSES),
            )
            .values(
                status=states.SIGNED,
                signed_at=now,
                ip_address=context.ip_address,
                user_agent=context.user_agent,
                token_hash=None,
                routing_status=states.LOCKED,
            )
        )
        if claimed.rowcount != 1:
            raise SigningLinkInvalidError()

        await self.audit.record_event(
            session, doc.id, audit_events.SIGNED,
            description="Recipient signed document",
            recipient_id=recipient.id,
            context=context,
        )

        result = SigningResult(document=doc, recipient=recipient)
        recipients = await self.documents.get_recipients(session, doc.id)

        if doc.routing_mode == states.SEQUENTIAL:
            upcoming = next(
                (r for r in recipients if r.status not in states.RESOLVED_RECIPIENT_STATUSES),
                None,
            )
            if upcoming is not None and upcoming.routing_status != states.ACTIVE:
                result.activations.append(await self._activate(session, doc, upcoming, context))

        unsigned = (await session.execute(
            select(func.count(RecipientModel.id)).where(
                RecipientModel.document_id == doc.id,
                RecipientModel.status != states.SIGNED,
            )
        )).scalar() or 0

        if unsigned == 0:
            completed = await session.execute(
                update(DocumentModel)
                .where(
                    DocumentModel.id == doc.id,
                    DocumentModel.status.in_(states.ROUTABLE_STATUSES),
                )
                .values(status=states.COMPLETED, completed_at=now)
            )
            # A prior completion leaves rowcount at 0 and nothing fires twice.
            result.completed = completed.rowcount == 1
            if result.completed:
                await self.audit.record_event(
                    session, doc.id, audit_events.COMPLETED,
                    description="All recipients signed",
                )
                logger.info(
                    "Document completed",
                    extra={"document_id": doc.id, "event_type": audit_events.COMPLETED},
                )
        elif doc.status == states.SENT:
            doc.status = states.IN_PROGRESS
            await session.flush()

        result.recipients = recipients
        return result

    async def decline(
        self,
        session: AsyncSession,
        raw_token: str,
        reason: str | None = None,
        context: ActorContext | None = None,
    ) -> DeclineResult:
        """One decline voids the whole document."""
        recipient, doc = await self._open(session, raw_token)
        context = context or ActorContext()
        reason = (reason or "").strip() or None

        claimed = await session.execute(
            update(RecipientModel)
            .where(
                RecipientModel.id == recipient.id,
                RecipientModel.status.notin_(states.RESOLVED_RECIPIENT_STATUSES),
            )
            .values(
                status=states.DECLINED,
                declined_at=utcnow(),
                decline_reason=reason,
                ip_address=context.ip_address,
                user_agent=context.user_agent,
                token_hash=None,
                routing_status=states.LOCKED,
            )
        )
        if claimed.rowcount != 1:
            raise SigningLinkInvalidError()

        doc.status = states.CANCELLED
        await session.flush()
        await self.audit.record_event(
            session, doc.id, audit_events.DECLINED,
            description=reason or "Recipient declined to sign",
            recipient_id=recipient.id,
            context=context,
        )
        return DeclineResult(document=doc, recipient=recipient)

    # ── After commit ──

    async def after_commit(self, db: DatabaseManager, result: RoutingResult) -> None:
        """Notifications and rendering for a committed transition."""
        doc = result.document

        if isinstance(result, SendResult):
            for activation in result.activations:
                message = self._request_message(doc, activation)
                if result.reminder:
                    await self._notify("send_signature_reminder", message)
                else:
                    await self._notify("send_signature_request", message)

        elif isinstance(result, SigningResult):
            signer = result.recipient
            if doc.sender_email:
                await self._notify("send_signature_completed", SignatureMessage(
                    to_email=doc.sender_email,
                    to_name=doc.sender_name,
                    document_title=doc.title,
                    signer_name=signer.name or signer.email,
                ))
            for activation in result.activations:
                await self._notify(
                    "send_signature_request", self._request_message(doc, activation),
                )
            if result.completed:
                await self.render_completed(db, doc.id)
                audience = [(doc.sender_email, doc.sender_name)] if doc.sender_email else []
                audience += [(r.email, r.name) for r in result.recipients]
                for email, name in audience:
                    await self._notify("send_document_completed", SignatureMessage(
                        to_email=email, to_name=name, document_title=doc.title,
                    ))

        elif isinstance(result, DeclineResult):
            if doc.sender_email:
                recipient = result.recipient
                await self._notify("send_signature_declined", SignatureMessage(
                    to_email=doc.sender_email,
                    to_name=doc.sender_name,
                    document_title=doc.title,
                    signer_name=recipient.name or recipient.email,
                    reason=recipient.decline_reason,
                ))

    async def render_completed(self, db: DatabaseManager, document_id: str) -> None:
        """Render the signed PDF of a completed document and record where it lives.

        The document stays completed whatever happens here.
        """
        if self.renderer is None:
            logger.info("No renderer configured; skipping signed file for %s", document_id)
            return

        async with db.get_session() as session:
            doc = await session.get(DocumentModel, document_id)
            if doc is None or doc.status != states.COMPLETED or doc.signed_file_url:
                return
            source = FileLocation.from_columns(doc.file_location, doc.file_url)
            fields = await self.documents.get_fields(session, doc.id)
            recipients = await self.documents.get_recipients(session, doc.id)
            events = await self.audit.get_events(session, doc.id)
            request = RenderRequest(
                title=doc.title,
                source_pdf=b"",
                document_number=doc.document_number,
                original_sha256=doc.original_sha256,
                fields=[
                    RenderField(
                        field_type=f.field_type, page_number=f.page_number,
                        x_position=f.x_position, y_position=f.y_position,
                        width=f.width, height=f.height,
                        value=f.value, font_size=f.font_size,
                    )
                    for f in fields
                ],
                signers=[
                    RenderSigner(name=r.name, email=r.email, signed_at=as_utc(r.signed_at))
                    for r in recipients
                ],
                audit=[
                    RenderAuditLine(
                        event_type=e.event_type,
                        created_at=as_utc(e.created_at),
                        description=e.description,
                    )
                    for e in events
                ],
            )
            organization_id = doc.organization_id

        try:
            if source is None:
                raise FileNotFoundError("Document has no source file")
            request.source_pdf = await self.blobs.read(source)
            pdf = await self.renderer.render(request)
            location = await self.blobs.save(pdf, f"signatures/{organization_id}/{document_id}")
        except Exception as exc:
            logger.exception(
                "Rendering signed file failed",
                extra={"document_id": document_id, "event_type": audit_events.RENDER_FAILED},
            )
            async with db.get_session() as session:
                await self.audit.record_event(
                    session, document_id, audit_events.RENDER_FAILED,
                    description=f"Signed file could not be rendered: {exc}",
                )
            return

        checksum = compute_checksum(pdf)
        async with db.get_session() as session:
            doc = (await session.execute(
                select(DocumentModel).where(DocumentModel.id == document_id).with_for_update()
            )).scalar_one()
            doc.signed_file_url = location.url
            doc.signed_file_location = location.kind
            doc.signed_sha256 = checksum
            await session.flush()
            await self.audit.record_event(
                session, document_id, audit_events.COMPLETED_FILE_RENDERED,
                description="Signed file stored",
                metadata={"sha256": checksum, "size": len(pdf)},
            )

    # ── Internal helpers ──

    async def _activate(
        self,
        session: AsyncSession,
        doc: DocumentModel,
        recipient: RecipientModel,
        context: ActorContext | None,
        event_type: str = audit_events.SENT,
        description: str = "Signature request sent",
    ) -> Activation:
        """Give the recipient a fresh token; any previous token stops matching."""
        token, token_hash = issue()
        recipient.token_hash = token_hash
        recipient.token_expires_at = doc.expires_at
        recipient.routing_status = states.ACTIVE
        if recipient.status == states.PENDING:
            recipient.status = states.SENT
        recipient.sent_at = utcnow()
        await session.flush()

        await self.audit.record_event(
            session, doc.id, event_type,
            description=description,
            recipient_id=recipient.id,
            context=context,
        )
        return Activation(recipient=recipient, token=token)

    def _request_message(self, doc: DocumentModel, activation: Activation) -> SignatureMessage:
        recipient = activation.recipient
        expires_at = as_utc(doc.expires_at)
        return SignatureMessage(
            to_email=recipient.email,
            to_name=recipient.name,
            document_title=doc.title,
            sender_name=doc.sender_name,
            message=doc.message,
            signing_url=f"{self.settings.signing_url_base}/{activation.token}",
            expires_at=expires_at.isoformat() if expires_at else None,
        )

    async def _notify(self, method: str, message: SignatureMessage) -> None:
        if self.notifier is None:
            return
        try:
            await getattr(self.notifier, method)(message)
        except Exception:
            logger.exception("Notification %s to %s failed", method, message.to_email)

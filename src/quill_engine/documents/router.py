"""Document API router — organization-scoped operator surface."""

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile
from fastapi.responses import Response

from quill_engine.audit.schemas import AuditEventResponse
from quill_engine.audit.service import ActorContext
from quill_engine.common.config import get_settings
from quill_engine.common.exceptions import ValidationFailedError
from quill_engine.common.schemas import PaginatedResponse
from quill_engine.common.security import OrganizationContext, require_organization
from quill_engine.documents.schemas import (
    DocumentCreate,
    DocumentDetail,
    DocumentResponse,
    DocumentUpdate,
    DocumentVersionResponse,
    EmailPreviewRequest,
    EmailPreviewResponse,
    FieldResponse,
    FieldsReplace,
    RecipientResponse,
    RecipientsReplace,
    RemindResponse,
    ReminderResponse,
    ReminderSchedule,
    SignedFileResponse,
)
from quill_engine.notifications.email import SignatureMessage, build_signature_request

router = APIRouter(prefix="/documents", tags=["documents"])


def _get_service():
    from quill_engine.deps import get_document_service
    return get_document_service()


def _get_engine():
    from quill_engine.deps import get_routing_engine
    return get_routing_engine()


def _get_db():
    from quill_engine.deps import get_db
    return get_db()


def _operator(request: Request, org: OrganizationContext) -> ActorContext:
    return ActorContext.from_request(request, actor=f"org:{org.slug}")


# ── Email preview ──

@router.post("/email/preview", response_model=EmailPreviewResponse)
async def preview_request_email(
    body: EmailPreviewRequest,
    org: OrganizationContext = Depends(require_organization),
):
    """Render the signature request email without sending it."""
    if not body.message.strip():
        raise ValidationFailedError("Message content is required")
    settings = get_settings()
    content = build_signature_request(
        SignatureMessage(
            to_email=body.recipient_email or "recipient@example.com",
            to_name=body.recipient_name,
            document_title=body.document_title or "Untitled document",
            sender_name=body.sender_name or org.sender_name,
            message=body.message.strip(),
            signing_url=f"{settings.signing_url_base}/preview",
            expires_at=body.expires_at.isoformat() if body.expires_at else None,
        ),
        default_sender=settings.email_from_name,
    )
    return EmailPreviewResponse(subject=content.subject, body=content.body)


# ── Documents ──

@router.post("", response_model=DocumentResponse, status_code=201)
async def create_document(
    body: DocumentCreate, request: Request,
    org: OrganizationContext = Depends(require_organization),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        doc = await svc.create_document(
            session, org.organization_id,
            context=_operator(request, org),
            **body.model_dump(),
        )
        return DocumentResponse.from_model(doc)


@router.get("", response_model=PaginatedResponse)
async def list_documents(
    status: str | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    org: OrganizationContext = Depends(require_organization),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        docs, total = await svc.list_documents(
            session, org.organization_id, status=status, page=page, page_size=page_size,
        )
        return PaginatedResponse(
            items=[DocumentResponse.from_model(d).model_dump(mode="json") for d in docs],
            total=total,
            page=page,
            page_size=page_size,
            pages=(total + page_size - 1) // page_size,
        )


@router.get("/{document_id}", response_model=DocumentDetail)
async def get_document(
    document_id: str, org: OrganizationContext = Depends(require_organization),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        details = await svc.get_details(session, org.organization_id, document_id)
        return DocumentDetail(
            document=DocumentResponse.from_model(details.document),
            recipients=[RecipientResponse.model_validate(r) for r in details.recipients],
            fields=[FieldResponse.model_validate(f) for f in details.fields],
            audit=[AuditEventResponse.model_validate(e) for e in details.audit],
        )


@router.patch("/{document_id}", response_model=DocumentResponse)
async def update_document(
    document_id: str, body: DocumentUpdate,
    org: OrganizationContext = Depends(require_organization),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        doc = await svc.update_document(
            session, org.organization_id, document_id, **body.model_dump(exclude_none=True),
        )
        return DocumentResponse.from_model(doc)


@router.delete("/{document_id}", status_code=204)
async def delete_document(
    document_id: str, org: OrganizationContext = Depends(require_organization),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        locations = await svc.delete_document(session, org.organization_id, document_id)
    await svc.discard_blobs(locations)


# ── Files ──

@router.post("/{document_id}/file", response_model=DocumentResponse)
async def upload_document_file(
    document_id: str, request: Request,
    file: UploadFile = File(...),
    org: OrganizationContext = Depends(require_organization),
):
    svc = _get_service()
    db = _get_db()
    data = await file.read()
    async with db.get_session() as session:
        doc = await svc.attach_file(
            session, org.organization_id, document_id,
            data, file.filename, file.content_type,
            context=_operator(request, org),
        )
        return DocumentResponse.from_model(doc)


@router.delete("/{document_id}/file", response_model=DocumentResponse)
async def remove_document_file(
    document_id: str, request: Request,
    org: OrganizationContext = Depends(require_organization),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        doc, stale = await svc.remove_file(
            session, org.organization_id, document_id, context=_operator(request, org),
        )
        response = DocumentResponse.from_model(doc)
    await svc.discard_blobs(stale)
    return response


@router.get("/{document_id}/file")
async def stream_document_file(
    document_id: str, org: OrganizationContext = Depends(require_organization),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        doc = await svc.get_document(session, org.organization_id, document_id)
    data = await svc.read_source_file(doc)
    return Response(
        content=data,
        media_type=doc.file_type or "application/pdf",
        headers={"Content-Disposition": f'inline; filename="{doc.file_name or "document.pdf"}"'},
    )


@router.get("/{document_id}/versions", response_model=list[DocumentVersionResponse])
async def list_document_versions(
    document_id: str, org: OrganizationContext = Depends(require_organization),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        versions = await svc.list_versions(session, org.organization_id, document_id)
        return [DocumentVersionResponse.model_validate(v) for v in versions]


@router.get("/{document_id}/signed-file", response_model=SignedFileResponse)
async def get_signed_file(
    document_id: str, request: Request,
    org: OrganizationContext = Depends(require_organization),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        doc = await svc.get_document(session, org.organization_id, document_id)
        location, file_name = svc.signed_file(doc)
        url = (
            str(request.url_for("stream_signed_file", document_id=document_id))
            if location.is_local else location.url
        )
        return SignedFileResponse(url=url, file_name=file_name, sha256=doc.signed_sha256)


@router.get("/{document_id}/signed-file/content", name="stream_signed_file")
async def stream_signed_file(
    document_id: str, org: OrganizationContext = Depends(require_organization),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        doc = await svc.get_document(session, org.organization_id, document_id)
        location, file_name = svc.signed_file(doc)
    data = await svc.read_signed_file(location)
    return Response(
        content=data,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'},
    )


# ── Recipients & fields ──

@router.put("/{document_id}/recipients", response_model=list[RecipientResponse])
async def replace_recipients(
    document_id: str, body: RecipientsReplace,
    org: OrganizationContext = Depends(require_organization),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        recipients = await svc.replace_recipients(
            session, org.organization_id, document_id,
            [r.model_dump() for r in body.recipients],
        )
        return [RecipientResponse.model_validate(r) for r in recipients]


@router.put("/{document_id}/fields", response_model=list[FieldResponse])
async def replace_fields(
    document_id: str, body: FieldsReplace,
    org: OrganizationContext = Depends(require_organization),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        fields = await svc.replace_fields(
            session, org.organization_id, document_id,
            [f.model_dump() for f in body.fields],
        )
        return [FieldResponse.model_validate(f) for f in fields]


# ── Lifecycle ──

@router.post("/{document_id}/send", response_model=DocumentResponse)
async def send_document(
    document_id: str, request: Request,
    org: OrganizationContext = Depends(require_organization),
):
    engine = _get_engine()
    db = _get_db()
    async with db.get_session() as session:
        result = await engine.send(
            session, org.organization_id, document_id,
            sender_name=org.sender_name,
            sender_email=org.sender_email,
            context=_operator(request, org),
        )
    await engine.after_commit(db, result)
    return DocumentResponse.from_model(result.document)


@router.post("/{document_id}/cancel", response_model=DocumentResponse)
async def cancel_document(
    document_id: str, request: Request,
    org: OrganizationContext = Depends(require_organization),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        doc = await svc.cancel_document(
            session, org.organization_id, document_id, context=_operator(request, org),
        )
        return DocumentResponse.from_model(doc)


@router.post("/{document_id}/reminders", response_model=list[ReminderResponse], status_code=201)
async def schedule_reminders(
    document_id: str, request: Request,
    body: ReminderSchedule | None = None,
    org: OrganizationContext = Depends(require_organization),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        reminders = await svc.schedule_reminders(
            session, org.organization_id, document_id,
            days=body.days if body else None,
            context=_operator(request, org),
        )
        return [ReminderResponse.model_validate(r) for r in reminders]


@router.get("/{document_id}/reminders", response_model=list[ReminderResponse])
async def list_reminders(
    document_id: str, org: OrganizationContext = Depends(require_organization),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        reminders = await svc.list_reminders(session, org.organization_id, document_id)
        return [ReminderResponse.model_validate(r) for r in reminders]


@router.post("/{document_id}/remind", response_model=RemindResponse)
async def remind_now(
    document_id: str, request: Request,
    org: OrganizationContext = Depends(require_organization),
):
    engine = _get_engine()
    db = _get_db()
    async with db.get_session() as session:
        result = await engine.remind(
            session, org.organization_id, document_id, context=_operator(request, org),
        )
    await engine.after_commit(db, result)
    return RemindResponse(reminded=len(result.activations))

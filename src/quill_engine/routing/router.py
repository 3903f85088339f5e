"""Public signing router — token-scoped, no API key."""

from fastapi import APIRouter, Request
from fastapi.responses import Response

from quill_engine.audit.service import ActorContext
from quill_engine.common.exceptions import FileNotReadyError
from quill_engine.common.sanitize import sanitize_text
from quill_engine.routing.schemas import (
    DeclineRequest,
    DeclineResponse,
    DownloadResponse,
    PublicDocumentView,
    PublicFieldView,
    PublicRecipientView,
    SigningViewResponse,
    SubmitRequest,
    SubmitResponse,
    VerifyResponse,
)
from quill_engine.storage.blob_store import FileLocation

router = APIRouter(prefix="/public/sign", tags=["signing"])


def _get_engine():
    from quill_engine.deps import get_routing_engine
    return get_routing_engine()


def _get_documents():
    from quill_engine.deps import get_document_service
    return get_document_service()


def _get_db():
    from quill_engine.deps import get_db
    return get_db()


def _signer(request: Request) -> ActorContext:
    return ActorContext.from_request(request, actor="signer")


@router.get("/{token}", response_model=SigningViewResponse)
async def resolve_signing_link(token: str, request: Request):
    engine = _get_engine()
    db = _get_db()
    async with db.get_session() as session:
        view = await engine.view(session, token, _signer(request))
        doc, recipient = view.document, view.recipient
        return SigningViewResponse(
            document=PublicDocumentView(
                id=doc.id,
                title=sanitize_text(doc.title),
                description=sanitize_text(doc.description),
                message=sanitize_text(doc.message),
                status=doc.status,
                routing_mode=doc.routing_mode,
                expires_at=doc.expires_at,
                sender_name=sanitize_text(doc.sender_name),
                file_name=doc.file_name,
                file_type=doc.file_type,
                has_file=bool(doc.file_url),
            ),
            recipient=PublicRecipientView(
                id=recipient.id,
                name=recipient.name,
                email=recipient.email,
                status=recipient.status,
                routing_status=recipient.routing_status,
                identity_method=recipient.identity_method,
                identity_verified_at=recipient.identity_verified_at,
            ),
            fields=[
                PublicFieldView(
                    id=f.id,
                    recipient_id=f.recipient_id,
                    field_type=f.field_type,
                    page_number=f.page_number,
                    x_position=f.x_position,
                    y_position=f.y_position,
                    width=f.width,
                    height=f.height,
                    label=sanitize_text(f.label),
                    is_required=f.is_required,
                    value=f.value,
                    font_size=f.font_size,
                    font_family=f.font_family,
                    text_align=f.text_align,
                    locked=f.locked,
                )
                for f in view.fields
            ],
        )


@router.post("/{token}", response_model=SubmitResponse)
async def submit_signature(token: str, body: SubmitRequest, request: Request):
    engine = _get_engine()
    db = _get_db()
    values = [f.model_dump() for f in body.fields]
    async with db.get_session() as session:
        result = await engine.submit(session, token, values, _signer(request))
    await engine.after_commit(db, result)
    return SubmitResponse(
        document_status=result.document.status,
        completed=result.completed,
    )


@router.post("/{token}/decline", response_model=DeclineResponse)
async def decline_signature(token: str, request: Request, body: DeclineRequest | None = None):
    engine = _get_engine()
    db = _get_db()
    reason = body.reason if body else None
    async with db.get_session() as session:
        result = await engine.decline(session, token, reason, _signer(request))
    await engine.after_commit(db, result)
    return DeclineResponse()


@router.post("/{token}/verify", response_model=VerifyResponse)
async def verify_identity(token: str, request: Request):
    engine = _get_engine()
    db = _get_db()
    async with db.get_session() as session:
        recipient = await engine.verify_identity(session, token, _signer(request))
        return VerifyResponse(verified=True, verified_at=recipient.identity_verified_at)


@router.get("/{token}/download", response_model=DownloadResponse)
async def download_link(token: str, request: Request):
    engine = _get_engine()
    db = _get_db()
    async with db.get_session() as session:
        doc = await engine.open_document(session, token)
        location = FileLocation.from_columns(doc.file_location, doc.file_url)
        if location is None:
            raise FileNotReadyError("Document has no file")
        if location.is_local:
            url = str(request.url_for("stream_signing_file", token=token))
        else:
            url = location.url
        return DownloadResponse(url=url, file_name=doc.file_name or "document.pdf")


@router.get("/{token}/file", name="stream_signing_file")
async def stream_signing_file(token: str):
    engine = _get_engine()
    documents = _get_documents()
    db = _get_db()
    async with db.get_session() as session:
        doc = await engine.open_document(session, token)
    data = await documents.read_source_file(doc)
    return Response(
        content=data,
        media_type=doc.file_type or "application/pdf",
        headers={"Content-Disposition": f'inline; filename="{doc.file_name or "document.pdf"}"'},
    )

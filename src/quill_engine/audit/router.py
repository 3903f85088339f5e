"""Audit chain API router."""

from fastapi import APIRouter, Depends, Query

from quill_engine.audit.schemas import AuditChainVerification, AuditEventResponse
from quill_engine.common.security import OrganizationContext, require_organization

router = APIRouter(prefix="/documents", tags=["audit"])


def _get_service():
    from quill_engine.deps import get_audit_service
    return get_audit_service()


def _get_documents():
    from quill_engine.deps import get_document_service
    return get_document_service()


def _get_db():
    from quill_engine.deps import get_db
    return get_db()


@router.get("/{document_id}/audit", response_model=list[AuditEventResponse])
async def get_audit_events(
    document_id: str,
    event_type: str | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    org: OrganizationContext = Depends(require_organization),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        doc = await _get_documents().get_document(session, org.organization_id, document_id)
        events = await svc.get_events(
            session, doc.id, event_type=event_type, limit=limit, offset=offset,
        )
        return [AuditEventResponse.model_validate(e) for e in events]


@router.get("/{document_id}/audit/verify", response_model=AuditChainVerification)
async def verify_audit_chain(
    document_id: str, org: OrganizationContext = Depends(require_organization),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        doc = await _get_documents().get_document(session, org.organization_id, document_id)
        result = await svc.verify_chain(session, doc.id)
        return AuditChainVerification(**result)

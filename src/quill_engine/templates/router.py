"""Template API router — organization-scoped."""

from fastapi import APIRouter, Depends, File, Request, UploadFile

from quill_engine.audit.service import ActorContext
from quill_engine.common.security import OrganizationContext, require_organization
from quill_engine.documents.schemas import DocumentResponse
from quill_engine.templates.schemas import (
    TemplateCreate,
    TemplateDetail,
    TemplateFieldResponse,
    TemplateFieldsReplace,
    TemplateInstantiate,
    TemplateResponse,
    TemplateRoleResponse,
    TemplateRolesReplace,
    TemplateUpdate,
)

router = APIRouter(prefix="/templates", tags=["templates"])


def _get_service():
    from quill_engine.deps import get_template_service
    return get_template_service()


def _get_documents():
    from quill_engine.deps import get_document_service
    return get_document_service()


def _get_db():
    from quill_engine.deps import get_db
    return get_db()


@router.post("", response_model=TemplateResponse, status_code=201)
async def create_template(
    body: TemplateCreate, org: OrganizationContext = Depends(require_organization),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        template = await svc.create_template(
            session, org.organization_id,
            title=body.title, description=body.description, message=body.message,
        )
        return TemplateResponse.model_validate(template)


@router.get("", response_model=list[TemplateResponse])
async def list_templates(org: OrganizationContext = Depends(require_organization)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        templates = await svc.list_templates(session, org.organization_id)
        return [TemplateResponse.model_validate(t) for t in templates]


@router.get("/{template_id}", response_model=TemplateDetail)
async def get_template(
    template_id: str, org: OrganizationContext = Depends(require_organization),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        details = await svc.get_details(session, org.organization_id, template_id)
        return TemplateDetail(
            template=TemplateResponse.model_validate(details.template),
            roles=[TemplateRoleResponse.model_validate(r) for r in details.roles],
            fields=[TemplateFieldResponse.model_validate(f) for f in details.fields],
        )


@router.patch("/{template_id}", response_model=TemplateResponse)
async def update_template(
    template_id: str, body: TemplateUpdate,
    org: OrganizationContext = Depends(require_organization),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        template = await svc.update_template(
            session, org.organization_id, template_id, **body.model_dump(exclude_none=True),
        )
        return TemplateResponse.model_validate(template)


@router.delete("/{template_id}", status_code=204)
async def delete_template(
    template_id: str, org: OrganizationContext = Depends(require_organization),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        location = await svc.delete_template(session, org.organization_id, template_id)
    if location is not None:
        await _get_documents().discard_blobs([location])


@router.post("/{template_id}/file", response_model=TemplateResponse)
async def upload_template_file(
    template_id: str,
    file: UploadFile = File(...),
    org: OrganizationContext = Depends(require_organization),
):
    svc = _get_service()
    db = _get_db()
    data = await file.read()
    async with db.get_session() as session:
        template, stale = await svc.upload_file(
            session, org.organization_id, template_id,
            data, file.filename, file.content_type,
        )
        response = TemplateResponse.model_validate(template)
    await _get_documents().discard_blobs(stale)
    return response


@router.put("/{template_id}/roles", response_model=list[TemplateRoleResponse])
async def replace_template_roles(
    template_id: str, body: TemplateRolesReplace,
    org: OrganizationContext = Depends(require_organization),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        roles = await svc.replace_roles(
            session, org.organization_id, template_id,
            [r.model_dump() for r in body.roles],
        )
        return [TemplateRoleResponse.model_validate(r) for r in roles]


@router.put("/{template_id}/fields", response_model=list[TemplateFieldResponse])
async def replace_template_fields(
    template_id: str, body: TemplateFieldsReplace,
    org: OrganizationContext = Depends(require_organization),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        fields = await svc.replace_fields(
            session, org.organization_id, template_id,
            [f.model_dump() for f in body.fields],
        )
        return [TemplateFieldResponse.model_validate(f) for f in fields]


@router.post("/{template_id}/instantiate", response_model=DocumentResponse, status_code=201)
async def instantiate_template(
    template_id: str, body: TemplateInstantiate, request: Request,
    org: OrganizationContext = Depends(require_organization),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        doc = await svc.instantiate(
            session, org.organization_id, template_id,
            recipients=[r.model_dump() for r in body.recipients],
            title=body.title,
            description=body.description,
            message=body.message,
            routing_mode=body.routing_mode,
            expiration_days=body.expiration_days,
            context=ActorContext.from_request(request, actor=f"org:{org.slug}"),
        )
        return DocumentResponse.from_model(doc)

"""Organization API router — requires super-admin authentication."""

from fastapi import APIRouter, Depends, HTTPException

from quill_engine.common.exceptions import OrganizationNotFoundError
from quill_engine.common.security import require_super_admin
from quill_engine.organizations.schemas import (
    OrganizationCreate,
    OrganizationCreateResponse,
    OrganizationResponse,
    OrganizationUpdate,
)

router = APIRouter(prefix="/organizations", tags=["organizations"])


def _get_service():
    from quill_engine.deps import get_organization_service
    return get_organization_service()


def _get_db():
    from quill_engine.deps import get_db
    return get_db()


@router.post("", response_model=OrganizationCreateResponse, status_code=201)
async def create_organization(body: OrganizationCreate, _=Depends(require_super_admin)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        existing = await svc.get_by_slug(session, body.slug)
        if existing is not None:
            raise HTTPException(status_code=409, detail="Slug already in use")
        org, raw_key = await svc.create_organization(
            session,
            name=body.name,
            slug=body.slug,
            sender_name=body.sender_name,
            sender_email=body.sender_email,
        )
        return OrganizationCreateResponse(
            id=org.id,
            name=org.name,
            slug=org.slug,
            sender_name=org.sender_name,
            sender_email=org.sender_email,
            created_at=org.created_at,
            api_key=raw_key,
        )


@router.get("", response_model=list[OrganizationResponse])
async def list_organizations(_=Depends(require_super_admin)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        orgs = await svc.list_organizations(session)
        return [OrganizationResponse.model_validate(o) for o in orgs]


@router.get("/{organization_id}", response_model=OrganizationResponse)
async def get_organization(organization_id: str, _=Depends(require_super_admin)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        org = await svc.get_by_id(session, organization_id)
        if org is None:
            raise OrganizationNotFoundError()
        return OrganizationResponse.model_validate(org)


@router.patch("/{organization_id}", response_model=OrganizationResponse)
async def update_organization(
    organization_id: str, body: OrganizationUpdate, _=Depends(require_super_admin)
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        org = await svc.update_organization(
            session, organization_id, **body.model_dump(exclude_none=True)
        )
        if org is None:
            raise OrganizationNotFoundError()
        return OrganizationResponse.model_validate(org)


@router.delete("/{organization_id}", status_code=204)
async def delete_organization(organization_id: str, _=Depends(require_super_admin)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        deleted = await svc.delete_organization(session, organization_id)
        if not deleted:
            raise OrganizationNotFoundError()

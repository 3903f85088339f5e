"""API key authentication dependencies."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException


@dataclass
class OrganizationContext:
    """Resolved organization available to operator request handlers."""
    organization_id: str
    slug: str
    sender_name: Optional[str] = None
    sender_email: Optional[str] = None


async def require_super_admin(
    x_quill_api_key: str = Header(..., alias="X-Quill-Api-Key"),
) -> str:
    """FastAPI dependency that validates the super-admin key from header."""
    from quill_engine.common.config import get_settings

    settings = get_settings()
    if x_quill_api_key != settings.super_admin_key:
        raise HTTPException(status_code=403, detail="Invalid super-admin key")
    return x_quill_api_key


async def require_organization(
    x_quill_api_key: str = Header(..., alias="X-Quill-Api-Key"),
) -> OrganizationContext:
    """FastAPI dependency resolving the calling organization from its API key."""
    from quill_engine.deps import get_db, get_organization_service

    svc = get_organization_service()
    db = get_db()
    async with db.get_session() as session:
        org = await svc.resolve_by_raw_key(session, x_quill_api_key)
        if org is None:
            raise HTTPException(status_code=403, detail="Invalid API key")
        return OrganizationContext(
            organization_id=org.id,
            slug=org.slug,
            sender_name=org.sender_name,
            sender_email=org.sender_email,
        )

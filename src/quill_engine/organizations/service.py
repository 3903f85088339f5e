"""Organization CRUD service."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from quill_engine.organizations.models import OrganizationModel
from quill_engine.tokens.codec import hash_token, issue_api_key


class OrganizationService:
    """Organization management operations."""

    async def create_organization(
        self,
        session: AsyncSession,
        name: str,
        slug: str,
        sender_name: str | None = None,
        sender_email: str | None = None,
    ) -> tuple[OrganizationModel, str]:
        """Create an organization and its API key. Returns (model, raw_api_key)."""
        raw_api_key, key_hash = issue_api_key()
        org = OrganizationModel(
            name=name,
            slug=slug,
            api_key_hash=key_hash,
            sender_name=sender_name,
            sender_email=sender_email,
        )
        session.add(org)
        await session.flush()
        return org, raw_api_key

    async def get_by_id(
        self, session: AsyncSession, organization_id: str
    ) -> OrganizationModel | None:
        return await session.get(OrganizationModel, organization_id)

    async def get_by_slug(
        self, session: AsyncSession, slug: str
    ) -> OrganizationModel | None:
        result = await session.execute(
            select(OrganizationModel).where(OrganizationModel.slug == slug)
        )
        return result.scalar_one_or_none()

    async def list_organizations(self, session: AsyncSession) -> list[OrganizationModel]:
        result = await session.execute(
            select(OrganizationModel).order_by(OrganizationModel.created_at.asc())
        )
        return list(result.scalars().all())

    async def update_organization(
        self, session: AsyncSession, organization_id: str, **updates
    ) -> OrganizationModel | None:
        org = await self.get_by_id(session, organization_id)
        if org is None:
            return None
        for field in ("name", "sender_name", "sender_email"):
            if field in updates and updates[field] is not None:
                setattr(org, field, updates[field])
        await session.flush()
        return org

    async def delete_organization(
        self, session: AsyncSession, organization_id: str
    ) -> bool:
        org = await self.get_by_id(session, organization_id)
        if org is None:
            return False
        await session.delete(org)
        await session.flush()
        return True

    async def resolve_by_raw_key(
        self, session: AsyncSession, raw_api_key: str
    ) -> OrganizationModel | None:
        """Resolve an organization from a raw API key by hashing and looking up."""
        result = await session.execute(
            select(OrganizationModel).where(
                OrganizationModel.api_key_hash == hash_token(raw_api_key)
            )
        )
        return result.scalar_one_or_none()

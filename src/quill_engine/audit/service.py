"""Audit service — record, verify, and query the per-document event chain."""

import hashlib
import hmac as hmac_mod
import json
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from quill_engine.common.config import QuillSettings
from quill_engine.audit.models import AuditEventModel

# Event vocabulary
CREATED = "created"
FILE_UPLOADED = "file_uploaded"
FILE_REMOVED = "file_removed"
SENT = "sent"
VIEWED = "viewed"
IDENTITY_VERIFIED = "identity_verified"
SIGNED = "signed"
DECLINED = "declined"
COMPLETED = "completed"
COMPLETED_FILE_RENDERED = "completed_file_rendered"
RENDER_FAILED = "render_failed"
CANCELLED = "cancelled"
REMINDER_SCHEDULED = "reminder_scheduled"
REMINDER_SENT = "reminder_sent"


@dataclass
class ActorContext:
    """Where a request came from, captured on every signer-side event."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    actor: str = "system"

    @classmethod
    def from_request(cls, request, actor: str = "system") -> "ActorContext":
        return cls(
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
            actor=actor,
        )


class AuditService:
    """Append-only, hash-chained event log per document."""

    def __init__(self, settings: QuillSettings):
        self.settings = settings

    # ── Write ──

    async def record_event(
        self,
        session: AsyncSession,
        document_id: str,
        event_type: str,
        description: str | None = None,
        recipient_id: str | None = None,
        context: ActorContext | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AuditEventModel:
        """Append a new event to the document's audit chain.

        Runs inside the caller's transaction, so the event commits or rolls
        back together with the state change it describes.
        """
        context = context or ActorContext()
        metadata = metadata or {}

        head = await self.get_chain_head(session, document_id)
        prev_hash = head.event_hash if head else None
        sequence = head.sequence + 1 if head else 1

        event_hash = self._compute_event_hash(
            {
                "sequence": sequence,
                "event_type": event_type,
                "recipient_id": recipient_id,
                "actor": context.actor,
                "description": description,
                "ip_address": context.ip_address,
                "user_agent": context.user_agent,
                "metadata": metadata,
            },
            prev_hash,
        )

        event = AuditEventModel(
            document_id=document_id,
            recipient_id=recipient_id,
            sequence=sequence,
            event_type=event_type,
            actor=context.actor,
            description=description,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            metadata_=metadata,
            prev_hash=prev_hash,
            event_hash=event_hash,
            signature=self._sign(event_hash),
        )
        session.add(event)
        await session.flush()
        return event

    # ── Read ──

    async def get_chain_head(
        self, session: AsyncSession, document_id: str,
    ) -> AuditEventModel | None:
        """Return the most recent event for a document."""
        result = await session.execute(
            select(AuditEventModel)
            .where(AuditEventModel.document_id == document_id)
            .order_by(AuditEventModel.sequence.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_events(
        self,
        session: AsyncSession,
        document_id: str,
        event_type: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[AuditEventModel]:
        """Events oldest first, optionally filtered by type."""
        query = (
            select(AuditEventModel)
            .where(AuditEventModel.document_id == document_id)
        )
        if event_type:
            query = query.where(AuditEventModel.event_type == event_type)
        query = query.order_by(AuditEventModel.sequence.asc()).offset(offset)
        if limit is not None:
            query = query.limit(limit)
        result = await session.execute(query)
        return list(result.scalars().all())

    # ── Verify ──

    async def verify_chain(
        self, session: AsyncSession, document_id: str,
    ) -> dict[str, Any]:
        """Walk the chain oldest→newest, verify linkage, hashes and signatures."""
        events = await self.get_events(session, document_id)

        prev_hash = None
        for checked, event in enumerate(events):
            expected_hash = self._compute_event_hash(
                {
                    "sequence": event.sequence,
                    "event_type": event.event_type,
                    "recipient_id": event.recipient_id,
                    "actor": event.actor,
                    "description": event.description,
                    "ip_address": event.ip_address,
                    "user_agent": event.user_agent,
                    "metadata": event.metadata_ or {},
                },
                event.prev_hash,
            )
            if (
                event.prev_hash != prev_hash
                or event.event_hash != expected_hash
                or not self._verify_signature(event.event_hash, event.signature)
            ):
                return {"valid": False, "events_checked": checked, "break_at": event.id}
            prev_hash = event.event_hash

        return {"valid": True, "events_checked": len(events), "break_at": None}

    # ── Internal helpers ──

    @staticmethod
    def _compute_event_hash(fields: dict[str, Any], prev_hash: str | None) -> str:
        """SHA-256 of canonical JSON of the event fields."""
        canonical = json.dumps(
            {**fields, "prev_hash": prev_hash},
            sort_keys=True,
            separators=(",", ":"),
            default=str,
        )
        return hashlib.sha256(canonical.encode()).hexdigest()

    def _sign(self, event_hash: str) -> str:
        """HMAC-SHA256 of event_hash with the current HMAC key."""
        return hmac_mod.new(
            self.settings.current_hmac_key.encode(),
            event_hash.encode(),
            hashlib.sha256,
        ).hexdigest()

    def _verify_signature(self, event_hash: str, signature: str) -> bool:
        """Verify signature against all keys in the keyring (supports rotated keys)."""
        for _version, key in self.settings.hmac_keyring.items():
            expected = hmac_mod.new(
                key.encode(), event_hash.encode(), hashlib.sha256,
            ).hexdigest()
            if hmac_mod.compare_digest(expected, signature):
                return True
        return False

"""Tests for the per-document audit chain."""

import json

import pytest
from sqlalchemy import update

from quill_engine.audit import service as audit_events
from quill_engine.audit.models import AuditEventModel
from quill_engine.audit.service import ActorContext, AuditService
from quill_engine.common.config import QuillSettings


HMAC_KEY = "test-hmac-key-for-unit-tests"


async def _document_with_events(stack):
    org = await stack.organization()
    doc_id = await stack.draft(org, [{"email": "a@example.com"}])
    await stack.send(org, doc_id)
    return doc_id


class TestAuditChain:
    async def test_events_are_sequenced_and_linked(self, stack):
        doc_id = await _document_with_events(stack)
        events = await stack.events(doc_id)
        assert [e.sequence for e in events] == [1, 2]
        assert events[0].prev_hash is None
        assert events[1].prev_hash == events[0].event_hash

    async def test_verify_intact_chain(self, stack):
        doc_id = await _document_with_events(stack)
        async with stack.db.get_session() as session:
            result = await stack.audit.verify_chain(session, doc_id)
        assert result == {"valid": True, "events_checked": 2, "break_at": None}

    async def test_tampered_description_breaks_chain(self, stack):
        doc_id = await _document_with_events(stack)
        events = await stack.events(doc_id)
        async with stack.db.get_session() as session:
            await session.execute(
                update(AuditEventModel)
                .where(AuditEventModel.id == events[1].id)
                .values(description="Nothing happened")
            )
        async with stack.db.get_session() as session:
            result = await stack.audit.verify_chain(session, doc_id)
        assert result["valid"] is False
        assert result["break_at"] == events[1].id
        assert result["events_checked"] == 1

    async def test_actor_context_is_recorded(self, stack):
        org = await stack.organization()
        doc_id = await stack.draft(org, [])
        context = ActorContext(ip_address="10.0.0.1", user_agent="pytest", actor="org:acme")
        async with stack.db.get_session() as session:
            event = await stack.audit.record_event(
                session, doc_id, audit_events.CANCELLED,
                context=context, metadata={"why": "test"},
            )
        assert event.actor == "org:acme"
        assert event.ip_address == "10.0.0.1"
        assert event.metadata_ == {"why": "test"}

    async def test_filter_by_event_type(self, stack):
        doc_id = await _document_with_events(stack)
        async with stack.db.get_session() as session:
            created = await stack.audit.get_events(session, doc_id, event_type=audit_events.CREATED)
        assert len(created) == 1


class TestKeyRotation:
    async def test_rotated_key_still_verifies_old_events(self, stack):
        doc_id = await _document_with_events(stack)
        rotated = AuditService(QuillSettings(
            hmac_keys=json.dumps({"0": HMAC_KEY, "1": "new-key"}),
        ))
        async with stack.db.get_session() as session:
            await rotated.record_event(session, doc_id, audit_events.CANCELLED)
        async with stack.db.get_session() as session:
            result = await rotated.verify_chain(session, doc_id)
        assert result["valid"] is True
        assert result["events_checked"] == 3

    async def test_unknown_key_fails_verification(self, stack):
        doc_id = await _document_with_events(stack)
        stranger = AuditService(QuillSettings(hmac_key="someone-else"))
        async with stack.db.get_session() as session:
            result = await stranger.verify_chain(session, doc_id)
        assert result["valid"] is False

    def test_bad_keyring_json(self):
        settings = QuillSettings(hmac_keys="not json")
        with pytest.raises(ValueError):
            settings.hmac_keyring

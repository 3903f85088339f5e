"""Tests for email delivery of signature workflow messages."""

import json

import httpx

from quill_engine.notifications.email import EmailNotifier, SignatureMessage


def _message(**overrides) -> SignatureMessage:
    defaults = {
        "to_email": "alice@example.com",
        "to_name": "Alice",
        "document_title": "Lease",
        "sender_name": "Acme",
        "signing_url": "https://sign.test/sign/abc",
        "message": "Please review section 4",
    }
    defaults.update(overrides)
    return SignatureMessage(**defaults)


class TestEmailNotifier:
    async def test_no_provider_logs_only(self):
        notifier = EmailNotifier()
        assert await notifier.send_signature_request(_message()) is False

    async def test_sendgrid_request(self):
        captured = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(202)

        notifier = EmailNotifier(
            provider="sendgrid", api_key="sg-key",
            transport=httpx.MockTransport(handler),
        )
        assert await notifier.send_signature_request(_message()) is True

        (request,) = captured
        assert request.url.host == "api.sendgrid.com"
        assert request.headers["Authorization"] == "Bearer sg-key"
        payload = json.loads(request.content)
        assert payload["personalizations"][0]["to"][0]["email"] == "alice@example.com"
        body = payload["content"][0]["value"]
        assert "https://sign.test/sign/abc" in body
        assert "Please review section 4" in body

    async def test_resend_declined_includes_reason(self):
        captured = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(json.loads(request.content))
            return httpx.Response(200, json={"id": "1"})

        notifier = EmailNotifier(
            provider="resend", api_key="re-key",
            transport=httpx.MockTransport(handler),
        )
        ok = await notifier.send_signature_declined(
            _message(to_email="owner@acme.test", signer_name="Bob", reason="Wrong price"),
        )
        assert ok is True
        assert captured[0]["to"] == ["owner@acme.test"]
        assert "Wrong price" in captured[0]["text"]

    async def test_provider_error_returns_false(self):
        notifier = EmailNotifier(
            provider="sendgrid",
            transport=httpx.MockTransport(lambda request: httpx.Response(500, text="down")),
        )
        assert await notifier.send_document_completed(_message()) is False

    async def test_transport_failure_returns_false(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        notifier = EmailNotifier(provider="resend", transport=httpx.MockTransport(handler))
        assert await notifier.send_signature_reminder(_message()) is False

    async def test_request_body_matches_builder(self):
        captured = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(json.loads(request.content))
            return httpx.Response(200, json={"id": "1"})

        notifier = EmailNotifier(
            provider="resend", api_key="re-key", from_name="Quill Signing",
            transport=httpx.MockTransport(handler),
        )
        msg = _message(sender_name=None, expires_at="2026-12-01T00:00:00+00:00")
        content = notifier.build_signature_request(msg)

        assert content.subject == "Please sign: Lease"
        assert "Quill Signing has requested your signature" in content.body
        assert "This link expires on 2026-12-01T00:00:00+00:00." in content.body

        assert await notifier.send_signature_request(msg) is True
        (payload,) = captured
        assert payload["subject"] == content.subject
        assert payload["text"] == content.body

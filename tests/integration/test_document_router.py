"""Integration tests for the operator document API."""

import pytest


@pytest.fixture
async def document(client, org_headers):
    resp = await client.post(
        "/documents",
        json={"title": "Lease", "description": "Unit 4B", "sender_email": "owner@acme.test"},
        headers=org_headers,
    )
    assert resp.status_code == 201
    return resp.json()


class TestDocumentRouter:
    async def test_requires_org_key(self, client):
        resp = await client.get("/documents", headers={"X-Quill-Api-Key": "nope"})
        assert resp.status_code == 403

    async def test_create_and_get(self, client, org_headers, document):
        assert document["status"] == "draft"
        assert document["routing_mode"] == "parallel"
        assert document["has_signed_file"] is False

        resp = await client.get(f"/documents/{document['id']}", headers=org_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["document"]["title"] == "Lease"
        assert data["recipients"] == []
        assert [e["event_type"] for e in data["audit"]] == ["created"]

    async def test_create_blank_title(self, client, org_headers):
        resp = await client.post("/documents", json={"title": "  "}, headers=org_headers)
        assert resp.status_code == 400
        assert resp.json()["code"] == "INVALID_INPUT"

    async def test_create_bad_routing_mode(self, client, org_headers):
        resp = await client.post(
            "/documents", json={"title": "X", "routing_mode": "random"}, headers=org_headers,
        )
        assert resp.status_code == 422

    async def test_list_paginates(self, client, org_headers):
        for i in range(3):
            await client.post("/documents", json={"title": f"Doc {i}"}, headers=org_headers)
        resp = await client.get("/documents?page_size=2", headers=org_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 3
        assert data["pages"] == 2
        assert len(data["items"]) == 2

    async def test_other_organization_cannot_see_document(
        self, client, super_admin_headers, document,
    ):
        resp = await client.post(
            "/organizations", json={"name": "Globex", "slug": "globex"},
            headers=super_admin_headers,
        )
        other = {"X-Quill-Api-Key": resp.json()["api_key"]}
        resp = await client.get(f"/documents/{document['id']}", headers=other)
        assert resp.status_code == 404

    async def test_patch(self, client, org_headers, document):
        resp = await client.patch(
            f"/documents/{document['id']}",
            json={"message": "Please sign by Friday"},
            headers=org_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["message"] == "Please sign by Friday"
        assert resp.json()["description"] == "Unit 4B"

    async def test_upload_and_stream_file(self, client, org_headers, document, pdf_bytes):
        doc_id = document["id"]
        resp = await client.post(
            f"/documents/{doc_id}/file",
            files={"file": ("lease.pdf", pdf_bytes, "application/pdf")},
            headers=org_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["file_name"] == "lease.pdf"
        assert resp.json()["file_size"] == len(pdf_bytes)

        resp = await client.get(f"/documents/{doc_id}/file", headers=org_headers)
        assert resp.status_code == 200
        assert resp.content == pdf_bytes

        resp = await client.get(f"/documents/{doc_id}/versions", headers=org_headers)
        assert [v["version_number"] for v in resp.json()] == [1]

    async def test_upload_rejects_non_pdf(self, client, org_headers, document):
        resp = await client.post(
            f"/documents/{document['id']}/file",
            files={"file": ("notes.txt", b"hello", "text/plain")},
            headers=org_headers,
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "UPLOAD_ERROR"

    async def test_send_without_recipients(self, client, org_headers, document):
        resp = await client.post(f"/documents/{document['id']}/send", headers=org_headers)
        assert resp.status_code == 400

    async def test_send_and_cancel(self, client, org_headers, document, notifier):
        doc_id = document["id"]
        await client.put(
            f"/documents/{doc_id}/recipients",
            json={"recipients": [{"name": "Alice", "email": "alice@example.com"}]},
            headers=org_headers,
        )
        resp = await client.post(f"/documents/{doc_id}/send", headers=org_headers)
        assert resp.status_code == 200
        assert resp.json()["status"] == "sent"
        assert resp.json()["expires_at"] is not None
        assert len(notifier.of_kind("request")) == 1

        resp = await client.put(
            f"/documents/{doc_id}/recipients",
            json={"recipients": [{"email": "bob@example.com"}]},
            headers=org_headers,
        )
        assert resp.status_code == 409

        resp = await client.post(f"/documents/{doc_id}/cancel", headers=org_headers)
        assert resp.status_code == 200
        assert resp.json()["status"] == "cancelled"

        resp = await client.post(f"/documents/{doc_id}/cancel", headers=org_headers)
        assert resp.status_code == 409
        assert resp.json()["code"] == "INVALID_STATE"

    async def test_reminders(self, client, org_headers, document, notifier):
        doc_id = document["id"]
        await client.put(
            f"/documents/{doc_id}/recipients",
            json={"recipients": [{"email": "alice@example.com"}]},
            headers=org_headers,
        )
        await client.post(f"/documents/{doc_id}/send", headers=org_headers)

        resp = await client.post(
            f"/documents/{doc_id}/reminders", json={"days": 3}, headers=org_headers,
        )
        assert resp.status_code == 201
        assert len(resp.json()) == 1

        resp = await client.post(f"/documents/{doc_id}/remind", headers=org_headers)
        assert resp.status_code == 200
        assert resp.json() == {"reminded": 1}
        assert len(notifier.of_kind("reminder")) == 1

        resp = await client.get(f"/documents/{doc_id}/reminders", headers=org_headers)
        assert [r["status"] for r in resp.json()] == ["sent"]

    async def test_delete_draft(self, client, org_headers, document):
        resp = await client.delete(f"/documents/{document['id']}", headers=org_headers)
        assert resp.status_code == 204
        resp = await client.get(f"/documents/{document['id']}", headers=org_headers)
        assert resp.status_code == 404

    async def test_signed_file_not_ready(self, client, org_headers, document):
        resp = await client.get(f"/documents/{document['id']}/signed-file", headers=org_headers)
        assert resp.status_code == 404
        assert resp.json()["code"] == "NOT_READY"

    async def test_fields_validation(self, client, org_headers, document):
        resp = await client.put(
            f"/documents/{document['id']}/fields",
            json={"fields": [{
                "field_type": "signature", "x_position": 90, "y_position": 10,
                "width": 20, "height": 5, "recipient_id": "someone-else",
            }]},
            headers=org_headers,
        )
        assert resp.status_code == 400

    async def test_email_preview(self, client, org_headers):
        resp = await client.post(
            "/documents/email/preview",
            json={
                "message": "  Please sign by Friday  ",
                "document_title": "Lease",
                "recipient_name": "Alice",
            },
            headers=org_headers,
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["subject"] == "Please sign: Lease"
        assert "Hi Alice" in data["body"]
        assert "Acme Legal has requested your signature" in data["body"]
        assert "Please sign by Friday\n" in data["body"]
        assert "/sign/preview" in data["body"]

    async def test_email_preview_requires_message(self, client, org_headers):
        resp = await client.post(
            "/documents/email/preview", json={"message": "   "}, headers=org_headers,
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "INVALID_INPUT"

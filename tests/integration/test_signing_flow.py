"""End-to-end signing through the public signing links."""

import pytest


def _token(message) -> str:
    return message.signing_url.rsplit("/", 1)[-1]


@pytest.fixture
async def sent_document(client, org_headers, notifier, pdf_bytes):
    """A two-signer parallel document with one signature field each."""
    resp = await client.post(
        "/documents",
        json={"title": "<b>Lease</b>", "message": "Sign <i>here</i>"},
        headers=org_headers,
    )
    doc_id = resp.json()["id"]
    await client.post(
        f"/documents/{doc_id}/file",
        files={"file": ("lease.pdf", pdf_bytes, "application/pdf")},
        headers=org_headers,
    )
    await client.put(
        f"/documents/{doc_id}/recipients",
        json={"recipients": [
            {"name": "Alice", "email": "alice@example.com", "role_name": "tenant"},
            {"name": "Bob", "email": "bob@example.com", "role_name": "landlord"},
        ]},
        headers=org_headers,
    )
    geometry = {"x_position": 10, "y_position": 80, "width": 25, "height": 5}
    await client.put(
        f"/documents/{doc_id}/fields",
        json={"fields": [
            {"field_type": "text", "role_name": "tenant", **geometry},
            {"field_type": "text", "role_name": "landlord", **geometry},
        ]},
        headers=org_headers,
    )
    resp = await client.post(f"/documents/{doc_id}/send", headers=org_headers)
    assert resp.status_code == 200
    tokens = {m.to_email: _token(m) for m in notifier.of_kind("request")}
    return doc_id, tokens


class TestSigningFlow:
    async def test_view_is_scoped_and_sanitized(self, client, sent_document):
        _doc_id, tokens = sent_document
        resp = await client.get(f"/public/sign/{tokens['alice@example.com']}")
        assert resp.status_code == 200
        data = resp.json()
        assert data["document"]["title"] == "&lt;b&gt;Lease&lt;/b&gt;"
        assert data["document"]["message"] == "Sign &lt;i&gt;here&lt;/i&gt;"
        assert data["document"]["sender_name"] == "Acme Legal"
        assert data["recipient"]["email"] == "alice@example.com"
        assert data["recipient"]["status"] == "viewed"
        assert len(data["fields"]) == 1

    async def test_unknown_token(self, client):
        resp = await client.get("/public/sign/" + "f" * 64)
        assert resp.status_code == 404
        assert resp.json()["code"] == "INVALID_LINK"

    async def test_download_original(self, client, sent_document, pdf_bytes):
        _doc_id, tokens = sent_document
        resp = await client.get(f"/public/sign/{tokens['bob@example.com']}/download")
        assert resp.status_code == 200
        assert resp.json()["file_name"] == "lease.pdf"

        resp = await client.get(resp.json()["url"])
        assert resp.status_code == 200
        assert resp.content == pdf_bytes

    async def test_full_signing_completes_document(
        self, client, org_headers, sent_document, renderer, notifier,
    ):
        doc_id, tokens = sent_document
        for email, expected_status, completed in (
            ("alice@example.com", "in_progress", False),
            ("bob@example.com", "completed", True),
        ):
            token = tokens[email]
            view = (await client.get(f"/public/sign/{token}")).json()
            resp = await client.post(
                f"/public/sign/{token}",
                json={"fields": [{"id": view["fields"][0]["id"], "value": email}]},
            )
            assert resp.status_code == 200
            assert resp.json() == {
                "status": "signed", "document_status": expected_status, "completed": completed,
            }

        assert renderer.calls == 1
        assert len(notifier.of_kind("completed")) == 3

        resp = await client.get(f"/documents/{doc_id}", headers=org_headers)
        assert resp.json()["document"]["status"] == "completed"
        assert resp.json()["document"]["has_signed_file"] is True

        resp = await client.get(f"/documents/{doc_id}/signed-file", headers=org_headers)
        assert resp.status_code == 200
        assert resp.json()["file_name"] == "lease-signed.pdf"
        resp = await client.get(resp.json()["url"], headers=org_headers)
        assert resp.status_code == 200
        assert resp.content.startswith(b"%PDF")

        resp = await client.get(f"/documents/{doc_id}/audit/verify", headers=org_headers)
        assert resp.json()["valid"] is True

        resp = await client.get(
            f"/documents/{doc_id}/audit?event_type=signed", headers=org_headers,
        )
        assert len(resp.json()) == 2

    async def test_missing_signed_blob_answers_not_ready(
        self, client, org_headers, sent_document, tmp_path,
    ):
        doc_id, tokens = sent_document
        for token in tokens.values():
            view = (await client.get(f"/public/sign/{token}")).json()
            await client.post(
                f"/public/sign/{token}",
                json={"fields": [{"id": view["fields"][0]["id"], "value": "signed"}]},
            )

        for path in (tmp_path / "blobs" / "signatures").rglob("*.pdf"):
            path.unlink()

        resp = await client.get(f"/documents/{doc_id}/signed-file/content", headers=org_headers)
        assert resp.status_code == 404
        assert resp.json()["code"] == "NOT_READY"

    async def test_used_link_stops_working(self, client, sent_document):
        _doc_id, tokens = sent_document
        token = tokens["alice@example.com"]
        view = (await client.get(f"/public/sign/{token}")).json()
        body = {"fields": [{"id": view["fields"][0]["id"], "value": "Alice"}]}
        assert (await client.post(f"/public/sign/{token}", json=body)).status_code == 200

        resp = await client.post(f"/public/sign/{token}", json=body)
        assert resp.status_code == 404
        assert (await client.get(f"/public/sign/{token}")).status_code == 404

    async def test_missing_required_field(self, client, sent_document):
        _doc_id, tokens = sent_document
        resp = await client.post(f"/public/sign/{tokens['alice@example.com']}", json={"fields": []})
        assert resp.status_code == 400
        assert resp.json()["code"] == "MISSING_REQUIRED_FIELDS"

    async def test_decline_voids_for_everyone(self, client, org_headers, sent_document, notifier):
        doc_id, tokens = sent_document
        resp = await client.post(
            f"/public/sign/{tokens['bob@example.com']}/decline",
            json={"reason": "Rent too high"},
        )
        assert resp.status_code == 200
        assert resp.json() == {"status": "declined"}

        resp = await client.get(f"/documents/{doc_id}", headers=org_headers)
        assert resp.json()["document"]["status"] == "cancelled"
        assert (await client.get(f"/public/sign/{tokens['alice@example.com']}")).status_code == 404
        (declined,) = notifier.of_kind("declined")
        assert declined.to_email == "legal@acme.test"

    async def test_decline_without_body(self, client, sent_document):
        _doc_id, tokens = sent_document
        resp = await client.post(f"/public/sign/{tokens['alice@example.com']}/decline")
        assert resp.status_code == 200

    async def test_verify_identity(self, client, sent_document):
        _doc_id, tokens = sent_document
        resp = await client.post(f"/public/sign/{tokens['alice@example.com']}/verify")
        assert resp.status_code == 200
        assert resp.json()["verified"] is True
        assert resp.json()["verified_at"] is not None


class TestSequentialFlow:
    async def test_second_signer_waits_for_first(self, client, org_headers, notifier):
        resp = await client.post(
            "/documents", json={"title": "Deed", "routing_mode": "sequential"},
            headers=org_headers,
        )
        doc_id = resp.json()["id"]
        await client.put(
            f"/documents/{doc_id}/recipients",
            json={"recipients": [
                {"email": "second@example.com", "signing_order": 2},
                {"email": "first@example.com", "signing_order": 1},
            ]},
            headers=org_headers,
        )
        await client.post(f"/documents/{doc_id}/send", headers=org_headers)
        (first,) = notifier.of_kind("request")
        assert first.to_email == "first@example.com"

        resp = await client.post(f"/public/sign/{_token(first)}", json={"fields": []})
        assert resp.json()["document_status"] == "in_progress"

        requests = notifier.of_kind("request")
        assert [m.to_email for m in requests] == ["first@example.com", "second@example.com"]
        resp = await client.post(f"/public/sign/{_token(requests[1])}", json={"fields": []})
        assert resp.json()["completed"] is True

"""Integration tests for the template API."""


class TestTemplateRouter:
    async def test_template_to_document(self, client, org_headers, pdf_bytes):
        resp = await client.post(
            "/templates", json={"title": "NDA", "message": "Standard NDA"}, headers=org_headers,
        )
        assert resp.status_code == 201
        template_id = resp.json()["id"]

        resp = await client.post(
            f"/templates/{template_id}/file",
            files={"file": ("nda.pdf", pdf_bytes, "application/pdf")},
            headers=org_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["file_name"] == "nda.pdf"

        resp = await client.put(
            f"/templates/{template_id}/roles",
            json={"roles": [{"role_name": "party", "signing_order": 1}]},
            headers=org_headers,
        )
        assert resp.status_code == 200

        resp = await client.put(
            f"/templates/{template_id}/fields",
            json={"fields": [{
                "field_type": "signature", "role_name": "party",
                "x_position": 10, "y_position": 80, "width": 30, "height": 6,
            }]},
            headers=org_headers,
        )
        assert resp.status_code == 200

        resp = await client.get(f"/templates/{template_id}", headers=org_headers)
        detail = resp.json()
        assert len(detail["roles"]) == 1
        assert len(detail["fields"]) == 1

        resp = await client.post(
            f"/templates/{template_id}/instantiate",
            json={"recipients": [{"email": "party@example.com", "role_name": "party"}]},
            headers=org_headers,
        )
        assert resp.status_code == 201
        doc = resp.json()
        assert doc["title"] == "NDA"
        assert doc["template_id"] == template_id
        assert doc["file_name"] == "nda.pdf"

        resp = await client.get(f"/documents/{doc['id']}", headers=org_headers)
        (field,) = resp.json()["fields"]
        (recipient,) = resp.json()["recipients"]
        assert field["recipient_id"] == recipient["id"]

    async def test_list_update_delete(self, client, org_headers):
        resp = await client.post("/templates", json={"title": "T"}, headers=org_headers)
        template_id = resp.json()["id"]

        resp = await client.patch(
            f"/templates/{template_id}", json={"title": "Renamed"}, headers=org_headers,
        )
        assert resp.json()["title"] == "Renamed"

        resp = await client.get("/templates", headers=org_headers)
        assert [t["title"] for t in resp.json()] == ["Renamed"]

        resp = await client.delete(f"/templates/{template_id}", headers=org_headers)
        assert resp.status_code == 204
        resp = await client.get(f"/templates/{template_id}", headers=org_headers)
        assert resp.status_code == 404

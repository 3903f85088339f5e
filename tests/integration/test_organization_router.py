"""Integration tests for organization router — super-admin auth required."""


class TestOrganizationRouter:
    async def test_create_requires_auth(self, client):
        resp = await client.post("/organizations", json={"name": "Acme", "slug": "acme"})
        assert resp.status_code == 422  # missing header

    async def test_create_wrong_key(self, client):
        resp = await client.post(
            "/organizations",
            json={"name": "Acme", "slug": "acme"},
            headers={"X-Quill-Api-Key": "wrong-key"},
        )
        assert resp.status_code == 403

    async def test_create_success(self, client, super_admin_headers):
        resp = await client.post(
            "/organizations",
            json={"name": "Acme Corp", "slug": "acme"},
            headers=super_admin_headers,
        )
        assert resp.status_code == 201
        data = resp.json()
        assert data["slug"] == "acme"
        assert data["api_key"].startswith("qk_")

    async def test_duplicate_slug(self, client, super_admin_headers):
        body = {"name": "Acme", "slug": "acme"}
        await client.post("/organizations", json=body, headers=super_admin_headers)
        resp = await client.post("/organizations", json=body, headers=super_admin_headers)
        assert resp.status_code == 409

    async def test_list_and_get(self, client, super_admin_headers):
        created = await client.post(
            "/organizations", json={"name": "A", "slug": "a"}, headers=super_admin_headers,
        )
        resp = await client.get("/organizations", headers=super_admin_headers)
        assert resp.status_code == 200
        assert len(resp.json()) == 1

        org_id = created.json()["id"]
        resp = await client.get(f"/organizations/{org_id}", headers=super_admin_headers)
        assert resp.status_code == 200
        assert "api_key" not in resp.json()

    async def test_get_missing(self, client, super_admin_headers):
        resp = await client.get("/organizations/nope", headers=super_admin_headers)
        assert resp.status_code == 404

    async def test_org_key_is_not_super_admin(self, client, org_headers):
        resp = await client.get("/organizations", headers=org_headers)
        assert resp.status_code == 403

    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

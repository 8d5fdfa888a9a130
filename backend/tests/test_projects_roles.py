"""
Project and role tests.

Verifies that:
- allow_create_project governs whether plain members can create projects
- Project and role counters on the organization follow creations
- Roles are owner-managed and unique per organization
"""

from conftest import add_members, create_org, get_org, register


async def create_project(client, account, org_id, name):
    return await client.post(
        f"/api/v1/organizations/{org_id}/projects", json={"name": name}, headers=account.headers
    )


class TestProjects:

    async def test_member_creates_when_allowed(self, client):
        alice = await register(client, "alice")
        bob = await register(client, "bob")
        org = await create_org(client, alice)
        await add_members(client, alice, org["id"], bob)

        resp = await create_project(client, bob, org["id"], "Sales")
        assert resp.status_code == 201
        project = resp.json()
        assert project["org_id"] == org["id"]
        assert project["user_id"] == bob.id

        assert (await get_org(client, alice, org["id"]))["project_num"] == 1

        resp = await client.get(
            f"/api/v1/organizations/{org['id']}/projects/{project['id']}", headers=alice.headers
        )
        assert resp.status_code == 200
        assert resp.json()["name"] == "Sales"

    async def test_member_blocked_when_disallowed(self, client):
        alice = await register(client, "alice")
        bob = await register(client, "bob")
        org = await create_org(client, alice)
        await add_members(client, alice, org["id"], bob)

        resp = await client.put(
            f"/api/v1/organizations/{org['id']}",
            json={"name": org["name"], "allow_create_project": False},
            headers=alice.headers,
        )
        assert resp.status_code == 200

        resp = await create_project(client, bob, org["id"], "Sales")
        assert resp.status_code == 403
        assert resp.json()["detail"]["code"] == "PROJECT_CREATION_DISABLED"

        # Owners are never blocked, and see the switch as on
        resp = await create_project(client, alice, org["id"], "Sales")
        assert resp.status_code == 201
        listed = await client.get("/api/v1/organizations", headers=alice.headers)
        assert listed.json()[0]["allow_create_project"] is True

    async def test_duplicate_project_name(self, client):
        alice = await register(client, "alice")
        org = await create_org(client, alice)
        assert (await create_project(client, alice, org["id"], "Ops")).status_code == 201

        resp = await create_project(client, alice, org["id"], "Ops")
        assert resp.status_code == 409

    async def test_projects_isolated_between_orgs(self, client):
        alice = await register(client, "alice")
        mallory = await register(client, "mallory")
        org = await create_org(client, alice)
        other = await create_org(client, mallory)
        project = (await create_project(client, alice, org["id"], "Secret")).json()

        resp = await client.get(f"/api/v1/organizations/{org['id']}/projects", headers=mallory.headers)
        assert resp.status_code == 403

        resp = await client.get(
            f"/api/v1/organizations/{other['id']}/projects/{project['id']}", headers=mallory.headers
        )
        assert resp.status_code == 404

        resp = await client.get(f"/api/v1/organizations/{org['id']}/projects", headers=alice.headers)
        assert resp.json()["total"] == 1


class TestRoles:

    async def test_owner_creates_role(self, client):
        alice = await register(client, "alice")
        bob = await register(client, "bob")
        org = await create_org(client, alice)
        await add_members(client, alice, org["id"], bob)

        resp = await client.post(
            f"/api/v1/organizations/{org['id']}/roles",
            json={"name": "analyst", "description": "read dashboards"},
            headers=alice.headers,
        )
        assert resp.status_code == 201
        assert resp.json()["name"] == "analyst"
        assert (await get_org(client, alice, org["id"]))["role_num"] == 1

        resp = await client.get(f"/api/v1/organizations/{org['id']}/roles", headers=bob.headers)
        assert [r["name"] for r in resp.json()] == ["analyst"]

    async def test_role_rules(self, client):
        alice = await register(client, "alice")
        bob = await register(client, "bob")
        org = await create_org(client, alice)
        await add_members(client, alice, org["id"], bob)
        url = f"/api/v1/organizations/{org['id']}/roles"

        assert (await client.post(url, json={"name": "viewer"}, headers=alice.headers)).status_code == 201

        resp = await client.post(url, json={"name": "viewer"}, headers=alice.headers)
        assert resp.status_code == 409
        assert resp.json()["detail"]["code"] == "NAME_TAKEN"

        resp = await client.post(url, json={"name": "editor"}, headers=bob.headers)
        assert resp.status_code == 403
        assert resp.json()["detail"]["code"] == "NOT_OWNER"

    async def test_same_role_name_in_other_org(self, client):
        alice = await register(client, "alice")
        first = await create_org(client, alice)
        second = await create_org(client, alice)

        for org in (first, second):
            resp = await client.post(
                f"/api/v1/organizations/{org['id']}/roles", json={"name": "viewer"}, headers=alice.headers
            )
            assert resp.status_code == 201

"""Tests for scope, point-check and scoped member query endpoints."""

from tests.conftest import headers_for


class TestScopeEndpoint:

    def test_own_scope(self, client, org, make_member, make_grant):
        member = make_member("x@example.com", org["sales"])
        make_grant(member, org["eng"], "admin")
        resp = client.get(f"/api/actors/{member.id}/scope", headers=headers_for(member.id))
        assert resp.status_code == 200
        body = resp.json()
        assert body["accessible_paths"] == ["org.eng", "org.eng.backend", "org.eng.frontend"]
        assert [g["node_path"] for g in body["direct_grants"]] == ["org.eng"]
        assert {n["node_path"] for n in body["inherited_nodes"]} == {"org.eng.backend", "org.eng.frontend"}

    def test_other_actor_scope_needs_reach(self, client, org, make_member, make_grant):
        viewer = make_member("viewer@example.com", org["sales"])
        target = make_member("target@example.com", org["backend"])
        assert client.get(f"/api/actors/{target.id}/scope", headers=headers_for(viewer.id)).status_code == 403

        make_grant(viewer, org["eng"], "read")
        assert client.get(f"/api/actors/{target.id}/scope", headers=headers_for(viewer.id)).status_code == 200

    def test_actor_grants(self, client, system_headers, org, make_member, make_grant):
        member = make_member("x@example.com", org["sales"])
        make_grant(member, org["eng"], "admin")
        resp = client.get(f"/api/actors/{member.id}/grants", headers=system_headers)
        assert [g["node_path"] for g in resp.json()] == ["org.eng"]


class TestAccessCheck:

    def test_denial_is_200_with_reason(self, client, org, make_member, make_grant):
        viewer = make_member("viewer@example.com", org["sales"])
        target = make_member("boss@example.com", org["org"])
        make_grant(viewer, org["eng"], "admin")
        resp = client.get("/api/access/check", params={"user_id": target.id}, headers=headers_for(viewer.id))
        assert resp.status_code == 200
        assert resp.json()["can_access"] is False
        assert resp.json()["reason"]

    def test_node_check(self, client, org, make_member, make_grant):
        viewer = make_member("viewer@example.com", org["sales"])
        make_grant(viewer, org["eng"], "manager")
        resp = client.get("/api/access/check", params={"node_id": org["backend"].id}, headers=headers_for(viewer.id))
        body = resp.json()
        assert body["can_access"] is True
        assert body["access_level"] == "inherited"
        assert body["effective_role"] == "manager"
        assert body["accessible_through"] == ["org.eng"]

    def test_requires_exactly_one_target(self, client, org, system_headers):
        assert client.get("/api/access/check", headers=system_headers).status_code == 400


class TestUserSearch:

    def test_search_within_scope(self, client, org, make_member, make_grant):
        lead = make_member("lead@example.com", org["eng"])
        make_member("dev@example.com", org["backend"])
        make_member("rep@example.com", org["sales"])
        make_grant(lead, org["eng"], "manager")

        resp = client.post(
            "/api/access/users/search", json={"exclude_self": True}, headers=headers_for(lead.id)
        )
        assert resp.status_code == 200
        body = resp.json()
        assert [u["email"] for u in body["users"]] == ["dev@example.com"]
        assert body["users"][0]["access_level"] == "inherited"
        assert body["requestor_context"]["actor_id"] == lead.id

    def test_invalid_filters_return_400(self, client, org, system_headers):
        resp = client.post("/api/access/users/search", json={"levels": [-1]}, headers=system_headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "VALIDATION_ERROR"

    def test_autocomplete(self, client, org, make_member, make_grant):
        lead = make_member("lead@example.com", org["eng"], full_name="Lena Lead")
        make_member("dev@example.com", org["backend"], full_name="Dana Dev")
        make_grant(lead, org["eng"], "manager")
        resp = client.get("/api/access/users/autocomplete", params={"q": "dana"}, headers=headers_for(lead.id))
        assert [i["email"] for i in resp.json()] == ["dev@example.com"]

    def test_autocomplete_short_term(self, client, org, system_headers):
        resp = client.get("/api/access/users/autocomplete", params={"q": "d"}, headers=system_headers)
        assert resp.status_code == 400

    def test_bulk_check(self, client, org, make_member, make_grant):
        lead = make_member("lead@example.com", org["eng"])
        dev = make_member("dev@example.com", org["backend"])
        rep = make_member("rep@example.com", org["sales"])
        make_grant(lead, org["eng"], "manager")
        resp = client.post(
            "/api/access/users/bulk-check",
            json={"user_ids": [dev.id, rep.id]},
            headers=headers_for(lead.id),
        )
        body = resp.json()
        assert body["results"][dev.id]["can_access"] is True
        assert body["results"][rep.id]["can_access"] is False
        assert body["accessible_count"] == 1


class TestMembersAndAudit:

    def test_create_member(self, client, system_headers, org):
        resp = client.post(
            "/api/users",
            json={"email": "New@Example.com", "full_name": "New", "base_node_id": org["eng"].id},
            headers=system_headers,
        )
        assert resp.status_code == 201
        assert resp.json()["email"] == "new@example.com"

    def test_get_member_outside_scope_forbidden(self, client, org, make_member):
        viewer = make_member("viewer@example.com", org["sales"])
        target = make_member("target@example.com", org["eng"])
        assert client.get(f"/api/users/{target.id}", headers=headers_for(viewer.id)).status_code == 403
        assert client.get(f"/api/users/{viewer.id}", headers=headers_for(viewer.id)).status_code == 200

    def test_audit_trail_is_system_only(self, client, system_headers, org):
        assert client.get("/api/audit", headers=headers_for("someone")).status_code == 403
        entries = client.get(
            "/api/audit",
            params={"resource_type": "node", "resource_id": org["eng"].id},
            headers=system_headers,
        ).json()
        assert [e["action"] for e in entries] == ["node.created"]
        assert entries[0]["details"]["path"] == "org.eng"

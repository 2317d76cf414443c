"""Tests for grant endpoints."""

from datetime import timedelta

from orgscope.core.clock import utcnow
from tests.conftest import headers_for


def _grant(client, headers, actor_id, node_id, role="read", **extra):
    payload = {"actor_id": actor_id, "node_id": node_id, "role": role}
    payload.update(extra)
    return client.post("/api/grants", json=payload, headers=headers)


class TestGrantEndpoints:

    def test_create_grant(self, client, system_headers, org, make_member):
        member = make_member("x@example.com", org["sales"])
        resp = _grant(client, system_headers, member.id, org["eng"].id, "admin")
        assert resp.status_code == 201
        body = resp.json()
        assert body["node_path"] == "org.eng"
        assert body["role"] == "admin"
        assert body["inherit_to_descendants"] is True
        assert body["granted_by"] == "system-admin"

    def test_duplicate_grant_returns_409(self, client, system_headers, org, make_member):
        member = make_member("x@example.com", org["sales"])
        _grant(client, system_headers, member.id, org["eng"].id)
        resp = _grant(client, system_headers, member.id, org["eng"].id, "manager")
        assert resp.status_code == 409
        assert resp.json()["error"] == "DUPLICATE_GRANT"

    def test_unknown_role_returns_400(self, client, system_headers, org, make_member):
        member = make_member("x@example.com", org["sales"])
        resp = _grant(client, system_headers, member.id, org["eng"].id, "owner")
        assert resp.status_code == 400

    def test_past_expiry_returns_400(self, client, system_headers, org, make_member):
        member = make_member("x@example.com", org["sales"])
        past = (utcnow() - timedelta(days=1)).isoformat()
        resp = _grant(client, system_headers, member.id, org["eng"].id, valid_until=past)
        assert resp.status_code == 400
        assert resp.json()["error"] == "INVALID_EXPIRY"

    def test_escalation_returns_403(self, client, org, make_member, make_grant):
        manager = make_member("mgr@example.com", org["eng"])
        target = make_member("dev@example.com", org["backend"])
        make_grant(manager, org["eng"], "manager")
        resp = _grant(client, headers_for(manager.id), target.id, org["backend"].id, "admin")
        assert resp.status_code == 403

    def test_revoke_then_revoke_again(self, client, system_headers, org, make_member):
        member = make_member("x@example.com", org["sales"])
        grant_id = _grant(client, system_headers, member.id, org["eng"].id).json()["id"]

        resp = client.delete(f"/api/grants/{grant_id}", headers=system_headers)
        assert resp.status_code == 200
        assert resp.json()["is_active"] is False
        again = client.delete(f"/api/grants/{grant_id}", headers=system_headers)
        assert again.status_code == 422
        assert again.json()["error"] == "ALREADY_INACTIVE"

    def test_update_role(self, client, system_headers, org, make_member):
        member = make_member("x@example.com", org["sales"])
        grant_id = _grant(client, system_headers, member.id, org["eng"].id).json()["id"]
        resp = client.put(f"/api/grants/{grant_id}", json={"role": "manager"}, headers=system_headers)
        assert resp.status_code == 200
        assert resp.json()["role"] == "manager"

    def test_update_rejects_expiry_and_clear_together(self, client, system_headers, org, make_member):
        member = make_member("x@example.com", org["sales"])
        grant_id = _grant(client, system_headers, member.id, org["eng"].id).json()["id"]
        future = (utcnow() + timedelta(days=1)).isoformat()
        resp = client.put(
            f"/api/grants/{grant_id}",
            json={"valid_until": future, "clear_expiry": True},
            headers=system_headers,
        )
        assert resp.status_code == 400

    def test_can_grant_check(self, client, org, make_member, make_grant):
        manager = make_member("mgr@example.com", org["eng"])
        make_grant(manager, org["eng"], "manager")
        resp = client.get(
            "/api/grants/can-grant",
            params={"node_id": org["backend"].id, "role": "admin"},
            headers=headers_for(manager.id),
        )
        assert resp.status_code == 200
        assert resp.json() == {"can_grant": False, "node_path": "org.eng.backend", "requested_role": "admin"}

    def test_node_grants_listing(self, client, system_headers, org, make_member, make_grant):
        member = make_member("x@example.com", org["sales"])
        make_grant(member, org["eng"], "read")
        resp = client.get(f"/api/nodes/{org['eng'].id}/grants", headers=system_headers)
        assert [g["actor_id"] for g in resp.json()] == [member.id]


class TestGrantVisibility:

    def test_single_grant_needs_reach_to_holder(self, client, org, make_member, make_grant):
        holder = make_member("dev@example.com", org["backend"])
        outsider = make_member("rep@example.com", org["sales"])
        grant_id = make_grant(holder, org["backend"], "read").id
        url = f"/api/grants/{grant_id}"

        assert client.get(url, headers=headers_for(outsider.id)).status_code == 403
        assert client.get(url, headers=headers_for(holder.id)).status_code == 200

        make_grant(outsider, org["eng"], "read")
        assert client.get(url, headers=headers_for(outsider.id)).json()["id"] == grant_id

    def test_node_grants_need_reach_to_node(self, client, org, make_member, make_grant):
        holder = make_member("dev@example.com", org["backend"])
        outsider = make_member("rep@example.com", org["sales"])
        make_grant(holder, org["backend"], "read")
        url = f"/api/nodes/{org['backend'].id}/grants"

        resp = client.get(url, headers=headers_for(outsider.id))
        assert resp.status_code == 403
        assert resp.json()["error"] == "INSUFFICIENT_PRIVILEGE"

        make_grant(outsider, org["eng"], "read")
        assert [g["actor_id"] for g in client.get(url, headers=headers_for(outsider.id)).json()] == [holder.id]

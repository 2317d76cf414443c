"""Unit tests for GrantService: grant lifecycle and granter authorization."""

from datetime import timedelta

import pytest

from orgscope.core.auth import ActorContext
from orgscope.core.clock import utcnow
from orgscope.exceptions import (
    ActorNotFoundError,
    AlreadyInactiveError,
    DuplicateGrantError,
    InsufficientPrivilegeError,
    InvalidExpiryError,
    NodeNotFoundError,
    ValidationError,
)
from orgscope.models.grant import Grant
from orgscope.models.user import AuditLog
from orgscope.schemas.grant import GrantCreate, GrantUpdate
from orgscope.services.grant_service import GrantService

MISSING_ID = "00000000-0000-0000-0000-000000000000"


@pytest.fixture()
def people(org, make_member):
    return {
        "alice": make_member("alice@example.com", org["eng"]),
        "bob": make_member("bob@example.com", org["backend"]),
        "carol": make_member("carol@example.com", org["sales"]),
    }


class TestGrant:

    def test_grant_records_node_path_and_granter(self, org, people, make_grant):
        grant = make_grant(people["alice"], org["eng"], "admin")
        assert grant.node_path == "org.eng"
        assert grant.role == "admin"
        assert grant.inherit_to_descendants is True
        assert grant.is_active is True
        assert grant.granted_by == "system-admin"

    def test_second_active_grant_for_pair_rejected(self, org, people, make_grant):
        make_grant(people["alice"], org["eng"], "read")
        with pytest.raises(DuplicateGrantError):
            make_grant(people["alice"], org["eng"], "admin")

    def test_same_actor_different_nodes_allowed(self, org, people, make_grant):
        make_grant(people["alice"], org["eng"], "read")
        grant = make_grant(people["alice"], org["sales"], "read")
        assert grant.node_path == "org.sales"

    def test_past_expiry_rejected(self, org, people, make_grant):
        with pytest.raises(InvalidExpiryError):
            make_grant(people["alice"], org["eng"], "read", valid_until=utcnow() - timedelta(minutes=1))

    def test_expiry_before_start_rejected(self, org, people, make_grant):
        start = utcnow() + timedelta(days=2)
        with pytest.raises(InvalidExpiryError):
            make_grant(
                people["alice"], org["eng"], "read",
                valid_from=start, valid_until=start - timedelta(days=1),
            )

    def test_regrant_after_expiry_retires_old_row(self, org, people, make_grant, db):
        old = make_grant(people["alice"], org["eng"], "read", valid_until=utcnow() + timedelta(days=1))
        old.valid_until = utcnow() - timedelta(seconds=1)
        db.commit()

        new = make_grant(people["alice"], org["eng"], "manager")

        db.expire_all()
        assert db.query(Grant).filter(Grant.id == old.id).one().is_active is False
        assert new.is_active is True

    def test_unknown_node(self, people, db, system):
        data = GrantCreate(actor_id=people["alice"].id, node_id=MISSING_ID, role="read")
        with pytest.raises(NodeNotFoundError):
            GrantService(db).grant(data, system)

    def test_unknown_grantee(self, org, db, system):
        data = GrantCreate(actor_id=MISSING_ID, node_id=org["eng"].id, role="read")
        with pytest.raises(ActorNotFoundError):
            GrantService(db).grant(data, system)

    def test_malformed_ids(self, db, system):
        data = GrantCreate(actor_id="nope", node_id=MISSING_ID, role="read")
        with pytest.raises(ValidationError):
            GrantService(db).grant(data, system)

    def test_grant_is_audited(self, org, people, make_grant, db):
        grant = make_grant(people["alice"], org["eng"], "admin")
        entry = db.query(AuditLog).filter(AuditLog.resource_id == grant.id).one()
        assert entry.action == "grant.created"


class TestGranterAuthorization:

    def test_manager_grants_within_subtree(self, org, people, make_grant, db):
        make_grant(people["alice"], org["eng"], "manager")
        data = GrantCreate(actor_id=people["bob"].id, node_id=org["backend"].id, role="manager")
        grant = GrantService(db).grant(data, ActorContext.for_actor(people["alice"].id))
        assert grant.granted_by == people["alice"].id

    def test_manager_cannot_grant_admin(self, org, people, make_grant, db):
        make_grant(people["alice"], org["eng"], "manager")
        data = GrantCreate(actor_id=people["bob"].id, node_id=org["backend"].id, role="admin")
        with pytest.raises(InsufficientPrivilegeError):
            GrantService(db).grant(data, ActorContext.for_actor(people["alice"].id))

    def test_reader_cannot_grant(self, org, people, make_grant, db):
        make_grant(people["alice"], org["eng"], "read")
        data = GrantCreate(actor_id=people["bob"].id, node_id=org["backend"].id, role="read")
        with pytest.raises(InsufficientPrivilegeError):
            GrantService(db).grant(data, ActorContext.for_actor(people["alice"].id))

    def test_cannot_grant_outside_own_subtree(self, org, people, make_grant, db):
        make_grant(people["alice"], org["eng"], "admin")
        data = GrantCreate(actor_id=people["bob"].id, node_id=org["sales"].id, role="read")
        with pytest.raises(InsufficientPrivilegeError):
            GrantService(db).grant(data, ActorContext.for_actor(people["alice"].id))

    def test_cannot_grant_at_ancestor(self, org, people, make_grant, db):
        make_grant(people["alice"], org["eng"], "admin")
        data = GrantCreate(actor_id=people["bob"].id, node_id=org["org"].id, role="read")
        with pytest.raises(InsufficientPrivilegeError):
            GrantService(db).grant(data, ActorContext.for_actor(people["alice"].id))

    def test_can_grant_check(self, org, people, make_grant, db):
        make_grant(people["alice"], org["eng"], "manager")
        actor = ActorContext.for_actor(people["alice"].id)
        service = GrantService(db)
        assert service.can_grant(actor, org["backend"].id, "read")["can_grant"] is True
        assert service.can_grant(actor, org["backend"].id, "admin")["can_grant"] is False
        assert service.can_grant(actor, org["sales"].id, "read")["can_grant"] is False


class TestRevoke:

    def test_revoke_marks_inactive(self, org, people, make_grant, db, system):
        grant = make_grant(people["alice"], org["eng"], "read")
        revoked = GrantService(db).revoke(grant.id, system)
        assert revoked.is_active is False
        assert revoked.revoked_by == "system-admin"
        assert revoked.revoked_at is not None

    def test_revoke_twice_rejected(self, org, people, make_grant, db, system):
        grant = make_grant(people["alice"], org["eng"], "read")
        GrantService(db).revoke(grant.id, system)
        with pytest.raises(AlreadyInactiveError):
            GrantService(db).revoke(grant.id, system)

    def test_revoked_pair_can_be_granted_again(self, org, people, make_grant, db, system):
        grant = make_grant(people["alice"], org["eng"], "read")
        GrantService(db).revoke(grant.id, system)
        again = make_grant(people["alice"], org["eng"], "admin")
        assert again.id != grant.id

    def test_granter_can_revoke_own_grant(self, org, people, make_grant, db):
        make_grant(people["alice"], org["eng"], "manager")
        alice = ActorContext.for_actor(people["alice"].id)
        data = GrantCreate(actor_id=people["bob"].id, node_id=org["backend"].id, role="read")
        grant = GrantService(db).grant(data, alice)
        assert GrantService(db).revoke(grant.id, alice).is_active is False

    def test_holder_can_give_up_own_grant(self, org, people, make_grant, db):
        grant = make_grant(people["bob"], org["backend"], "read")
        bob = ActorContext.for_actor(people["bob"].id)
        revoked = GrantService(db).revoke(grant.id, bob)
        assert revoked.is_active is False
        assert revoked.revoked_by == people["bob"].id

    def test_outsider_cannot_revoke(self, org, people, make_grant, db):
        grant = make_grant(people["bob"], org["backend"], "read")
        make_grant(people["carol"], org["sales"], "admin")
        with pytest.raises(InsufficientPrivilegeError):
            GrantService(db).revoke(grant.id, ActorContext.for_actor(people["carol"].id))


class TestUpdate:

    def test_change_role(self, org, people, make_grant, db, system):
        grant = make_grant(people["alice"], org["eng"], "read")
        updated = GrantService(db).update(grant.id, GrantUpdate(role="manager"), system)
        assert updated.role == "manager"

    def test_clear_expiry(self, org, people, make_grant, db, system):
        grant = make_grant(people["alice"], org["eng"], "read", valid_until=utcnow() + timedelta(days=3))
        updated = GrantService(db).update(grant.id, GrantUpdate(clear_expiry=True), system)
        assert updated.valid_until is None

    def test_past_expiry_rejected(self, org, people, make_grant, db, system):
        grant = make_grant(people["alice"], org["eng"], "read")
        with pytest.raises(InvalidExpiryError):
            GrantService(db).update(
                grant.id, GrantUpdate(valid_until=utcnow() - timedelta(hours=1)), system
            )

    def test_update_revoked_rejected(self, org, people, make_grant, db, system):
        grant = make_grant(people["alice"], org["eng"], "read")
        GrantService(db).revoke(grant.id, system)
        with pytest.raises(AlreadyInactiveError):
            GrantService(db).update(grant.id, GrantUpdate(role="admin"), system)

    def test_manager_cannot_escalate_to_admin(self, org, people, make_grant, db):
        make_grant(people["alice"], org["eng"], "manager")
        grant = make_grant(people["bob"], org["backend"], "read")
        with pytest.raises(InsufficientPrivilegeError):
            GrantService(db).update(
                grant.id, GrantUpdate(role="admin"), ActorContext.for_actor(people["alice"].id)
            )


class TestListing:

    def test_list_for_actor_hides_revoked_by_default(self, org, people, make_grant, db, system):
        keep = make_grant(people["alice"], org["eng"], "read")
        gone = make_grant(people["alice"], org["sales"], "read")
        GrantService(db).revoke(gone.id, system)

        service = GrantService(db)
        assert [g.id for g in service.list_for_actor(people["alice"].id)] == [keep.id]
        assert len(service.list_for_actor(people["alice"].id, include_expired=True)) == 2

    def test_list_for_node(self, org, people, make_grant, db, system):
        make_grant(people["alice"], org["eng"], "read")
        make_grant(people["bob"], org["eng"], "manager")
        assert len(GrantService(db).list_for_node(org["eng"].id, system)) == 2


class TestGrantWindow:

    def test_pending_grant_is_not_current(self, org, people, make_grant):
        grant = make_grant(people["alice"], org["eng"], "read", valid_from=utcnow() + timedelta(hours=1))
        assert grant.is_pending()
        assert not grant.is_current()
        assert grant.is_current(utcnow() + timedelta(hours=2))

    def test_pending_grant_still_blocks_duplicate(self, org, people, make_grant):
        make_grant(people["alice"], org["eng"], "read", valid_from=utcnow() + timedelta(hours=1))
        with pytest.raises(DuplicateGrantError):
            make_grant(people["alice"], org["eng"], "manager")

    def test_expired_grant_is_not_current(self, org, people, make_grant):
        grant = make_grant(people["alice"], org["eng"], "read", valid_until=utcnow() + timedelta(hours=1))
        assert grant.is_current()
        assert grant.is_expired(utcnow() + timedelta(hours=2))

    def test_update_cannot_end_pending_grant_before_it_starts(self, org, people, make_grant, db, system):
        start = utcnow() + timedelta(days=2)
        grant = make_grant(people["alice"], org["eng"], "read", valid_from=start)
        with pytest.raises(InvalidExpiryError):
            GrantService(db).update(
                grant.id, GrantUpdate(role="manager", valid_until=start - timedelta(days=1)), system
            )
        db.expire_all()
        unchanged = db.query(Grant).filter(Grant.id == grant.id).one()
        assert unchanged.valid_until is None
        assert unchanged.role == "read"

    def test_update_can_extend_pending_grant(self, org, people, make_grant, db, system):
        start = utcnow() + timedelta(days=2)
        grant = make_grant(people["alice"], org["eng"], "read", valid_from=start)
        updated = GrantService(db).update(grant.id, GrantUpdate(valid_until=start + timedelta(days=1)), system)
        assert updated.valid_until is not None

"""
End-to-end tests for the HTTP layer: routing, auth and error mapping.
"""
import uuid

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from agrolink.core.access_matrix import ACCESS_MATRIX_VERSION
from agrolink.core.dependencies import get_notifier
from agrolink.core.security import create_access_token
from agrolink.db.core import get_session
from agrolink.db.schema import Invitation, InvitationStatus, NotificationKind, UserRole, UserStatus
from agrolink.main import app


@pytest.fixture
def client(engine, notifier):
    def override_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


def auth(user):
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


class TestService:
    def test_index(self, client):
        response = client.get("/api/v1/")
        assert response.status_code == 200
        assert response.json()["status"] == "running"
        assert response.json()["access_matrix_version"] == ACCESS_MATRIX_VERSION

    def test_readiness(self, client):
        response = client.get("/api/v1/readiness")
        assert response.status_code == 200
        assert response.json()["database"] == "online"


class TestAuth:
    def test_missing_token(self, client):
        assert client.get("/api/v1/relationships/").status_code == 401

    def test_garbage_token(self, client):
        response = client.get("/api/v1/relationships/", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_inactive_user(self, client, make_user):
        suspended = make_user(UserRole.FARMER, status=UserStatus.SUSPENDED)

        response = client.get("/api/v1/relationships/", headers=auth(suspended))

        assert response.status_code == 400
        assert response.json()["detail"] == "Inactive user"


class TestRelationshipRoutes:
    def test_request_approve_flow(self, client, farm_admin, farmer):
        response = client.post("/api/v1/relationships/requests", headers=auth(farmer), json={
            "farm_admin_id": str(farm_admin.id),
            "type": "farmer_supplier",
            "message": "Weekly maize deliveries"
        })
        assert response.status_code == 201
        relationship_id = response.json()["id"]
        assert response.json()["status"] == "pending"

        access = client.get(f"/api/v1/access/users/{farm_admin.id}", headers=auth(farmer))
        assert access.json()["allowed"] is False

        pending = client.get("/api/v1/relationships/requests/pending", headers=auth(farm_admin))
        assert [r["id"] for r in pending.json()] == [relationship_id]

        approved = client.post(f"/api/v1/relationships/{relationship_id}/approve", headers=auth(farm_admin))
        assert approved.status_code == 200
        assert approved.json()["status"] == "active"

        access = client.get(f"/api/v1/access/users/{farm_admin.id}", headers=auth(farmer))
        assert access.json()["allowed"] is True

        active = client.get("/api/v1/relationships/?status=active", headers=auth(farmer))
        assert [r["id"] for r in active.json()] == [relationship_id]

    def test_errors_carry_code_and_status(self, client, farm_admin, other_farm_admin, farmer):
        created = client.post("/api/v1/relationships/", headers=auth(farm_admin), json={
            "service_provider_id": str(farmer.id), "type": "farmer_supplier"
        })
        assert created.status_code == 201

        duplicate = client.post("/api/v1/relationships/", headers=auth(farm_admin), json={
            "service_provider_id": str(farmer.id), "type": "farmer_supplier"
        })
        assert duplicate.status_code == 409
        assert duplicate.json()["code"] == "duplicate_relationship"

        outsider = client.post(
            f"/api/v1/relationships/{created.json()['id']}/terminate",
            headers=auth(other_farm_admin), json={"reason": "Hostile"})
        assert outsider.status_code == 403
        assert outsider.json()["code"] == "unauthorized"

        wrong_role = client.post("/api/v1/relationships/", headers=auth(farm_admin), json={
            "service_provider_id": str(farmer.id), "type": "dealer"
        })
        assert wrong_role.status_code == 400
        assert wrong_role.json()["code"] == "invalid_role"

    def test_terminate(self, client, farm_admin, farmer):
        created = client.post("/api/v1/relationships/", headers=auth(farm_admin), json={
            "service_provider_id": str(farmer.id), "type": "farmer_supplier"
        }).json()

        response = client.post(
            f"/api/v1/relationships/{created['id']}/terminate",
            headers=auth(farmer), json={"reason": "Retiring"})

        assert response.status_code == 200
        assert response.json()["status"] == "terminated"
        assert response.json()["termination_reason"] == "Retiring"

        again = client.post(
            f"/api/v1/relationships/{created['id']}/terminate",
            headers=auth(farmer), json={"reason": "Retiring"})
        assert again.status_code == 409
        assert again.json()["code"] == "invalid_state_transition"


class TestInvitationRoutes:
    def _invite(self, client, farm_admin, notifier):
        response = client.post("/api/v1/invitations/", headers=auth(farm_admin),
                               json={"email": "field-mgr@example.com"})
        assert response.status_code == 201
        assert "magic_link_token" not in response.json()

        _, payload = notifier.sent_to("field-mgr@example.com")[-1]
        return response.json()["id"], payload["token"]

    def test_invite_verify_accept(self, client, farm_admin, notifier):
        invitation_id, token = self._invite(client, farm_admin, notifier)

        details = client.get(f"/api/v1/invitations/verify/{token}")
        assert details.status_code == 200
        assert details.json()["inviter_name"] == "Green Valley Farms"

        accepted = client.post(f"/api/v1/invitations/{invitation_id}/accept", json={
            "email": "Field-Mgr@example.com",
            "full_name": "Asha Patel",
            "selected_role": "field_manager"
        })
        assert accepted.status_code == 201
        assert accepted.json()["role"] == "field_manager"
        assert accepted.json()["status"] == "active"

        assert client.get(f"/api/v1/invitations/verify/{token}").status_code == 404

        listed = client.get("/api/v1/invitations/", headers=auth(farm_admin))
        assert listed.json()[0]["status"] == "accepted"

    def test_expired_accept_returns_gone(self, client, engine, farm_admin, notifier):
        invitation_id, _ = self._invite(client, farm_admin, notifier)

        with Session(engine) as session:
            invitation = session.get(Invitation, uuid.UUID(invitation_id))
            invitation.expires_at = invitation.sent_at.replace(year=2000)
            session.add(invitation)
            session.commit()

        response = client.post(f"/api/v1/invitations/{invitation_id}/accept", json={
            "email": "field-mgr@example.com",
            "full_name": "Asha Patel",
            "selected_role": "field_manager"
        })

        assert response.status_code == 410
        assert response.json()["code"] == "expired_invitation"
        with Session(engine) as session:
            assert session.get(Invitation, uuid.UUID(invitation_id)).status == InvitationStatus.EXPIRED

    def test_duplicate_invite_and_cancel(self, client, farm_admin, notifier):
        invitation_id, _ = self._invite(client, farm_admin, notifier)

        duplicate = client.post("/api/v1/invitations/", headers=auth(farm_admin),
                                json={"email": "field-mgr@example.com"})
        assert duplicate.status_code == 409
        assert duplicate.json()["code"] == "duplicate_pending_invitation"

        cancelled = client.post(f"/api/v1/invitations/{invitation_id}/cancel", headers=auth(farm_admin))
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "cancelled"

    def test_only_farm_admins_invite(self, client, farmer):
        response = client.post("/api/v1/invitations/", headers=auth(farmer), json={"email": "x@example.com"})
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_role"


class TestAccessRoutes:
    def test_dashboard_and_permissions(self, client, farm_admin):
        dashboard = client.get("/api/v1/access/dashboard", headers=auth(farm_admin))
        assert dashboard.status_code == 200
        assert dashboard.json()["role"] == "farm_admin"

        permissions = client.get("/api/v1/access/permissions", headers=auth(farm_admin)).json()
        assert "field-managers:invite" in permissions

        check = client.get("/api/v1/access/check", headers=auth(farm_admin),
                           params={"resource": "supply-chain", "action": "read"})
        assert check.json() == {"resource": "supply-chain", "action": "read", "allowed": False}


class TestSupplyChainRoutes:
    def test_share_read_update_sync(self, client, notifier, farm_admin, field_manager):
        client.post("/api/v1/relationships/", headers=auth(farm_admin), json={
            "service_provider_id": str(field_manager.id), "type": "field_manager"
        })

        shared = client.post("/api/v1/supply-chain/", headers=auth(farm_admin), json={
            "type": "field_operations", "payload": {"field": "north-7", "stage": "sowing"}
        })
        assert shared.status_code == 201
        record = shared.json()
        assert record["visibility"][0]["access_level"] == "read_write"
        assert NotificationKind.DATA_SHARED in notifier.kinds()

        visible = client.get("/api/v1/supply-chain/", headers=auth(field_manager),
                             params={"data_type": "field_operations"})
        assert [r["id"] for r in visible.json()] == [record["id"]]

        access = client.get(f"/api/v1/supply-chain/{record['id']}/access", headers=auth(field_manager),
                            params={"access_type": "delete"})
        assert access.json()["allowed"] is False
        assert access.json()["access_level"] == "read_write"

        updated = client.patch(f"/api/v1/supply-chain/{record['id']}", headers=auth(field_manager),
                               json={"updates": {"stage": "weeding"}})
        assert updated.status_code == 200
        assert updated.json()["payload"] == {"field": "north-7", "stage": "weeding"}

        synced = client.post(f"/api/v1/supply-chain/sync/{farm_admin.id}", headers=auth(field_manager))
        assert [r["id"] for r in synced.json()] == [record["id"]]

    def test_sync_without_relationship(self, client, farm_admin, field_manager):
        response = client.post(f"/api/v1/supply-chain/sync/{farm_admin.id}", headers=auth(field_manager))

        assert response.status_code == 403
        assert response.json()["code"] == "no_active_relationship"

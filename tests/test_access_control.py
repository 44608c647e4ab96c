"""
Tests for AccessControlService guards, dashboards and permission sets.
"""
import uuid

import pytest

from agrolink.db.schema import RelationshipType, UserRole, UserStatus
from agrolink.services.access_control import AccessControlService


class TestCheckPermission:
    def test_role_permission_without_relationship_requirement(self, access_service, farm_admin):
        assert access_service.check_permission(farm_admin.id, "field-managers", "invite")
        assert access_service.check_permission(farm_admin.id, "profile", "update")

    def test_missing_pair_is_denied(self, access_service, farmer):
        assert not access_service.check_permission(farmer.id, "registration", "approve")

    def test_relationship_resource_needs_active_relationship(
        self, access_service, relationship_service, farm_admin, farmer
    ):
        assert not access_service.check_permission(farm_admin.id, "supply-chain", "read")

        relationship_service.create_relationship(farm_admin.id, farmer.id, RelationshipType.FARMER_SUPPLIER)

        assert access_service.check_permission(farm_admin.id, "supply-chain", "read")

    def test_terminated_relationship_no_longer_counts(
        self, access_service, relationship_service, make_user, farm_admin
    ):
        manager = make_user(UserRole.FIELD_MANAGER)
        rel = relationship_service.create_relationship(farm_admin.id, manager.id, RelationshipType.FIELD_MANAGER)
        assert access_service.check_permission(manager.id, "field-operations", "update")

        relationship_service.terminate_relationship(rel.id, "Left the farm")

        assert not access_service.check_permission(manager.id, "field-operations", "update")

    def test_unknown_user_fails_closed(self, access_service):
        assert not access_service.check_permission(uuid.uuid4(), "profile", "read")

    def test_inactive_user_fails_closed(self, access_service, make_user):
        suspended = make_user(UserRole.FARM_ADMIN, status=UserStatus.SUSPENDED)
        assert not access_service.check_permission(suspended.id, "profile", "read")

    def test_storage_error_fails_closed(self, access_service, uow, farm_admin, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("database went away")

        monkeypatch.setattr(uow.users, "get", broken)

        assert access_service.check_permission(farm_admin.id, "profile", "read") is False
        assert access_service.get_user_permissions(farm_admin.id) == []
        assert access_service.validate_business_relationship_access(farm_admin.id, uuid.uuid4()) is False


class TestHasRolePermission:
    @pytest.mark.parametrize("role,resource,action,expected", [
        (UserRole.APP_ADMIN, "registration", "approve", True),
        (UserRole.FARM_ADMIN, "relationships", "manage", True),
        (UserRole.FIELD_MANAGER, "field-operations", "update", True),
        (UserRole.DEALER, "field-operations", "read", False),
        (UserRole.FARMER, "profile", "read", True),
    ])
    def test_static_lookup(self, role, resource, action, expected):
        assert AccessControlService.has_role_permission(role, resource, action) is expected


class TestDashboardConfig:
    def test_farm_admin_dashboard(self, access_service):
        config = access_service.get_role_dashboard_config(UserRole.FARM_ADMIN)

        assert config.role == UserRole.FARM_ADMIN
        assert [w.id for w in config.widgets] == ["relationship-overview", "supply-chain-status"]
        assert "field-managers:invite" in config.flattened_permissions()
        assert "Business Relationships" in [item.label for item in config.navigation]

    def test_service_provider_dashboard(self, access_service):
        config = access_service.get_role_dashboard_config(UserRole.LORRY_AGENCY)

        assert [w.type for w in config.widgets] == ["recent_transactions"]
        assert config.flattened_permissions() == ["profile:read", "profile:update", "dashboard:read"]

    def test_unknown_role_gets_fallback(self, access_service):
        config = access_service.get_role_dashboard_config("space_cowboy")

        assert config.widgets == []
        assert config.flattened_permissions() == ["profile:read"]
        assert [item.id for item in config.navigation] == ["dashboard"]

    def test_returned_config_is_a_copy(self, access_service):
        first = access_service.get_role_dashboard_config(UserRole.FARMER)
        first.widgets.clear()

        assert access_service.get_role_dashboard_config(UserRole.FARMER).widgets


class TestValidateBusinessRelationshipAccess:
    def test_request_then_approve(self, access_service, relationship_service, farm_admin, farmer):
        rel = relationship_service.request_relationship(farmer.id, farm_admin.id, RelationshipType.FARMER_SUPPLIER)
        assert not access_service.validate_business_relationship_access(farmer.id, farm_admin.id)

        relationship_service.approve_relationship_request(rel.id, farm_admin.id)

        assert access_service.validate_business_relationship_access(farmer.id, farm_admin.id)
        assert access_service.validate_business_relationship_access(farm_admin.id, farmer.id)

    def test_self_access(self, access_service, farmer):
        assert access_service.validate_business_relationship_access(farmer.id, farmer.id)

    def test_self_access_ignores_account_status(self, access_service, make_user):
        suspended = make_user(UserRole.FARMER, status=UserStatus.SUSPENDED)

        assert access_service.validate_business_relationship_access(suspended.id, suspended.id)

    def test_app_admin_sees_everyone(self, access_service, app_admin, farmer):
        assert access_service.validate_business_relationship_access(app_admin.id, farmer.id)
        assert access_service.validate_business_relationship_access(app_admin.id, uuid.uuid4())

    def test_field_manager_and_farm_admin(self, access_service, relationship_service, farm_admin, field_manager):
        relationship_service.create_relationship(farm_admin.id, field_manager.id, RelationshipType.FIELD_MANAGER)

        assert access_service.validate_business_relationship_access(field_manager.id, farm_admin.id)
        assert access_service.validate_business_relationship_access(farm_admin.id, field_manager.id)

    def test_unrelated_users(self, access_service, farmer, dealer, other_farm_admin):
        assert not access_service.validate_business_relationship_access(farmer.id, dealer.id)
        assert not access_service.validate_business_relationship_access(other_farm_admin.id, farmer.id)

    def test_terminated_relationship_revokes_access(self, access_service, relationship_service, farm_admin, farmer):
        rel = relationship_service.create_relationship(farm_admin.id, farmer.id, RelationshipType.FARMER_SUPPLIER)
        relationship_service.terminate_relationship(rel.id, "Season over")

        assert not access_service.validate_business_relationship_access(farmer.id, farm_admin.id)


class TestUserPermissions:
    def test_without_relationships_only_role_bundle(self, access_service, dealer):
        assert access_service.get_user_permissions(dealer.id) == [
            "profile:read", "profile:update", "dashboard:read"
        ]

    def test_active_relationship_adds_derived_permissions(
        self, access_service, relationship_service, farm_admin, dealer
    ):
        relationship_service.create_relationship(farm_admin.id, dealer.id, RelationshipType.DEALER)

        permissions = access_service.get_user_permissions(dealer.id)

        assert "relationships:read" in permissions
        assert "transactions:read" in permissions
        assert "communications:create" in permissions

    def test_farm_admin_permissions_are_deduplicated(
        self, access_service, relationship_service, farm_admin, dealer
    ):
        relationship_service.create_relationship(farm_admin.id, dealer.id, RelationshipType.DEALER)

        permissions = access_service.get_user_permissions(farm_admin.id)

        assert len(permissions) == len(set(permissions))
        assert permissions.count("supply-chain:read") == 1
        assert "relationships:manage" in permissions

    def test_unknown_user_has_no_permissions(self, access_service):
        assert access_service.get_user_permissions(uuid.uuid4()) == []

import uuid
from typing import List, Optional

from loguru import logger

from agrolink.core.access_matrix import (
    DASHBOARD_CONFIGS, FALLBACK_DASHBOARD, RELATIONSHIP_RESOURCES,
    RELATIONSHIP_DERIVED_PERMISSIONS, thaw
)
from agrolink.db.schema import User, UserRole, UserStatus, RelationshipStatus
from agrolink.models.dashboard import DashboardConfig
from agrolink.repositories.base import UnitOfWork


class AccessControlService:
    """
    Turns role + relationship state into yes/no decisions.

    Every public check here is a guard: it returns False (or an empty list)
    for unknown or inactive users and for any unexpected failure, and never
    raises.
    """

    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    def _get_active_user(self, user_id: uuid.UUID) -> Optional[User]:
        user = self.uow.users.get(user_id)
        if not user or user.status != UserStatus.ACTIVE:
            return None
        return user

    def _has_active_relationship(self, user: User) -> bool:
        if user.role == UserRole.FARM_ADMIN:
            relationships = self.uow.relationships.list_by_farm_admin(user.id)
        else:
            relationships = self.uow.relationships.list_by_service_provider(user.id)
        return any(rel.status == RelationshipStatus.ACTIVE for rel in relationships)

    @staticmethod
    def has_role_permission(role: UserRole, resource: str, action: str) -> bool:
        """Static check against the role's permission bundle only."""
        config = DASHBOARD_CONFIGS.get(role)
        if config is None:
            return False
        return any(
            grant["resource"] == resource and action in grant["actions"]
            for grant in config["permissions"]
        )

    def check_permission(self, user_id: uuid.UUID, resource: str, action: str) -> bool:
        try:
            user = self._get_active_user(user_id)
            if not user:
                return False

            if not self.has_role_permission(user.role, resource, action):
                return False

            if resource in RELATIONSHIP_RESOURCES:
                return self._has_active_relationship(user)

            return True
        except Exception:
            logger.exception(f"Permission check failed for user {user_id} on {resource}:{action}")
            return False

    def get_role_dashboard_config(self, role: UserRole) -> DashboardConfig:
        """
        Widgets, permissions and navigation for a role.

        Falls back to a minimal profile-only dashboard instead of raising, so
        the UI can always render something.
        """
        try:
            role = UserRole(role)
            return DashboardConfig.model_validate({**thaw(DASHBOARD_CONFIGS[role]), "role": role})
        except Exception:
            logger.exception(f"Could not build dashboard for role {role!r}, serving fallback")
            return DashboardConfig.model_validate(thaw(FALLBACK_DASHBOARD))

    def validate_business_relationship_access(self, user_id: uuid.UUID, target_user_id: uuid.UUID) -> bool:
        """
        True when `user_id` may see `target_user_id`'s data: the same user,
        an App Admin, or the two share an ACTIVE relationship in either
        direction. The Field Manager <-> Farm Admin case is such a
        relationship with type FIELD_MANAGER.
        """
        if user_id == target_user_id:
            return True

        try:
            user = self._get_active_user(user_id)
            if not user:
                return False

            if user.role == UserRole.APP_ADMIN:
                return True

            target = self._get_active_user(target_user_id)
            if not target:
                return False

            owned = self.uow.relationships.list_by_farm_admin(user_id)
            served = self.uow.relationships.list_by_service_provider(user_id)

            for rel in owned:
                if rel.status == RelationshipStatus.ACTIVE and rel.service_provider_id == target_user_id:
                    return True
            for rel in served:
                if rel.status == RelationshipStatus.ACTIVE and rel.farm_admin_id == target_user_id:
                    return True

            return False
        except Exception:
            logger.exception(f"Relationship access check failed for {user_id} -> {target_user_id}")
            return False

    def get_user_permissions(self, user_id: uuid.UUID) -> List[str]:
        """Role bundle plus relationship-derived permissions, de-duplicated in order."""
        try:
            user = self._get_active_user(user_id)
            if not user:
                return []

            permissions = self.get_role_dashboard_config(user.role).flattened_permissions()
            if self._has_active_relationship(user):
                permissions.extend(RELATIONSHIP_DERIVED_PERMISSIONS.get(user.role, ()))

            return list(dict.fromkeys(permissions))
        except Exception:
            logger.exception(f"Could not resolve permissions for user {user_id}")
            return []

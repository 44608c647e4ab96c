import uuid
from typing import List
from fastapi import APIRouter, Depends

from agrolink.core.dependencies import get_current_user, get_access_control_service
from agrolink.models.dashboard import DashboardConfig, PermissionCheckRead, RelationshipAccessRead
from agrolink.db.schema import User

from agrolink.services.access_control import AccessControlService


router = APIRouter()


@router.get(
    "/permissions",
    response_model=List[str],
    summary="My Permissions",
    description="Role permissions plus the ones unlocked by active relationships, as 'resource:action'."
)
def get_my_permissions(
    current_user: User = Depends(get_current_user),
    service: AccessControlService = Depends(get_access_control_service)
):
    return service.get_user_permissions(current_user.id)


@router.get("/dashboard", response_model=DashboardConfig, summary="My Dashboard Layout")
def get_my_dashboard(
    current_user: User = Depends(get_current_user),
    service: AccessControlService = Depends(get_access_control_service)
):
    return service.get_role_dashboard_config(current_user.role)


@router.get("/check", response_model=PermissionCheckRead)
def check_permission(
    resource: str,
    action: str,
    current_user: User = Depends(get_current_user),
    service: AccessControlService = Depends(get_access_control_service)
):
    return PermissionCheckRead(
        resource=resource,
        action=action,
        allowed=service.check_permission(current_user.id, resource, action)
    )


@router.get(
    "/users/{target_id}",
    response_model=RelationshipAccessRead,
    summary="Can I Access User",
    description="Whether the current user may see another user's data through an active relationship."
)
def check_user_access(
    target_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    service: AccessControlService = Depends(get_access_control_service)
):
    return RelationshipAccessRead(
        target_user_id=target_id,
        allowed=service.validate_business_relationship_access(current_user.id, target_id)
    )

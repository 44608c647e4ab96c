from uuid import UUID
from typing import Any, Dict, List, Optional
from sqlmodel import SQLModel, Field
from agrolink.db.schema import UserRole


class PermissionGrant(SQLModel):
    """A resource and the actions a role may perform on it."""
    resource: str
    actions: List[str]


class DashboardWidget(SQLModel):
    id: str
    type: str
    title: str
    data_source: str
    permissions: List[str]
    config: Dict[str, Any] = Field(default_factory=dict)


class NavigationItem(SQLModel):
    id: str
    label: str
    path: str
    permissions: List[str]


class DashboardConfig(SQLModel):
    """Role-indexed bundle consumed by dashboard assembly."""
    role: Optional[UserRole] = None
    widgets: List[DashboardWidget] = Field(default_factory=list)
    permissions: List[PermissionGrant] = Field(default_factory=list)
    navigation: List[NavigationItem] = Field(default_factory=list)

    def flattened_permissions(self) -> List[str]:
        """Permission bundle as 'resource:action' strings."""
        return [
            f"{grant.resource}:{action}"
            for grant in self.permissions
            for action in grant.actions
        ]


class PermissionCheckRead(SQLModel):
    resource: str
    action: str
    allowed: bool


class RelationshipAccessRead(SQLModel):
    target_user_id: UUID
    allowed: bool

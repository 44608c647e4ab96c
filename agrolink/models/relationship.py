from uuid import UUID
from typing import Any, Dict, Optional
from datetime import datetime
from sqlmodel import SQLModel, Field
from agrolink.db.schema import RelationshipType, RelationshipStatus


class RelationshipCreate(SQLModel):
    """
    Payload for a Farm Admin linking an existing provider directly.
    The relationship starts ACTIVE.
    """
    service_provider_id: UUID
    type: RelationshipType = Field(
        description="Must match the provider's role (e.g. 'farmer_supplier' for a farmer)."
    )


class RelationshipRequestCreate(SQLModel):
    """
    Payload for a provider asking a Farm Admin for a relationship.
    The relationship starts PENDING until the Farm Admin responds.
    """
    farm_admin_id: UUID
    type: RelationshipType
    message: Optional[str] = Field(
        default=None,
        max_length=500,
        schema_extra={"examples": ["We can deliver maize twice a week during harvest."]},
        description="Optional note forwarded to the Farm Admin."
    )


class RelationshipReason(SQLModel):
    """Body for reject and terminate actions."""
    reason: str = Field(min_length=1, max_length=500)


class RelationshipRead(SQLModel):
    id: UUID
    farm_admin_id: UUID
    service_provider_id: UUID
    type: RelationshipType
    status: RelationshipStatus
    established_date: datetime
    permissions: Dict[str, Any]
    request_message: Optional[str] = None
    termination_reason: Optional[str] = None
    terminated_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

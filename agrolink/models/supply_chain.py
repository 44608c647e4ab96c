from uuid import UUID
from typing import Any, Dict, List, Optional
from datetime import datetime
from sqlmodel import SQLModel, Field
from agrolink.db.schema import (
    UserRole, AccessLevel, SupplyChainDataType, SupplyChainData, DataAccessType
)


class DataVisibility(SQLModel):
    """One (user, access level) entry of a record's visibility list."""
    user_id: UUID
    user_role: UserRole
    access_level: AccessLevel


class DataShareCreate(SQLModel):
    type: SupplyChainDataType
    payload: Dict[str, Any] = Field(
        default_factory=dict,
        schema_extra={"examples": [{"field": "north-7", "operation": "sowing", "crop": "maize"}]}
    )


class DataUpdate(SQLModel):
    updates: Dict[str, Any] = Field(
        description="Keys to merge into the record's payload (shallow merge)."
    )


class SupplyChainDataRead(SQLModel):
    id: UUID
    farm_admin_id: UUID
    type: SupplyChainDataType
    payload: Dict[str, Any]
    visibility: List[DataVisibility]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: SupplyChainData) -> "SupplyChainDataRead":
        return cls(
            id=record.id,
            farm_admin_id=record.farm_admin_id,
            type=record.type,
            payload=record.payload,
            visibility=[DataVisibility.model_validate(v) for v in record.visibility],
            created_at=record.created_at,
            updated_at=record.updated_at
        )


class DataAccessRead(SQLModel):
    data_id: UUID
    access_type: DataAccessType
    allowed: bool
    access_level: Optional[AccessLevel] = None

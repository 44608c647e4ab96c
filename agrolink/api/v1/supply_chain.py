import uuid
from typing import List
from fastapi import APIRouter, Depends, status

from agrolink.core.dependencies import get_current_user, get_data_visibility_service
from agrolink.models.supply_chain import (
    DataShareCreate, DataUpdate, SupplyChainDataRead, DataAccessRead
)
from agrolink.db.schema import User, SupplyChainDataType, DataAccessType

from agrolink.services.data_visibility import DataVisibilityService


router = APIRouter()


@router.post(
    "/",
    response_model=SupplyChainDataRead,
    status_code=status.HTTP_201_CREATED,
    summary="Share Supply Chain Data",
    description="Farm Admin publishes a record. Visibility is derived from its active relationships."
)
def share_data(
    data: DataShareCreate,
    current_user: User = Depends(get_current_user),
    service: DataVisibilityService = Depends(get_data_visibility_service)
):
    record = service.share_data_with_related_users(current_user.id, data.type, data.payload)
    return SupplyChainDataRead.from_record(record)


@router.get("/", response_model=List[SupplyChainDataRead])
def list_accessible_data(
    data_type: SupplyChainDataType,
    current_user: User = Depends(get_current_user),
    service: DataVisibilityService = Depends(get_data_visibility_service)
):
    records = service.get_accessible_data(current_user.id, data_type)
    return [SupplyChainDataRead.from_record(r) for r in records]


@router.get("/{data_id}/access", response_model=DataAccessRead)
def check_data_access(
    data_id: uuid.UUID,
    access_type: DataAccessType = DataAccessType.READ,
    current_user: User = Depends(get_current_user),
    service: DataVisibilityService = Depends(get_data_visibility_service)
):
    return DataAccessRead(
        data_id=data_id,
        access_type=access_type,
        allowed=service.check_data_access(current_user.id, data_id, access_type),
        access_level=service.get_data_visibility_for_user(current_user.id, data_id)
    )


@router.patch(
    "/{data_id}",
    response_model=SupplyChainDataRead,
    summary="Update Shared Data",
    description="Merges the given keys into the record's payload. Requires write access."
)
def update_data(
    data_id: uuid.UUID,
    data: DataUpdate,
    current_user: User = Depends(get_current_user),
    service: DataVisibilityService = Depends(get_data_visibility_service)
):
    record = service.update_shared_data(data_id, current_user.id, data.updates)
    return SupplyChainDataRead.from_record(record)


@router.post(
    "/sync/{farm_admin_id}",
    response_model=List[SupplyChainDataRead],
    summary="Sync Field Operations",
    description="Field Manager pulls the field-operations records of the Farm Admin it works for."
)
def sync_field_manager_data(
    farm_admin_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    service: DataVisibilityService = Depends(get_data_visibility_service)
):
    records = service.sync_field_manager_data(current_user.id, farm_admin_id)
    return [SupplyChainDataRead.from_record(r) for r in records]

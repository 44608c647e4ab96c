import uuid
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status

from agrolink.core.dependencies import get_current_user, get_relationship_service
from agrolink.core.exceptions import UnauthorizedError
from agrolink.models.relationship import (
    RelationshipCreate, RelationshipRequestCreate, RelationshipReason, RelationshipRead
)
from agrolink.db.schema import User, RelationshipStatus

from agrolink.services.relationship import BusinessRelationshipService


router = APIRouter()


@router.post(
    "/",
    response_model=RelationshipRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create Relationship",
    description="Farm Admin links an existing service provider. The relationship is active immediately."
)
def create_relationship(
    data: RelationshipCreate,
    current_user: User = Depends(get_current_user),
    service: BusinessRelationshipService = Depends(get_relationship_service)
):
    return service.create_relationship(current_user.id, data.service_provider_id, data.type)


@router.post(
    "/requests",
    response_model=RelationshipRead,
    status_code=status.HTTP_201_CREATED,
    summary="Request Relationship",
    description="Service provider asks a Farm Admin for a relationship. Stays pending until answered."
)
def request_relationship(
    data: RelationshipRequestCreate,
    current_user: User = Depends(get_current_user),
    service: BusinessRelationshipService = Depends(get_relationship_service)
):
    return service.request_relationship(current_user.id, data.farm_admin_id, data.type, data.message)


@router.get(
    "/",
    response_model=List[RelationshipRead],
    summary="List My Relationships",
    description="Relationships the current user owns (Farm Admin) or serves in (everyone else)."
)
def list_relationships(
    status_filter: Optional[RelationshipStatus] = Query(default=None, alias="status"),
    current_user: User = Depends(get_current_user),
    service: BusinessRelationshipService = Depends(get_relationship_service)
):
    if status_filter:
        return service.get_relationships_by_status(current_user.id, status_filter)
    return service.get_relationships(current_user.id)


@router.get(
    "/requests/pending",
    response_model=List[RelationshipRead],
    summary="Pending Requests",
    description="Relationship requests waiting on the current Farm Admin."
)
def list_pending_requests(
    current_user: User = Depends(get_current_user),
    service: BusinessRelationshipService = Depends(get_relationship_service)
):
    return service.get_pending_relationship_requests(current_user.id)


@router.get("/{relationship_id}", response_model=RelationshipRead)
def get_relationship(
    relationship_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    service: BusinessRelationshipService = Depends(get_relationship_service)
):
    relationship = service.get_relationship(relationship_id)
    if current_user.id not in (relationship.farm_admin_id, relationship.service_provider_id):
        raise UnauthorizedError("Not a party to this relationship.")
    return relationship


@router.post("/{relationship_id}/approve", response_model=RelationshipRead)
def approve_request(
    relationship_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    service: BusinessRelationshipService = Depends(get_relationship_service)
):
    return service.approve_relationship_request(relationship_id, current_user.id)


@router.post("/{relationship_id}/reject", response_model=RelationshipRead)
def reject_request(
    relationship_id: uuid.UUID,
    data: RelationshipReason,
    current_user: User = Depends(get_current_user),
    service: BusinessRelationshipService = Depends(get_relationship_service)
):
    return service.reject_relationship_request(relationship_id, current_user.id, data.reason)


@router.post(
    "/{relationship_id}/terminate",
    response_model=RelationshipRead,
    summary="Terminate Relationship",
    description="Either party ends an active relationship. Terminated relationships cannot be reactivated."
)
def terminate_relationship(
    relationship_id: uuid.UUID,
    data: RelationshipReason,
    current_user: User = Depends(get_current_user),
    service: BusinessRelationshipService = Depends(get_relationship_service)
):
    return service.terminate_relationship(relationship_id, data.reason, actor_id=current_user.id)

import uuid
from typing import List
from fastapi import APIRouter, Depends, status

from agrolink.core.dependencies import get_current_user, get_relationship_service
from agrolink.models.invitation import FieldManagerInvite, InvitationRead, InviteDetails
from agrolink.models.user import UserRegistrationData, UserRead
from agrolink.db.schema import User

from agrolink.services.relationship import BusinessRelationshipService


router = APIRouter()


@router.post(
    "/",
    response_model=InvitationRead,
    status_code=status.HTTP_201_CREATED,
    summary="Invite Field Manager",
    description="Farm Admin invites a new Field Manager by email. A magic link is sent to the address."
)
def invite_field_manager(
    data: FieldManagerInvite,
    current_user: User = Depends(get_current_user),
    service: BusinessRelationshipService = Depends(get_relationship_service)
):
    return service.invite_field_manager(current_user.id, data.email)


@router.get(
    "/",
    response_model=List[InvitationRead],
    summary="List Sent Invitations"
)
def list_invitations(
    current_user: User = Depends(get_current_user),
    service: BusinessRelationshipService = Depends(get_relationship_service)
):
    return service.get_invitations_by_user(current_user.id)


# ==============================================================================
# PUBLIC: called from the magic link before the invitee has an account
# ==============================================================================

@router.get(
    "/verify/{token}",
    response_model=InviteDetails,
    summary="Verify Invitation Link",
    description="Returns who invited the address and until when the link is valid."
)
def verify_invitation(
    token: str,
    service: BusinessRelationshipService = Depends(get_relationship_service)
):
    return service.validate_invitation_token(token)


@router.post(
    "/{invitation_id}/accept",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
    summary="Accept Invitation",
    description="Creates the Field Manager account and its active relationship with the inviting Farm Admin."
)
def accept_invitation(
    invitation_id: uuid.UUID,
    data: UserRegistrationData,
    service: BusinessRelationshipService = Depends(get_relationship_service)
):
    return service.accept_invitation(invitation_id, data)


@router.post("/{invitation_id}/cancel", response_model=InvitationRead)
def cancel_invitation(
    invitation_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    service: BusinessRelationshipService = Depends(get_relationship_service)
):
    return service.cancel_invitation(invitation_id, actor_id=current_user.id)

from uuid import UUID
from typing import Optional
from datetime import datetime
from sqlmodel import SQLModel, Field
from pydantic import EmailStr
from agrolink.db.schema import UserRole, RelationshipType, InvitationStatus


class FieldManagerInvite(SQLModel):
    """
    Payload for a Farm Admin inviting a new Field Manager by email.
    """
    email: EmailStr = Field(
        schema_extra={"examples": ["field-mgr@example.com"]},
        description="Address the invitation link is sent to. Must not belong to an existing user."
    )


class InvitationRead(SQLModel):
    """Invitation as shown to the Farm Admin who sent it. The token is never exposed."""
    id: UUID
    inviter_id: UUID
    invitee_email: str
    invitee_role: UserRole
    relationship_type: RelationshipType
    status: InvitationStatus
    expires_at: datetime
    sent_at: datetime
    accepted_at: Optional[datetime] = None


class InviteDetails(SQLModel):
    """
    Public info returned to the frontend when an invitee opens the link.
    """
    invitation_id: UUID
    email: str = Field(description="The address that was invited.")
    inviter_name: str = Field(description="Name of the Farm Admin who sent the invite.")
    invitee_role: UserRole
    relationship_type: RelationshipType
    expires_at: datetime

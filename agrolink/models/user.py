from uuid import UUID
from typing import Any, Dict, Optional
from sqlmodel import SQLModel, Field
from pydantic import EmailStr, StringConstraints
from typing_extensions import Annotated
from agrolink.db.schema import UserRole, UserStatus


class UserRead(SQLModel):
    id: UUID
    email: str
    full_name: str
    role: UserRole
    status: UserStatus
    email_verified: bool


class UserRegistrationData(SQLModel):
    """
    Account details submitted when accepting a Field Manager invitation.
    Email and role must match the invitation.
    """
    email: Annotated[EmailStr, StringConstraints(to_lower=True)] = Field(
        description="Must be the address the invitation was sent to.",
        max_length=255
    )
    full_name: str = Field(
        min_length=1,
        max_length=120,
        description="User's full name."
    )
    selected_role: UserRole = Field(
        description="Role the invitee registers with. Invitations are for 'field_manager'."
    )
    phone_number: Optional[str] = Field(default=None, max_length=32)
    profile_data: Dict[str, Any] = Field(
        default_factory=dict,
        description="Role specific details, e.g. {'experience': 5, 'specializations': ['irrigation']}."
    )

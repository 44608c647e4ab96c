from typing import Optional
from fastapi import status


class AgroLinkError(Exception):
    """
    Base class for every typed failure raised by the relationship and
    data-visibility services. The HTTP layer turns these into responses
    using `status_code` and `code`.
    """
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "error"
    default_detail: str = "The request could not be completed."

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotFoundError(AgroLinkError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_detail = "Resource not found."


class InvalidRoleError(AgroLinkError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_role"
    default_detail = "User role is not valid for this operation."


class UnauthorizedError(AgroLinkError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "unauthorized"
    default_detail = "You are not allowed to perform this action."


class DuplicateRelationshipError(AgroLinkError):
    status_code = status.HTTP_409_CONFLICT
    code = "duplicate_relationship"
    default_detail = "Relationship already exists or is pending."


class DuplicatePendingInvitationError(AgroLinkError):
    status_code = status.HTTP_409_CONFLICT
    code = "duplicate_pending_invitation"
    default_detail = "Pending invitation already exists for this email."


class UserAlreadyExistsError(AgroLinkError):
    status_code = status.HTTP_409_CONFLICT
    code = "user_already_exists"
    default_detail = "User with this email already exists."


class InvalidStateTransitionError(AgroLinkError):
    status_code = status.HTTP_409_CONFLICT
    code = "invalid_state_transition"
    default_detail = "The record is not in a state that allows this action."


class ExpiredInvitationError(AgroLinkError):
    status_code = status.HTTP_410_GONE
    code = "expired_invitation"
    default_detail = "Invitation has expired."


class EmailMismatchError(AgroLinkError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "email_mismatch"
    default_detail = "Email does not match invitation."


class RoleMismatchError(AgroLinkError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "role_mismatch"
    default_detail = "Role does not match invitation."


class ValidationFailedError(AgroLinkError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "validation_failed"
    default_detail = "Validation failed."


class NoActiveRelationshipError(AgroLinkError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "no_active_relationship"
    default_detail = "No active relationship found."

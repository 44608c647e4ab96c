import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from fastapi.encoders import jsonable_encoder
from loguru import logger
from pydantic import EmailStr, TypeAdapter, ValidationError

from agrolink.core.access_matrix import default_permissions, role_for_relationship_type
from agrolink.core.exceptions import (
    NotFoundError, InvalidRoleError, UnauthorizedError, DuplicateRelationshipError,
    DuplicatePendingInvitationError, UserAlreadyExistsError,
    InvalidStateTransitionError, ExpiredInvitationError, EmailMismatchError,
    RoleMismatchError, ValidationFailedError
)
from agrolink.db.schema import (
    User, UserRole, UserStatus, BusinessRelationship, RelationshipType,
    RelationshipStatus, Invitation, InvitationStatus, AuditAction,
    NotificationKind
)
from agrolink.models.invitation import InviteDetails
from agrolink.models.user import UserRegistrationData
from agrolink.repositories.base import UnitOfWork, UniqueConstraintViolation
from agrolink.services.notifications import Notifier
from agrolink.services.tokens import TokenIssuer, InvitationTokenIssuer
from agrolink.utils.clock import utcnow


# Allowed status moves. Anything not listed is rejected.
RELATIONSHIP_TRANSITIONS = {
    RelationshipStatus.PENDING: frozenset({RelationshipStatus.ACTIVE, RelationshipStatus.TERMINATED}),
    RelationshipStatus.ACTIVE: frozenset({RelationshipStatus.TERMINATED}),
    RelationshipStatus.TERMINATED: frozenset(),
}

INVITATION_TRANSITIONS = {
    InvitationStatus.PENDING: frozenset({
        InvitationStatus.ACCEPTED, InvitationStatus.EXPIRED, InvitationStatus.CANCELLED
    }),
    InvitationStatus.ACCEPTED: frozenset(),
    InvitationStatus.EXPIRED: frozenset(),
    InvitationStatus.CANCELLED: frozenset(),
}

_email_adapter = TypeAdapter(EmailStr)


def normalize_email(email: str) -> str:
    """Validates and lower-cases an address. Raises ValidationFailedError."""
    try:
        return _email_adapter.validate_python((email or "").strip()).lower()
    except ValidationError:
        raise ValidationFailedError(f"'{email}' is not a valid email address.")


def coerce_enum(enum_cls, value):
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationFailedError(f"'{value}' is not a valid {enum_cls.__name__}.")


class BusinessRelationshipService:
    """
    Owns the lifecycle of business relationships and Field Manager
    invitations.

    Relationships:  PENDING --approve--> ACTIVE --terminate--> TERMINATED
                    PENDING --reject--> TERMINATED
    Invitations:    PENDING --> ACCEPTED | EXPIRED | CANCELLED

    Every mutation runs inside `uow.atomic()` and moves status with a
    compare-and-set, so concurrent callers cannot both win a transition.
    Notifications are sent only after the change is committed.
    """

    def __init__(
        self,
        uow: UnitOfWork,
        notifier: Notifier,
        token_issuer: Optional[TokenIssuer] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.uow = uow
        self.notifier = notifier
        self.token_issuer = token_issuer or InvitationTokenIssuer(clock=clock)
        self.clock = clock

    # ==========================================================================
    # HELPERS
    # ==========================================================================

    def _require_farm_admin(self, user_id: uuid.UUID, message: str = "Invalid Farm Admin") -> User:
        farm_admin = self.uow.users.get(user_id)
        if not farm_admin or farm_admin.role != UserRole.FARM_ADMIN:
            raise InvalidRoleError(message)
        return farm_admin

    def _validate_relationship_type(self, relationship_type: RelationshipType, role: UserRole) -> None:
        if role_for_relationship_type(relationship_type) != role:
            raise InvalidRoleError(
                f"Invalid relationship type {relationship_type.value} for user role {role.value}")

    def _ensure_no_open_relationship(
        self,
        farm_admin_id: uuid.UUID,
        service_provider_id: uuid.UUID,
        relationship_type: RelationshipType
    ) -> None:
        # Fast path only. The storage-level unique index is what makes this
        # safe under concurrency (see _insert_relationship).
        for rel in self.uow.relationships.list_by_farm_admin(farm_admin_id):
            if (rel.service_provider_id == service_provider_id
                    and rel.type == relationship_type
                    and rel.status != RelationshipStatus.TERMINATED):
                raise DuplicateRelationshipError()

    def _insert_relationship(
        self,
        farm_admin_id: uuid.UUID,
        service_provider_id: uuid.UUID,
        relationship_type: RelationshipType,
        status: RelationshipStatus,
        actor_id: uuid.UUID,
        message: Optional[str] = None
    ) -> BusinessRelationship:
        """Inserts and audits a relationship. Must run inside uow.atomic()."""
        now = self.clock()
        relationship = BusinessRelationship(
            farm_admin_id=farm_admin_id,
            service_provider_id=service_provider_id,
            type=relationship_type,
            status=status,
            established_date=now,
            permissions=default_permissions(relationship_type),
            request_message=message,
            created_at=now,
            updated_at=now
        )
        try:
            self.uow.relationships.add_relationship(relationship)
        except UniqueConstraintViolation:
            raise DuplicateRelationshipError()

        self._audit(actor_id, "BusinessRelationship", relationship.id, AuditAction.CREATE, {
            "farm_admin_id": farm_admin_id,
            "service_provider_id": service_provider_id,
            "type": relationship_type,
            "status": status,
        })
        return relationship

    def _get_relationship_or_404(self, relationship_id: uuid.UUID) -> BusinessRelationship:
        relationship = self.uow.relationships.get_relationship(relationship_id)
        if not relationship:
            raise NotFoundError("Relationship not found.")
        return relationship

    def _transition_relationship(
        self,
        relationship: BusinessRelationship,
        expected: RelationshipStatus,
        new: RelationshipStatus,
        **changes: Any
    ) -> BusinessRelationship:
        if relationship.status != expected or new not in RELATIONSHIP_TRANSITIONS[expected]:
            raise InvalidStateTransitionError(
                f"Cannot move relationship from {relationship.status.value} to {new.value}.")

        updated = self.uow.relationships.transition_relationship(
            relationship.id, expected, new, **changes)
        if updated is None:
            # Someone else moved it between our read and our write.
            raise InvalidStateTransitionError("Relationship was modified concurrently.")
        return updated

    def _get_invitation_or_404(self, invitation_id: uuid.UUID) -> Invitation:
        invitation = self.uow.relationships.get_invitation(invitation_id)
        if not invitation:
            raise NotFoundError("Invitation not found.")
        return invitation

    def _transition_invitation(
        self,
        invitation: Invitation,
        new: InvitationStatus,
        **changes: Any
    ) -> Invitation:
        if new not in INVITATION_TRANSITIONS[invitation.status]:
            raise InvalidStateTransitionError("Invitation is no longer valid.")

        updated = self.uow.relationships.transition_invitation(
            invitation.id, invitation.status, new, **changes)
        if updated is None:
            raise InvalidStateTransitionError("Invitation was modified concurrently.")
        return updated

    def _expire_invitation(self, invitation: Invitation) -> Invitation:
        with self.uow.atomic():
            expired = self._transition_invitation(invitation, InvitationStatus.EXPIRED)
            self._audit(None, "Invitation", invitation.id, AuditAction.UPDATE, {
                "old_status": InvitationStatus.PENDING,
                "new_status": InvitationStatus.EXPIRED,
            })
        logger.info(f"Invitation {invitation.id} expired at {invitation.expires_at}")
        return expired

    def _audit(
        self,
        actor_id: Optional[uuid.UUID],
        entity_type: str,
        entity_id: uuid.UUID,
        action: AuditAction,
        changes: Dict[str, Any]
    ) -> None:
        self.uow.audit.record(
            actor_user_id=actor_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            changes=jsonable_encoder(changes)
        )

    # ==========================================================================
    # FARM ADMIN INITIATED
    # ==========================================================================

    def create_relationship(
        self,
        farm_admin_id: uuid.UUID,
        service_provider_id: uuid.UUID,
        relationship_type: RelationshipType
    ) -> BusinessRelationship:
        """
        Links an existing provider to a Farm Admin. Starts ACTIVE.

        Raises:
            InvalidRoleError: caller is not a Farm Admin, or the type does not fit the provider's role.
            NotFoundError: the provider does not exist.
            DuplicateRelationshipError: an open relationship with the same keys exists.
        """
        relationship_type = coerce_enum(RelationshipType, relationship_type)

        # 1. Validate both parties
        self._require_farm_admin(farm_admin_id)
        service_provider = self.uow.users.get(service_provider_id)
        if not service_provider:
            raise NotFoundError("Service provider not found.")
        self._validate_relationship_type(relationship_type, service_provider.role)

        # 2. Uniqueness (pre-check + index)
        self._ensure_no_open_relationship(farm_admin_id, service_provider_id, relationship_type)

        # 3. Persist
        with self.uow.atomic():
            relationship = self._insert_relationship(
                farm_admin_id, service_provider_id, relationship_type,
                RelationshipStatus.ACTIVE, actor_id=farm_admin_id
            )

        logger.info(
            f"Relationship {relationship.id} ({relationship_type.value}) created between "
            f"farm admin {farm_admin_id} and {service_provider_id}")
        return relationship

    def approve_relationship_request(
        self, relationship_id: uuid.UUID, farm_admin_id: uuid.UUID
    ) -> BusinessRelationship:
        relationship = self._get_relationship_or_404(relationship_id)

        if relationship.farm_admin_id != farm_admin_id:
            logger.warning(
                f"User {farm_admin_id} tried to approve relationship {relationship_id} it does not own")
            raise UnauthorizedError("Unauthorized to approve this relationship request.")

        with self.uow.atomic():
            approved = self._transition_relationship(
                relationship, RelationshipStatus.PENDING, RelationshipStatus.ACTIVE,
                established_date=self.clock()
            )
            self._audit(farm_admin_id, "BusinessRelationship", relationship_id, AuditAction.UPDATE, {
                "action": "approve_relationship_request",
                "old_status": RelationshipStatus.PENDING,
                "new_status": RelationshipStatus.ACTIVE,
            })

        self.notifier.notify(approved.service_provider_id, NotificationKind.RELATIONSHIP_APPROVED, jsonable_encoder({
            "relationship_id": approved.id,
            "farm_admin_id": farm_admin_id,
            "relationship_type": approved.type,
        }))
        logger.info(f"Relationship request {relationship_id} approved by {farm_admin_id}")
        return approved

    def reject_relationship_request(
        self, relationship_id: uuid.UUID, farm_admin_id: uuid.UUID, reason: str
    ) -> BusinessRelationship:
        """
        Declines a pending request. The relationship becomes TERMINATED,
        which is final: the same provider/type pair has to be requested anew.
        """
        relationship = self._get_relationship_or_404(relationship_id)

        if relationship.farm_admin_id != farm_admin_id:
            logger.warning(
                f"User {farm_admin_id} tried to reject relationship {relationship_id} it does not own")
            raise UnauthorizedError("Unauthorized to reject this relationship request.")

        if not reason or not reason.strip():
            raise ValidationFailedError("A reason is required when rejecting a request.")

        now = self.clock()
        with self.uow.atomic():
            rejected = self._transition_relationship(
                relationship, RelationshipStatus.PENDING, RelationshipStatus.TERMINATED,
                termination_reason=reason.strip(), terminated_at=now
            )
            self._audit(farm_admin_id, "BusinessRelationship", relationship_id, AuditAction.UPDATE, {
                "action": "reject_relationship_request",
                "old_status": RelationshipStatus.PENDING,
                "new_status": RelationshipStatus.TERMINATED,
                "reason": reason.strip(),
            })

        self.notifier.notify(rejected.service_provider_id, NotificationKind.RELATIONSHIP_REJECTED, jsonable_encoder({
            "relationship_id": rejected.id,
            "farm_admin_id": farm_admin_id,
            "relationship_type": rejected.type,
            "reason": reason.strip(),
        }))
        logger.info(f"Relationship request {relationship_id} rejected by {farm_admin_id}")
        return rejected

    def terminate_relationship(
        self,
        relationship_id: uuid.UUID,
        reason: str,
        actor_id: Optional[uuid.UUID] = None
    ) -> BusinessRelationship:
        """
        Ends an ACTIVE relationship. When `actor_id` is given it must be one
        of the two parties.
        """
        relationship = self._get_relationship_or_404(relationship_id)
        parties = {relationship.farm_admin_id, relationship.service_provider_id}

        if actor_id is not None and actor_id not in parties:
            raise UnauthorizedError("Only a party to the relationship can terminate it.")

        if not reason or not reason.strip():
            raise ValidationFailedError("A termination reason is required.")

        now = self.clock()
        with self.uow.atomic():
            terminated = self._transition_relationship(
                relationship, RelationshipStatus.ACTIVE, RelationshipStatus.TERMINATED,
                termination_reason=reason.strip(), terminated_at=now
            )
            self._audit(actor_id, "BusinessRelationship", relationship_id, AuditAction.UPDATE, {
                "action": "terminate_relationship",
                "old_status": RelationshipStatus.ACTIVE,
                "new_status": RelationshipStatus.TERMINATED,
                "reason": reason.strip(),
            })

        for party_id in parties - {actor_id}:
            self.notifier.notify(party_id, NotificationKind.RELATIONSHIP_TERMINATED, jsonable_encoder({
                "relationship_id": terminated.id,
                "relationship_type": terminated.type,
                "terminated_by": actor_id,
                "reason": reason.strip(),
            }))
        logger.info(f"Relationship {relationship_id} terminated. Reason: {reason.strip()}")
        return terminated

    # ==========================================================================
    # SERVICE PROVIDER INITIATED
    # ==========================================================================

    def request_relationship(
        self,
        service_provider_id: uuid.UUID,
        farm_admin_id: uuid.UUID,
        relationship_type: RelationshipType,
        message: Optional[str] = None
    ) -> BusinessRelationship:
        """A provider asks a Farm Admin for a relationship. Starts PENDING."""
        relationship_type = coerce_enum(RelationshipType, relationship_type)

        service_provider = self.uow.users.get(service_provider_id)
        if not service_provider:
            raise NotFoundError("Service provider not found.")
        self._require_farm_admin(farm_admin_id)
        self._validate_relationship_type(relationship_type, service_provider.role)
        self._ensure_no_open_relationship(farm_admin_id, service_provider_id, relationship_type)

        with self.uow.atomic():
            relationship = self._insert_relationship(
                farm_admin_id, service_provider_id, relationship_type,
                RelationshipStatus.PENDING, actor_id=service_provider_id, message=message
            )

        self.notifier.notify(farm_admin_id, NotificationKind.RELATIONSHIP_REQUESTED, jsonable_encoder({
            "relationship_id": relationship.id,
            "service_provider_id": service_provider_id,
            "service_provider_name": service_provider.full_name,
            "service_provider_role": service_provider.role,
            "relationship_type": relationship_type,
            "message": message,
        }))
        logger.info(
            f"Relationship request {relationship.id} sent by {service_provider_id} to {farm_admin_id}")
        return relationship

    # ==========================================================================
    # READS
    # ==========================================================================

    def get_relationship(self, relationship_id: uuid.UUID) -> BusinessRelationship:
        return self._get_relationship_or_404(relationship_id)

    def get_relationships(self, user_id: uuid.UUID) -> List[BusinessRelationship]:
        """Farm Admins see the relationships they own; everyone else the ones they serve in."""
        user = self.uow.users.get(user_id)
        if not user:
            raise NotFoundError("User not found.")

        if user.role == UserRole.FARM_ADMIN:
            return self.uow.relationships.list_by_farm_admin(user_id)
        return self.uow.relationships.list_by_service_provider(user_id)

    def get_relationships_by_status(
        self, user_id: uuid.UUID, status: RelationshipStatus
    ) -> List[BusinessRelationship]:
        status = coerce_enum(RelationshipStatus, status)
        return [rel for rel in self.get_relationships(user_id) if rel.status == status]

    def get_pending_relationship_requests(self, farm_admin_id: uuid.UUID) -> List[BusinessRelationship]:
        self._require_farm_admin(
            farm_admin_id, "Only Farm Admins can view relationship requests")
        return [
            rel for rel in self.uow.relationships.list_by_farm_admin(farm_admin_id)
            if rel.status == RelationshipStatus.PENDING
        ]

    # ==========================================================================
    # FIELD MANAGER INVITATIONS
    # ==========================================================================

    def invite_field_manager(self, farm_admin_id: uuid.UUID, email: str) -> Invitation:
        """
        Creates a PENDING invitation carrying an opaque magic-link token.

        A pending invitation for the same address that is already past its
        expiry is moved to EXPIRED first, so it does not block a fresh one.
        """
        farm_admin = self._require_farm_admin(
            farm_admin_id, "Only Farm Admins can invite Field Managers")
        invitee_email = normalize_email(email)

        if self.uow.users.get_by_email(invitee_email):
            raise UserAlreadyExistsError()

        for existing in self.uow.relationships.list_invitations_by_email(invitee_email):
            if existing.status != InvitationStatus.PENDING:
                continue
            if self.clock() > existing.expires_at:
                self._expire_invitation(existing)
                continue
            raise DuplicatePendingInvitationError()

        issued = self.token_issuer.issue("invitation")
        now = self.clock()

        with self.uow.atomic():
            invitation = Invitation(
                inviter_id=farm_admin_id,
                invitee_email=invitee_email,
                invitee_role=UserRole.FIELD_MANAGER,
                relationship_type=RelationshipType.FIELD_MANAGER,
                status=InvitationStatus.PENDING,
                magic_link_token=issued.token,
                expires_at=issued.expires_at,
                sent_at=now,
                created_at=now,
                updated_at=now
            )
            try:
                self.uow.relationships.add_invitation(invitation)
            except UniqueConstraintViolation:
                raise DuplicatePendingInvitationError()

            self._audit(farm_admin_id, "Invitation", invitation.id, AuditAction.CREATE, {
                "invitee_email": invitee_email,
                "expires_at": issued.expires_at,
            })

        self.notifier.notify_address(invitee_email, NotificationKind.FIELD_MANAGER_INVITATION, jsonable_encoder({
            "invitation_id": invitation.id,
            "inviter_id": farm_admin_id,
            "inviter_name": farm_admin.full_name,
            "token": issued.token,
            "expires_at": issued.expires_at,
        }))
        logger.info(f"Field Manager invitation {invitation.id} sent by {farm_admin_id}")
        return invitation

    def validate_invitation_token(self, token: str) -> InviteDetails:
        """
        Public: resolves the link an invitee clicked into the details the
        landing page shows.
        """
        invitation = self.uow.relationships.get_invitation_by_token(token)
        if not invitation or invitation.status != InvitationStatus.PENDING:
            raise NotFoundError("Invalid or expired invitation link.")

        if self.clock() > invitation.expires_at:
            self._expire_invitation(invitation)
            raise ExpiredInvitationError()

        inviter = self.uow.users.get(invitation.inviter_id)
        return InviteDetails(
            invitation_id=invitation.id,
            email=invitation.invitee_email,
            inviter_name=inviter.full_name if inviter else "Unknown Farm Admin",
            invitee_role=invitation.invitee_role,
            relationship_type=invitation.relationship_type,
            expires_at=invitation.expires_at
        )

    def accept_invitation(self, invitation_id: uuid.UUID, user_data: UserRegistrationData) -> User:
        """
        Turns a pending invitation into an active Field Manager account.

        The new user, its ACTIVE relationship with the inviter and the
        ACCEPTED invitation are written in one transaction. If any step
        fails nothing is kept.
        """
        invitation = self._get_invitation_or_404(invitation_id)

        # 1. State & expiry
        if invitation.status != InvitationStatus.PENDING:
            raise InvalidStateTransitionError("Invitation is no longer valid.")

        if self.clock() > invitation.expires_at:
            self._expire_invitation(invitation)
            raise ExpiredInvitationError()

        # 2. The registration must match what was offered
        email = normalize_email(user_data.email)
        if email != invitation.invitee_email:
            raise EmailMismatchError()

        if coerce_enum(UserRole, user_data.selected_role) != invitation.invitee_role:
            raise RoleMismatchError()

        if not user_data.full_name or not user_data.full_name.strip():
            raise ValidationFailedError("Full name is required.")

        experience = (user_data.profile_data or {}).get("experience")
        if experience is not None and (type(experience) is not int or experience < 0):
            raise ValidationFailedError("Experience must be a non-negative integer.")

        if self.uow.users.get_by_email(email):
            raise UserAlreadyExistsError()

        self._require_farm_admin(invitation.inviter_id)
        self._validate_relationship_type(invitation.relationship_type, invitation.invitee_role)

        # 3. One unit of work: user + relationship + invitation
        now = self.clock()
        with self.uow.atomic():
            new_user = User(
                email=email,
                full_name=user_data.full_name.strip(),
                role=invitation.invitee_role,
                status=UserStatus.ACTIVE,
                email_verified=True,
                phone_number=user_data.phone_number,
                profile_data=user_data.profile_data or {},
                created_at=now,
                updated_at=now
            )
            try:
                self.uow.users.add(new_user)
            except UniqueConstraintViolation:
                raise UserAlreadyExistsError()

            relationship = self._insert_relationship(
                invitation.inviter_id, new_user.id, invitation.relationship_type,
                RelationshipStatus.ACTIVE, actor_id=new_user.id
            )

            self._transition_invitation(
                invitation, InvitationStatus.ACCEPTED,
                accepted_at=now, accepted_user_id=new_user.id
            )
            self._audit(new_user.id, "Invitation", invitation_id, AuditAction.UPDATE, {
                "old_status": InvitationStatus.PENDING,
                "new_status": InvitationStatus.ACCEPTED,
                "relationship_id": relationship.id,
            })

        logger.info(
            f"Invitation {invitation_id} accepted: user {new_user.id}, relationship {relationship.id}")
        return new_user

    def cancel_invitation(self, invitation_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> Invitation:
        invitation = self._get_invitation_or_404(invitation_id)

        if actor_id is not None and actor_id != invitation.inviter_id:
            raise UnauthorizedError("Only the inviter can cancel this invitation.")

        if invitation.status != InvitationStatus.PENDING:
            raise InvalidStateTransitionError("Can only cancel pending invitations.")

        with self.uow.atomic():
            cancelled = self._transition_invitation(invitation, InvitationStatus.CANCELLED)
            self._audit(actor_id, "Invitation", invitation_id, AuditAction.UPDATE, {
                "old_status": InvitationStatus.PENDING,
                "new_status": InvitationStatus.CANCELLED,
            })

        logger.info(f"Invitation {invitation_id} cancelled")
        return cancelled

    def get_invitations_by_user(self, user_id: uuid.UUID) -> List[Invitation]:
        return self.uow.relationships.list_invitations_by_inviter(user_id)

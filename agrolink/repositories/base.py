"""
Storage contracts consumed by the services.

The services never talk to a database directly. They receive a UnitOfWork
bundling the repositories below; the concrete storage layer is responsible
for the atomicity guarantees (unique open relationships, one pending
invitation per email, all-or-nothing invitation acceptance).
"""
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from agrolink.db.schema import (
    User, UserRole, BusinessRelationship, RelationshipStatus,
    Invitation, InvitationStatus, SupplyChainData, SupplyChainDataType,
    AuditAction, SystemAuditLog
)


class UniqueConstraintViolation(Exception):
    """Raised by a repository when an insert collides with a uniqueness rule."""


class UserRepository(ABC):
    @abstractmethod
    def get(self, user_id: uuid.UUID) -> Optional[User]: ...

    @abstractmethod
    def get_by_email(self, email: str) -> Optional[User]: ...

    @abstractmethod
    def list_by_role(self, role: UserRole) -> List[User]: ...

    @abstractmethod
    def add(self, user: User) -> User:
        """Persists a new user. Raises UniqueConstraintViolation on a taken email."""


class RelationshipRepository(ABC):
    # Business relationships
    @abstractmethod
    def add_relationship(self, relationship: BusinessRelationship) -> BusinessRelationship:
        """
        Inserts the relationship. Must raise UniqueConstraintViolation when an
        open (pending or active) relationship with the same farm admin,
        provider and type already exists, atomically with the insert.
        """

    @abstractmethod
    def get_relationship(self, relationship_id: uuid.UUID) -> Optional[BusinessRelationship]: ...

    @abstractmethod
    def list_by_farm_admin(self, farm_admin_id: uuid.UUID) -> List[BusinessRelationship]: ...

    @abstractmethod
    def list_by_service_provider(self, service_provider_id: uuid.UUID) -> List[BusinessRelationship]: ...

    @abstractmethod
    def transition_relationship(
        self,
        relationship_id: uuid.UUID,
        expected: RelationshipStatus,
        new: RelationshipStatus,
        **changes: Any
    ) -> Optional[BusinessRelationship]:
        """
        Compare-and-set on the status. Returns the updated relationship, or
        None when the stored status was no longer `expected`.
        """

    # Invitations
    @abstractmethod
    def add_invitation(self, invitation: Invitation) -> Invitation:
        """Raises UniqueConstraintViolation when the email already has a pending invitation."""

    @abstractmethod
    def get_invitation(self, invitation_id: uuid.UUID) -> Optional[Invitation]: ...

    @abstractmethod
    def get_invitation_by_token(self, token: str) -> Optional[Invitation]: ...

    @abstractmethod
    def list_invitations_by_email(self, email: str) -> List[Invitation]: ...

    @abstractmethod
    def list_invitations_by_inviter(self, inviter_id: uuid.UUID) -> List[Invitation]: ...

    @abstractmethod
    def transition_invitation(
        self,
        invitation_id: uuid.UUID,
        expected: InvitationStatus,
        new: InvitationStatus,
        **changes: Any
    ) -> Optional[Invitation]:
        """Compare-and-set on the invitation status, same contract as relationships."""


class SupplyChainRepository(ABC):
    @abstractmethod
    def add(self, record: SupplyChainData) -> SupplyChainData: ...

    @abstractmethod
    def get(self, data_id: uuid.UUID) -> Optional[SupplyChainData]: ...

    @abstractmethod
    def list_by_farm_admin_and_type(
        self, farm_admin_id: uuid.UUID, data_type: SupplyChainDataType
    ) -> List[SupplyChainData]: ...

    @abstractmethod
    def update(self, record: SupplyChainData) -> SupplyChainData: ...


class AuditLogRepository(ABC):
    @abstractmethod
    def record(
        self,
        actor_user_id: Optional[uuid.UUID],
        entity_type: str,
        entity_id: uuid.UUID,
        action: AuditAction,
        changes: Dict[str, Any],
    ) -> SystemAuditLog: ...

    @abstractmethod
    def list_for_entity(self, entity_id: uuid.UUID) -> List[SystemAuditLog]: ...


class UnitOfWork(ABC):
    """
    Groups the repositories over one storage transaction.

    Use `with uow.atomic():` around every mutation. The block commits when it
    exits normally and rolls back when it raises. Nested blocks join the
    outermost one, so only the outermost block commits.
    """
    users: UserRepository
    relationships: RelationshipRepository
    supply_chain: SupplyChainRepository
    audit: AuditLogRepository

    def __init__(self):
        self._depth = 0

    @contextmanager
    def atomic(self) -> Iterator["UnitOfWork"]:
        self._depth += 1
        try:
            yield self
        except BaseException:
            self._depth -= 1
            if self._depth == 0:
                self.rollback()
            raise
        else:
            self._depth -= 1
            if self._depth == 0:
                self.commit()

    @abstractmethod
    def commit(self) -> None: ...

    @abstractmethod
    def rollback(self) -> None: ...

import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from agrolink.db.schema import (
    User, UserRole, BusinessRelationship, RelationshipStatus,
    Invitation, InvitationStatus, SupplyChainData, SupplyChainDataType,
    AuditAction, SystemAuditLog
)
from agrolink.repositories.base import (
    UserRepository, RelationshipRepository, SupplyChainRepository,
    AuditLogRepository, UnitOfWork, UniqueConstraintViolation
)
from agrolink.utils.clock import utcnow


def _flush_or_raise(session: Session) -> None:
    """Flushes pending inserts so unique indexes are checked right away."""
    try:
        session.flush()
    except IntegrityError as e:
        raise UniqueConstraintViolation(str(e.orig)) from e


class SqlUserRepository(UserRepository):
    def __init__(self, session: Session):
        self.session = session

    def get(self, user_id: uuid.UUID) -> Optional[User]:
        return self.session.get(User, user_id)

    def get_by_email(self, email: str) -> Optional[User]:
        statement = select(User).where(User.email == email.strip().lower())
        return self.session.exec(statement).first()

    def list_by_role(self, role: UserRole) -> List[User]:
        return list(self.session.exec(select(User).where(User.role == role)).all())

    def add(self, user: User) -> User:
        self.session.add(user)
        _flush_or_raise(self.session)
        return user


class SqlRelationshipRepository(RelationshipRepository):
    def __init__(self, session: Session):
        self.session = session

    # ==========================================================================
    # BUSINESS RELATIONSHIPS
    # ==========================================================================

    def add_relationship(self, relationship: BusinessRelationship) -> BusinessRelationship:
        # The partial unique index on open triples turns a concurrent
        # duplicate into an IntegrityError here.
        self.session.add(relationship)
        _flush_or_raise(self.session)
        return relationship

    def get_relationship(self, relationship_id: uuid.UUID) -> Optional[BusinessRelationship]:
        return self.session.get(BusinessRelationship, relationship_id)

    def list_by_farm_admin(self, farm_admin_id: uuid.UUID) -> List[BusinessRelationship]:
        statement = (
            select(BusinessRelationship)
            .where(BusinessRelationship.farm_admin_id == farm_admin_id)
            .order_by(BusinessRelationship.created_at)
        )
        return list(self.session.exec(statement).all())

    def list_by_service_provider(self, service_provider_id: uuid.UUID) -> List[BusinessRelationship]:
        statement = (
            select(BusinessRelationship)
            .where(BusinessRelationship.service_provider_id == service_provider_id)
            .order_by(BusinessRelationship.created_at)
        )
        return list(self.session.exec(statement).all())

    def transition_relationship(
        self,
        relationship_id: uuid.UUID,
        expected: RelationshipStatus,
        new: RelationshipStatus,
        **changes: Any
    ) -> Optional[BusinessRelationship]:
        statement = (
            update(BusinessRelationship)
            .where(BusinessRelationship.id == relationship_id)
            .where(BusinessRelationship.status == expected)
            .values(status=new, updated_at=utcnow(), **changes)
        )
        result = self.session.exec(statement)
        if result.rowcount == 0:
            return None
        return self.session.get(BusinessRelationship, relationship_id, populate_existing=True)

    # ==========================================================================
    # INVITATIONS
    # ==========================================================================

    def add_invitation(self, invitation: Invitation) -> Invitation:
        self.session.add(invitation)
        _flush_or_raise(self.session)
        return invitation

    def get_invitation(self, invitation_id: uuid.UUID) -> Optional[Invitation]:
        return self.session.get(Invitation, invitation_id)

    def get_invitation_by_token(self, token: str) -> Optional[Invitation]:
        statement = select(Invitation).where(Invitation.magic_link_token == token)
        return self.session.exec(statement).first()

    def list_invitations_by_email(self, email: str) -> List[Invitation]:
        statement = (
            select(Invitation)
            .where(Invitation.invitee_email == email.strip().lower())
            .order_by(Invitation.sent_at)
        )
        return list(self.session.exec(statement).all())

    def list_invitations_by_inviter(self, inviter_id: uuid.UUID) -> List[Invitation]:
        statement = (
            select(Invitation)
            .where(Invitation.inviter_id == inviter_id)
            .order_by(Invitation.sent_at)
        )
        return list(self.session.exec(statement).all())

    def transition_invitation(
        self,
        invitation_id: uuid.UUID,
        expected: InvitationStatus,
        new: InvitationStatus,
        **changes: Any
    ) -> Optional[Invitation]:
        statement = (
            update(Invitation)
            .where(Invitation.id == invitation_id)
            .where(Invitation.status == expected)
            .values(status=new, updated_at=utcnow(), **changes)
        )
        result = self.session.exec(statement)
        if result.rowcount == 0:
            return None
        return self.session.get(Invitation, invitation_id, populate_existing=True)


class SqlSupplyChainRepository(SupplyChainRepository):
    def __init__(self, session: Session):
        self.session = session

    def add(self, record: SupplyChainData) -> SupplyChainData:
        self.session.add(record)
        self.session.flush()
        return record

    def get(self, data_id: uuid.UUID) -> Optional[SupplyChainData]:
        return self.session.get(SupplyChainData, data_id)

    def list_by_farm_admin_and_type(
        self, farm_admin_id: uuid.UUID, data_type: SupplyChainDataType
    ) -> List[SupplyChainData]:
        statement = (
            select(SupplyChainData)
            .where(SupplyChainData.farm_admin_id == farm_admin_id)
            .where(SupplyChainData.type == data_type)
            .order_by(SupplyChainData.created_at)
        )
        return list(self.session.exec(statement).all())

    def update(self, record: SupplyChainData) -> SupplyChainData:
        self.session.add(record)
        self.session.flush()
        return record


class SqlAuditLogRepository(AuditLogRepository):
    def __init__(self, session: Session):
        self.session = session

    def record(
        self,
        actor_user_id: Optional[uuid.UUID],
        entity_type: str,
        entity_id: uuid.UUID,
        action: AuditAction,
        changes: Dict[str, Any],
    ) -> SystemAuditLog:
        entry = SystemAuditLog(
            actor_user_id=actor_user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            changes=changes,
            timestamp=utcnow()
        )
        self.session.add(entry)
        return entry

    def list_for_entity(self, entity_id: uuid.UUID) -> List[SystemAuditLog]:
        statement = (
            select(SystemAuditLog)
            .where(SystemAuditLog.entity_id == entity_id)
            .order_by(SystemAuditLog.timestamp)
        )
        return list(self.session.exec(statement).all())


class SqlUnitOfWork(UnitOfWork):
    """All repositories share one Session, so one commit covers them all."""

    def __init__(self, session: Session):
        super().__init__()
        self.session = session
        self.users = SqlUserRepository(session)
        self.relationships = SqlRelationshipRepository(session)
        self.supply_chain = SqlSupplyChainRepository(session)
        self.audit = SqlAuditLogRepository(session)

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

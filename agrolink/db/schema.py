from typing import Optional, List, Dict, Any
from datetime import datetime
import uuid
from sqlmodel import SQLModel, Field, JSON, Index
from enum import Enum

from agrolink.utils.clock import utcnow


class UserRole(str, Enum):
    APP_ADMIN = "app_admin"
    FARM_ADMIN = "farm_admin"
    FIELD_MANAGER = "field_manager"
    FARMER = "farmer"
    LORRY_AGENCY = "lorry_agency"
    FIELD_EQUIPMENT_MANAGER = "field_equipment_manager"
    INPUT_SUPPLIER = "input_supplier"
    DEALER = "dealer"


class UserStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    PENDING_APPROVAL = "pending_approval"


class RelationshipType(str, Enum):
    FIELD_MANAGER = "field_manager"          # Internal staff of the farm
    FARMER_SUPPLIER = "farmer_supplier"      # Sells commodities to the farm
    LORRY_AGENCY = "lorry_agency"            # Moves commodities
    EQUIPMENT_PROVIDER = "equipment_provider"
    INPUT_SUPPLIER = "input_supplier"        # Seeds, fertilizer, chemicals
    DEALER = "dealer"                        # Buys the harvest


class RelationshipStatus(str, Enum):
    PENDING = "pending"        # Requested by the provider, waiting on the Farm Admin
    ACTIVE = "active"          # Approved or created directly by the Farm Admin
    TERMINATED = "terminated"  # Rejected or ended. Absorbing.


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class SupplyChainDataType(str, Enum):
    FIELD_OPERATIONS = "field_operations"
    EQUIPMENT_USAGE = "equipment_usage"
    INPUT_SUPPLY = "input_supply"
    COMMODITY_DELIVERY = "commodity_delivery"
    TRANSPORTATION = "transportation"
    SALES_TRANSACTION = "sales_transaction"


class AccessLevel(str, Enum):
    """Ordered capability: READ_ONLY < READ_WRITE < FULL_ACCESS."""
    READ_ONLY = "read_only"
    READ_WRITE = "read_write"
    FULL_ACCESS = "full_access"

    @property
    def rank(self) -> int:
        return list(type(self)).index(self)

    def grants(self, required: "AccessLevel") -> bool:
        return self.rank >= required.rank


class DataAccessType(str, Enum):
    READ = "read"
    WRITE = "write"
    DELETE = "delete"


class AuditAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"


class NotificationKind(str, Enum):
    RELATIONSHIP_REQUESTED = "relationship_requested"
    RELATIONSHIP_APPROVED = "relationship_approved"
    RELATIONSHIP_REJECTED = "relationship_rejected"
    RELATIONSHIP_TERMINATED = "relationship_terminated"
    FIELD_MANAGER_INVITATION = "field_manager_invitation"
    DATA_SHARED = "data_shared"
    DATA_UPDATED = "data_updated"


class NotificationStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class TimestampMixin(SQLModel):
    """
    Standard audit timestamps shared by every persisted entity.
    Both values are naive UTC.
    """
    created_at: datetime = Field(
        default_factory=utcnow,
        description="The UTC timestamp when this record was first persisted. Example: '2024-10-27 14:30:00'"
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column_kwargs={"onupdate": utcnow},
        description="The UTC timestamp when this record was last modified. Updates automatically."
    )


class User(TimestampMixin, SQLModel, table=True):
    """
    A platform account. Users are owned by the user-management side of the
    platform; this service reads them to authorize actions and only creates
    one when a Field Manager accepts an invitation.
    """
    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        description="The unique identifier for the user."
    )
    email: str = Field(
        unique=True,
        index=True,
        description="Lower-cased login email address. Example: 'field-mgr@example.com'"
    )
    full_name: str = Field(
        description="Display name of the person or business. Example: 'Asha Patel'"
    )
    role: UserRole = Field(
        index=True,
        description="The single platform role of the account. Example: 'farm_admin'"
    )
    status: UserStatus = Field(
        default=UserStatus.PENDING_APPROVAL,
        description="Only 'active' users pass authorization checks."
    )
    email_verified: bool = Field(default=False)
    phone_number: Optional[str] = Field(default=None)
    profile_data: Dict[str, Any] = Field(
        default_factory=dict,
        sa_type=JSON,
        description="Role specific profile attributes (farm size, fleet size, ...)."
    )


class BusinessRelationship(TimestampMixin, SQLModel, table=True):
    """
    The authorization edge between a Farm Admin and a Field Manager or
    Service Provider. The (farm_admin_id, service_provider_id, type) triple is
    unique among relationships that are not terminated.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)

    farm_admin_id: uuid.UUID = Field(foreign_key="user.id", index=True)
    service_provider_id: uuid.UUID = Field(
        foreign_key="user.id",
        index=True,
        description="The provider on the other side. Also holds the Field Manager id."
    )
    type: RelationshipType
    status: RelationshipStatus = Field(default=RelationshipStatus.PENDING)
    established_date: datetime = Field(default_factory=utcnow)

    permissions: Dict[str, Any] = Field(
        default_factory=dict,
        sa_type=JSON,
        description="Capability lists (can_read, can_write, can_delete, restrictions) derived from the type at creation."
    )

    request_message: Optional[str] = Field(
        default=None,
        description="Optional note sent by the provider with a relationship request."
    )
    termination_reason: Optional[str] = Field(default=None)
    terminated_at: Optional[datetime] = Field(default=None)


class Invitation(TimestampMixin, SQLModel, table=True):
    """
    A time-boxed offer for a prospective Field Manager to create an account
    and a relationship in one step. Only one pending invitation may exist per
    email address. Invitations are never deleted.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)

    inviter_id: uuid.UUID = Field(
        foreign_key="user.id",
        index=True,
        description="The Farm Admin who sent the invitation."
    )
    invitee_email: str = Field(index=True)
    invitee_role: UserRole = Field(default=UserRole.FIELD_MANAGER)
    relationship_type: RelationshipType = Field(
        default=RelationshipType.FIELD_MANAGER)
    status: InvitationStatus = Field(default=InvitationStatus.PENDING)

    magic_link_token: str = Field(
        unique=True,
        index=True,
        description="Opaque, high-entropy string included in the invitation link."
    )
    expires_at: datetime = Field(
        description="The invitation cannot be accepted after this timestamp."
    )
    sent_at: datetime = Field(default_factory=utcnow)
    accepted_at: Optional[datetime] = Field(default=None)
    accepted_user_id: Optional[uuid.UUID] = Field(
        default=None,
        foreign_key="user.id",
        description="The account created when the invitation was accepted."
    )


class SupplyChainData(TimestampMixin, SQLModel, table=True):
    """
    A unit of supply-chain data owned by a Farm Admin, together with the
    visibility list snapshotted when it was shared.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)

    farm_admin_id: uuid.UUID = Field(foreign_key="user.id", index=True)
    type: SupplyChainDataType = Field(index=True)
    payload: Dict[str, Any] = Field(default_factory=dict, sa_type=JSON)

    visibility: List[Dict[str, Any]] = Field(
        default_factory=list,
        sa_type=JSON,
        description="Ordered list of {user_id, user_role, access_level} entries."
    )


class SystemAuditLog(SQLModel, table=True):
    """
    Append-only trail of lifecycle changes (relationships, invitations,
    shared data). Written in the same transaction as the change itself.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    actor_user_id: Optional[uuid.UUID] = Field(default=None, index=True)
    entity_type: str = Field(index=True)
    entity_id: uuid.UUID = Field(index=True)
    action: AuditAction
    changes: Dict[str, Any] = Field(default_factory=dict, sa_type=JSON)
    timestamp: datetime = Field(default_factory=utcnow)


class Notification(SQLModel, table=True):
    """
    Outbox row for a notification that still has to be delivered by the
    email/SMS worker. Either the user id or the email address is set.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    recipient_user_id: Optional[uuid.UUID] = Field(default=None, index=True)
    recipient_email: Optional[str] = Field(default=None)
    kind: NotificationKind
    payload: Dict[str, Any] = Field(default_factory=dict, sa_type=JSON)
    status: NotificationStatus = Field(default=NotificationStatus.PENDING)
    created_at: datetime = Field(default_factory=utcnow)


# Partial unique indexes back the "one open relationship per triple" and
# "one pending invitation per email" rules at the storage level.
Index(
    "uq_businessrelationship_open_triple",
    BusinessRelationship.farm_admin_id,
    BusinessRelationship.service_provider_id,
    BusinessRelationship.type,
    unique=True,
    sqlite_where=BusinessRelationship.status != RelationshipStatus.TERMINATED,
    postgresql_where=BusinessRelationship.status != RelationshipStatus.TERMINATED,
)

Index(
    "uq_invitation_pending_email",
    Invitation.invitee_email,
    unique=True,
    sqlite_where=Invitation.status == InvitationStatus.PENDING,
    postgresql_where=Invitation.status == InvitationStatus.PENDING,
)

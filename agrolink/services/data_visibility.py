import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from fastapi.encoders import jsonable_encoder
from loguru import logger

from agrolink.core.access_matrix import (
    REQUIRED_ACCESS_LEVEL, access_level_for, role_for_relationship_type
)
from agrolink.core.config import settings
from agrolink.core.exceptions import (
    NotFoundError, UnauthorizedError, ValidationFailedError, NoActiveRelationshipError
)
from agrolink.db.schema import (
    User, UserRole, RelationshipType, RelationshipStatus, SupplyChainData,
    SupplyChainDataType, AccessLevel, DataAccessType, AuditAction, NotificationKind
)
from agrolink.repositories.base import UnitOfWork
from agrolink.services.notifications import Notifier
from agrolink.services.relationship import coerce_enum
from agrolink.utils.clock import utcnow


class DataVisibilityService:
    """
    Shares supply-chain records from a Farm Admin to its related users and
    enforces per-record access levels.

    Each record carries a visibility list snapshotted at share time from the
    Farm Admin's ACTIVE relationships and the data access matrix. With
    `revalidate` on, an entry only counts while the relationship behind it is
    still ACTIVE.
    """

    def __init__(
        self,
        uow: UnitOfWork,
        notifier: Notifier,
        clock: Callable[[], datetime] = utcnow,
        revalidate: Optional[bool] = None
    ):
        self.uow = uow
        self.notifier = notifier
        self.clock = clock
        self.revalidate = settings.revalidate_shared_access if revalidate is None else revalidate

    # ==========================================================================
    # HELPERS
    # ==========================================================================

    def _active_relationships_of(self, user: User):
        if user.role == UserRole.FARM_ADMIN:
            relationships = self.uow.relationships.list_by_farm_admin(user.id)
        else:
            relationships = self.uow.relationships.list_by_service_provider(user.id)
        return [rel for rel in relationships if rel.status == RelationshipStatus.ACTIVE]

    def _has_active_link(self, farm_admin_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        return any(
            rel.farm_admin_id == farm_admin_id and rel.status == RelationshipStatus.ACTIVE
            for rel in self.uow.relationships.list_by_service_provider(user_id)
        )

    @staticmethod
    def _entry_for(record: SupplyChainData, user_id: uuid.UUID) -> Optional[Dict[str, Any]]:
        for entry in record.visibility:
            if entry["user_id"] == str(user_id):
                return entry
        return None

    @staticmethod
    def _is_visible_to(record: SupplyChainData, user: User) -> bool:
        user_id = str(user.id)
        return any(
            entry["user_id"] == user_id or entry["user_role"] == user.role.value
            for entry in record.visibility
        )

    def _entry_level(self, user: User, record: SupplyChainData) -> Optional[AccessLevel]:
        """Level granted by `user`'s visibility entry on `record`, if it still holds."""
        entry = self._entry_for(record, user.id)
        if entry is None:
            return None

        if self.revalidate and not self._has_active_link(record.farm_admin_id, user.id):
            logger.warning(
                f"Ignoring stale visibility of {user.id} on {record.id}: relationship no longer active")
            return None

        return AccessLevel(entry["access_level"])

    def _build_visibility(self, farm_admin: User, data_type: SupplyChainDataType) -> List[Dict[str, Any]]:
        visibility = []
        for rel in self._active_relationships_of(farm_admin):
            level = access_level_for(rel.type, data_type)
            if level is None:
                continue
            visibility.append({
                "user_id": str(rel.service_provider_id),
                "user_role": role_for_relationship_type(rel.type).value,
                "access_level": level.value,
            })
        return visibility

    # ==========================================================================
    # SHARING & READS
    # ==========================================================================

    def share_data_with_related_users(
        self,
        farm_admin_id: uuid.UUID,
        data_type: SupplyChainDataType,
        payload: Dict[str, Any]
    ) -> SupplyChainData:
        """
        Persists a record owned by the Farm Admin and notifies everyone the
        matrix lets see it.
        """
        farm_admin = self.uow.users.get(farm_admin_id)
        if not farm_admin:
            raise NotFoundError("Farm Admin not found.")
        if farm_admin.role != UserRole.FARM_ADMIN:
            raise UnauthorizedError("Only Farm Admins can share supply chain data.")

        data_type = coerce_enum(SupplyChainDataType, data_type)
        if not isinstance(payload, dict):
            raise ValidationFailedError("Payload must be an object.")

        now = self.clock()
        with self.uow.atomic():
            record = SupplyChainData(
                farm_admin_id=farm_admin_id,
                type=data_type,
                payload=jsonable_encoder(payload),
                visibility=self._build_visibility(farm_admin, data_type),
                created_at=now,
                updated_at=now
            )
            self.uow.supply_chain.add(record)
            self.uow.audit.record(
                actor_user_id=farm_admin_id,
                entity_type="SupplyChainData",
                entity_id=record.id,
                action=AuditAction.CREATE,
                changes={"type": data_type.value, "shared_with": len(record.visibility)}
            )

        for entry in record.visibility:
            self.notifier.notify(uuid.UUID(entry["user_id"]), NotificationKind.DATA_SHARED, {
                "data_id": str(record.id),
                "farm_admin_id": str(farm_admin_id),
                "farm_admin_name": farm_admin.full_name,
                "data_type": data_type.value,
                "access_level": entry["access_level"],
            })

        logger.info(
            f"Farm admin {farm_admin_id} shared {data_type.value} record {record.id} "
            f"with {len(record.visibility)} user(s)")
        return record

    def get_accessible_data(self, user_id: uuid.UUID, data_type: SupplyChainDataType) -> List[SupplyChainData]:
        """
        Farm Admins get their own records of the type. Everyone else gets the
        records of each Farm Admin they hold an ACTIVE relationship with,
        filtered by the visibility list (entry for the user or its role).
        """
        user = self.uow.users.get(user_id)
        if not user:
            raise NotFoundError("User not found.")

        data_type = coerce_enum(SupplyChainDataType, data_type)

        if user.role == UserRole.FARM_ADMIN:
            return self.uow.supply_chain.list_by_farm_admin_and_type(user_id, data_type)

        # Several relationship types can link the same pair; visit each Farm Admin once.
        farm_admin_ids = dict.fromkeys(rel.farm_admin_id for rel in self._active_relationships_of(user))

        accessible = []
        for farm_admin_id in farm_admin_ids:
            records = self.uow.supply_chain.list_by_farm_admin_and_type(farm_admin_id, data_type)
            accessible.extend(record for record in records if self._is_visible_to(record, user))
        return accessible

    def check_data_access(self, user_id: uuid.UUID, data_id: uuid.UUID, access_type: DataAccessType) -> bool:
        """
        True when the user's level on the record covers `access_type`.
        The owning Farm Admin always passes. Unknown users, records or access
        types give False.
        """
        try:
            access_type = DataAccessType(access_type)
        except ValueError:
            return False

        record = self.uow.supply_chain.get(data_id)
        user = self.uow.users.get(user_id)
        if not record or not user:
            return False

        if user.role == UserRole.FARM_ADMIN and record.farm_admin_id == user.id:
            return True

        level = self._entry_level(user, record)
        if level is None:
            return False
        return level.grants(REQUIRED_ACCESS_LEVEL[access_type])

    def get_data_visibility_for_user(self, user_id: uuid.UUID, data_id: uuid.UUID) -> Optional[AccessLevel]:
        record = self.uow.supply_chain.get(data_id)
        user = self.uow.users.get(user_id)
        if not record or not user:
            return None
        return self._entry_level(user, record)

    # ==========================================================================
    # UPDATES
    # ==========================================================================

    def update_shared_data(self, data_id: uuid.UUID, user_id: uuid.UUID, updates: Dict[str, Any]) -> SupplyChainData:
        """Shallow-merges `updates` into the payload. Needs write access."""
        record = self.uow.supply_chain.get(data_id)
        if not record:
            raise NotFoundError("Supply chain data not found.")

        if not isinstance(updates, dict):
            raise ValidationFailedError("Updates must be an object.")

        if not self.check_data_access(user_id, data_id, DataAccessType.WRITE):
            logger.warning(f"User {user_id} denied write access to {data_id}")
            raise UnauthorizedError("Insufficient permissions to update this data.")

        with self.uow.atomic():
            # New dict so the JSON column registers the change.
            record.payload = {**record.payload, **jsonable_encoder(updates)}
            record.updated_at = self.clock()
            self.uow.supply_chain.update(record)
            self.uow.audit.record(
                actor_user_id=user_id,
                entity_type="SupplyChainData",
                entity_id=data_id,
                action=AuditAction.UPDATE,
                changes={"updated_keys": sorted(updates)}
            )

        self.notify_data_update(data_id, user_id)
        logger.info(f"Supply chain data {data_id} updated by {user_id}")
        return record

    def notify_data_update(self, data_id: uuid.UUID, updated_by: uuid.UUID) -> None:
        record = self.uow.supply_chain.get(data_id)
        if not record:
            return

        for entry in record.visibility:
            if entry["user_id"] == str(updated_by):
                continue
            self.notifier.notify(uuid.UUID(entry["user_id"]), NotificationKind.DATA_UPDATED, {
                "data_id": str(record.id),
                "data_type": record.type.value,
                "updated_by": str(updated_by),
            })

    def sync_field_manager_data(self, field_manager_id: uuid.UUID, farm_admin_id: uuid.UUID) -> List[SupplyChainData]:
        """Field-operations records of `farm_admin_id` the Field Manager can see."""
        linked = any(
            rel.farm_admin_id == farm_admin_id
            and rel.type == RelationshipType.FIELD_MANAGER
            and rel.status == RelationshipStatus.ACTIVE
            for rel in self.uow.relationships.list_by_service_provider(field_manager_id)
        )
        if not linked:
            raise NoActiveRelationshipError()

        return [
            record for record in self.get_accessible_data(field_manager_id, SupplyChainDataType.FIELD_OPERATIONS)
            if record.farm_admin_id == farm_admin_id
        ]

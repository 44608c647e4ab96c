"""
Tests for DataVisibilityService: sharing, per-record access levels,
updates and Field Manager sync.
"""
import uuid

import pytest

from agrolink.core.exceptions import (
    NotFoundError, UnauthorizedError, ValidationFailedError, NoActiveRelationshipError
)
from agrolink.db.schema import (
    RelationshipType, SupplyChainDataType, AccessLevel, DataAccessType,
    NotificationKind, UserRole
)
from agrolink.services.data_visibility import DataVisibilityService


@pytest.fixture
def linked(relationship_service, farm_admin, field_manager, farmer, dealer):
    """fa1 with an active Field Manager, Farmer and Dealer."""
    relationship_service.create_relationship(farm_admin.id, field_manager.id, RelationshipType.FIELD_MANAGER)
    relationship_service.create_relationship(farm_admin.id, farmer.id, RelationshipType.FARMER_SUPPLIER)
    dealer_rel = relationship_service.create_relationship(farm_admin.id, dealer.id, RelationshipType.DEALER)
    return dealer_rel


class TestShareData:
    def test_visibility_follows_matrix(self, visibility_service, linked, farm_admin, field_manager, farmer, dealer):
        record = visibility_service.share_data_with_related_users(
            farm_admin.id, SupplyChainDataType.FIELD_OPERATIONS, {"field": "north-7", "operation": "sowing"})

        entries = {entry["user_id"]: entry for entry in record.visibility}
        assert set(entries) == {str(field_manager.id), str(farmer.id)}
        assert entries[str(field_manager.id)]["access_level"] == "read_write"
        assert entries[str(field_manager.id)]["user_role"] == "field_manager"
        assert entries[str(farmer.id)]["access_level"] == "read_only"

    def test_notifies_each_visible_user(self, visibility_service, notifier, linked, farm_admin, field_manager, farmer, dealer):
        notifier.sent.clear()

        record = visibility_service.share_data_with_related_users(
            farm_admin.id, SupplyChainDataType.COMMODITY_DELIVERY, {"tonnes": 12})

        assert {to for to, kind, _ in notifier.sent if kind == NotificationKind.DATA_SHARED} == {farmer.id, dealer.id}
        _, payload = notifier.sent_to(dealer.id)[0]
        assert payload["data_id"] == str(record.id)
        assert payload["access_level"] == "read_only"

    def test_pending_relationships_are_ignored(self, visibility_service, relationship_service, farm_admin, make_user):
        supplier = make_user(UserRole.INPUT_SUPPLIER)
        relationship_service.request_relationship(supplier.id, farm_admin.id, RelationshipType.INPUT_SUPPLIER)

        record = visibility_service.share_data_with_related_users(
            farm_admin.id, SupplyChainDataType.INPUT_SUPPLY, {"product": "urea"})

        assert record.visibility == []

    def test_only_farm_admins_share(self, visibility_service, farmer):
        with pytest.raises(UnauthorizedError):
            visibility_service.share_data_with_related_users(
                farmer.id, SupplyChainDataType.COMMODITY_DELIVERY, {})

    def test_unknown_farm_admin(self, visibility_service):
        with pytest.raises(NotFoundError):
            visibility_service.share_data_with_related_users(
                uuid.uuid4(), SupplyChainDataType.COMMODITY_DELIVERY, {})


class TestAccessibleData:
    def test_field_manager_sees_exactly_the_farm_admins_records(
        self, visibility_service, relationship_service, linked, farm_admin, other_farm_admin, field_manager, clock
    ):
        first = visibility_service.share_data_with_related_users(
            farm_admin.id, SupplyChainDataType.FIELD_OPERATIONS, {"field": "north-7"})
        clock.advance(minutes=5)
        second = visibility_service.share_data_with_related_users(
            farm_admin.id, SupplyChainDataType.FIELD_OPERATIONS, {"field": "south-2"})
        visibility_service.share_data_with_related_users(
            farm_admin.id, SupplyChainDataType.TRANSPORTATION, {"route": "A104"})
        visibility_service.share_data_with_related_users(
            other_farm_admin.id, SupplyChainDataType.FIELD_OPERATIONS, {"field": "elsewhere"})

        records = visibility_service.get_accessible_data(field_manager.id, SupplyChainDataType.FIELD_OPERATIONS)

        assert [r.id for r in records] == [first.id, second.id]

    def test_farm_admin_sees_own_records(self, visibility_service, farm_admin):
        record = visibility_service.share_data_with_related_users(
            farm_admin.id, SupplyChainDataType.SALES_TRANSACTION, {"amount": 1000})

        assert [r.id for r in visibility_service.get_accessible_data(
            farm_admin.id, SupplyChainDataType.SALES_TRANSACTION)] == [record.id]

    def test_records_from_before_the_relationship_are_hidden(
        self, visibility_service, relationship_service, farm_admin, lorry_agency
    ):
        visibility_service.share_data_with_related_users(
            farm_admin.id, SupplyChainDataType.TRANSPORTATION, {"route": "A104"})
        relationship_service.create_relationship(farm_admin.id, lorry_agency.id, RelationshipType.LORRY_AGENCY)

        assert visibility_service.get_accessible_data(lorry_agency.id, SupplyChainDataType.TRANSPORTATION) == []

    def test_unknown_user(self, visibility_service):
        with pytest.raises(NotFoundError):
            visibility_service.get_accessible_data(uuid.uuid4(), SupplyChainDataType.TRANSPORTATION)


class TestCheckDataAccess:
    @pytest.fixture
    def field_record(self, visibility_service, linked, farm_admin):
        return visibility_service.share_data_with_related_users(
            farm_admin.id, SupplyChainDataType.FIELD_OPERATIONS, {"field": "north-7"})

    def test_owner_can_delete_even_with_empty_visibility(self, visibility_service, farm_admin):
        record = visibility_service.share_data_with_related_users(
            farm_admin.id, SupplyChainDataType.SALES_TRANSACTION, {"amount": 10})

        assert record.visibility == []
        assert visibility_service.check_data_access(farm_admin.id, record.id, DataAccessType.DELETE)

    def test_field_manager_levels(self, visibility_service, field_record, field_manager):
        assert visibility_service.check_data_access(field_manager.id, field_record.id, DataAccessType.READ)
        assert visibility_service.check_data_access(field_manager.id, field_record.id, "write")
        assert not visibility_service.check_data_access(field_manager.id, field_record.id, DataAccessType.DELETE)

    def test_read_only_entry(self, visibility_service, field_record, farmer):
        assert visibility_service.check_data_access(farmer.id, field_record.id, DataAccessType.READ)
        assert not visibility_service.check_data_access(farmer.id, field_record.id, DataAccessType.WRITE)

    def test_no_entry(self, visibility_service, field_record, dealer, other_farm_admin):
        assert not visibility_service.check_data_access(dealer.id, field_record.id, DataAccessType.READ)
        assert not visibility_service.check_data_access(other_farm_admin.id, field_record.id, DataAccessType.READ)

    def test_unknown_inputs_fail_closed(self, visibility_service, field_record, field_manager):
        assert not visibility_service.check_data_access(field_manager.id, field_record.id, "share")
        assert not visibility_service.check_data_access(field_manager.id, uuid.uuid4(), DataAccessType.READ)
        assert not visibility_service.check_data_access(uuid.uuid4(), field_record.id, DataAccessType.READ)

    def test_terminated_relationship_revokes_snapshot(
        self, visibility_service, relationship_service, field_record, linked, farm_admin, dealer, farmer
    ):
        farmer_rel = relationship_service.get_relationships(farmer.id)[0]
        relationship_service.terminate_relationship(farmer_rel.id, "Contract ended")

        assert not visibility_service.check_data_access(farmer.id, field_record.id, DataAccessType.READ)
        assert visibility_service.get_data_visibility_for_user(farmer.id, field_record.id) is None

    def test_snapshot_mode_keeps_access_after_termination(
        self, uow, notifier, clock, relationship_service, field_record, farmer
    ):
        farmer_rel = relationship_service.get_relationships(farmer.id)[0]
        relationship_service.terminate_relationship(farmer_rel.id, "Contract ended")

        snapshot = DataVisibilityService(uow, notifier, clock=clock, revalidate=False)

        assert snapshot.check_data_access(farmer.id, field_record.id, DataAccessType.READ)

    def test_visibility_level_for_user(self, visibility_service, field_record, field_manager, farmer, dealer, farm_admin):
        assert visibility_service.get_data_visibility_for_user(field_manager.id, field_record.id) == AccessLevel.READ_WRITE
        assert visibility_service.get_data_visibility_for_user(farmer.id, field_record.id) == AccessLevel.READ_ONLY
        assert visibility_service.get_data_visibility_for_user(dealer.id, field_record.id) is None
        assert visibility_service.get_data_visibility_for_user(farm_admin.id, field_record.id) is None

    def test_owner_has_no_visibility_entry_but_keeps_access(self, visibility_service, farm_admin):
        record = visibility_service.share_data_with_related_users(
            farm_admin.id, SupplyChainDataType.SALES_TRANSACTION, {"amount": 10})

        assert visibility_service.get_data_visibility_for_user(farm_admin.id, record.id) is None
        assert visibility_service.check_data_access(farm_admin.id, record.id, DataAccessType.WRITE)


class TestUpdateSharedData:
    @pytest.fixture
    def field_record(self, visibility_service, linked, farm_admin):
        return visibility_service.share_data_with_related_users(
            farm_admin.id, SupplyChainDataType.FIELD_OPERATIONS, {"field": "north-7", "stage": "sowing"})

    def test_field_manager_merges_updates(self, visibility_service, notifier, field_record, field_manager, farmer, clock):
        notifier.sent.clear()
        clock.advance(hours=2)

        updated = visibility_service.update_shared_data(field_record.id, field_manager.id, {"stage": "weeding"})

        assert updated.payload == {"field": "north-7", "stage": "weeding"}
        assert updated.updated_at == clock()
        assert notifier.kinds() == [NotificationKind.DATA_UPDATED]
        assert notifier.sent[0][0] == farmer.id

    def test_owner_update_notifies_all_visible_users(self, visibility_service, notifier, field_record, farm_admin):
        notifier.sent.clear()

        visibility_service.update_shared_data(field_record.id, farm_admin.id, {"stage": "harvest"})

        assert len(notifier.sent) == 2

    def test_read_only_user_cannot_update(self, visibility_service, field_record, farmer):
        with pytest.raises(UnauthorizedError):
            visibility_service.update_shared_data(field_record.id, farmer.id, {"stage": "harvest"})

    def test_unknown_record(self, visibility_service, field_manager):
        with pytest.raises(NotFoundError):
            visibility_service.update_shared_data(uuid.uuid4(), field_manager.id, {"stage": "harvest"})

    def test_updates_must_be_a_mapping(self, visibility_service, field_record, field_manager):
        with pytest.raises(ValidationFailedError):
            visibility_service.update_shared_data(field_record.id, field_manager.id, ["stage", "harvest"])


class TestSyncFieldManagerData:
    def test_returns_field_operations_of_that_farm_admin(
        self, visibility_service, relationship_service, linked, farm_admin, other_farm_admin, field_manager
    ):
        relationship_service.create_relationship(other_farm_admin.id, field_manager.id, RelationshipType.FIELD_MANAGER)
        mine = visibility_service.share_data_with_related_users(
            farm_admin.id, SupplyChainDataType.FIELD_OPERATIONS, {"field": "north-7"})
        visibility_service.share_data_with_related_users(
            other_farm_admin.id, SupplyChainDataType.FIELD_OPERATIONS, {"field": "ridge-1"})

        records = visibility_service.sync_field_manager_data(field_manager.id, farm_admin.id)

        assert [r.id for r in records] == [mine.id]

    def test_requires_active_field_manager_relationship(self, visibility_service, farm_admin, field_manager):
        with pytest.raises(NoActiveRelationshipError):
            visibility_service.sync_field_manager_data(field_manager.id, farm_admin.id)

    def test_provider_relationship_is_not_enough(self, visibility_service, linked, farm_admin, farmer):
        with pytest.raises(NoActiveRelationshipError):
            visibility_service.sync_field_manager_data(farmer.id, farm_admin.id)

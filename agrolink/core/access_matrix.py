"""
Static authorization tables.

Everything here is plain data, frozen at import time and shared by the
services: which provider role fits which relationship type, what a new
relationship is allowed to read and write, which access level each
relationship type gets on each kind of supply-chain data, and the role
dashboards with their permission bundles.

Bump ACCESS_MATRIX_VERSION whenever a table changes so audits can tell which
rules were in force.
"""
from types import MappingProxyType
from typing import Any, Dict, List

from agrolink.db.schema import (
    UserRole, RelationshipType, SupplyChainDataType, AccessLevel, DataAccessType
)


ACCESS_MATRIX_VERSION = "2024.1"


def _freeze(value: Any) -> Any:
    """Recursively turns dicts into read-only mappings and lists into tuples."""
    if isinstance(value, dict):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    return value


# 1. Relationship type -> role the service provider must hold
RELATIONSHIP_TYPE_ROLES = _freeze({
    RelationshipType.FIELD_MANAGER: UserRole.FIELD_MANAGER,
    RelationshipType.FARMER_SUPPLIER: UserRole.FARMER,
    RelationshipType.LORRY_AGENCY: UserRole.LORRY_AGENCY,
    RelationshipType.EQUIPMENT_PROVIDER: UserRole.FIELD_EQUIPMENT_MANAGER,
    RelationshipType.INPUT_SUPPLIER: UserRole.INPUT_SUPPLIER,
    RelationshipType.DEALER: UserRole.DEALER,
})

SERVICE_PROVIDER_ROLES = frozenset({
    UserRole.FARMER,
    UserRole.LORRY_AGENCY,
    UserRole.FIELD_EQUIPMENT_MANAGER,
    UserRole.INPUT_SUPPLIER,
    UserRole.DEALER,
})


# 2. Default capability lists stamped on a relationship when it is created
_BASE_READ = ["basic_profile", "contact_info"]

DEFAULT_RELATIONSHIP_PERMISSIONS = _freeze({
    RelationshipType.FIELD_MANAGER: {
        "can_read": _BASE_READ + ["field_operations", "crop_data", "equipment_usage"],
        "can_write": ["field_operations", "crop_status_updates"],
    },
    RelationshipType.FARMER_SUPPLIER: {
        "can_read": _BASE_READ + ["commodity_requirements", "delivery_schedules"],
        "can_write": ["commodity_availability", "delivery_updates"],
    },
    RelationshipType.LORRY_AGENCY: {
        "can_read": _BASE_READ + ["delivery_schedules", "transportation_requests"],
        "can_write": ["delivery_status", "transportation_updates"],
    },
    RelationshipType.EQUIPMENT_PROVIDER: {
        "can_read": _BASE_READ + ["equipment_requirements", "usage_schedules"],
        "can_write": ["equipment_availability", "maintenance_updates"],
    },
    RelationshipType.INPUT_SUPPLIER: {
        "can_read": _BASE_READ + ["input_requirements", "supply_schedules"],
        "can_write": ["input_availability", "supply_updates"],
    },
    RelationshipType.DEALER: {
        "can_read": _BASE_READ + ["commodity_availability", "harvest_schedules"],
        "can_write": ["purchase_orders", "pricing_updates"],
    },
})


# 3. Relationship type x data type -> access level. Missing pair = no access.
DATA_ACCESS_MATRIX = _freeze({
    RelationshipType.FIELD_MANAGER: {
        SupplyChainDataType.FIELD_OPERATIONS: AccessLevel.READ_WRITE,
        SupplyChainDataType.EQUIPMENT_USAGE: AccessLevel.READ_WRITE,
        SupplyChainDataType.INPUT_SUPPLY: AccessLevel.READ_ONLY,
    },
    RelationshipType.FARMER_SUPPLIER: {
        SupplyChainDataType.COMMODITY_DELIVERY: AccessLevel.READ_WRITE,
        SupplyChainDataType.FIELD_OPERATIONS: AccessLevel.READ_ONLY,
    },
    RelationshipType.LORRY_AGENCY: {
        SupplyChainDataType.TRANSPORTATION: AccessLevel.READ_WRITE,
        SupplyChainDataType.COMMODITY_DELIVERY: AccessLevel.READ_ONLY,
    },
    RelationshipType.EQUIPMENT_PROVIDER: {
        SupplyChainDataType.EQUIPMENT_USAGE: AccessLevel.READ_WRITE,
        SupplyChainDataType.FIELD_OPERATIONS: AccessLevel.READ_ONLY,
    },
    RelationshipType.INPUT_SUPPLIER: {
        SupplyChainDataType.INPUT_SUPPLY: AccessLevel.READ_WRITE,
        SupplyChainDataType.FIELD_OPERATIONS: AccessLevel.READ_ONLY,
    },
    RelationshipType.DEALER: {
        SupplyChainDataType.SALES_TRANSACTION: AccessLevel.READ_WRITE,
        SupplyChainDataType.COMMODITY_DELIVERY: AccessLevel.READ_ONLY,
    },
})

# Minimum level each record operation needs. FULL_ACCESS is the top level,
# so delete is only granted by FULL_ACCESS itself.
REQUIRED_ACCESS_LEVEL = _freeze({
    DataAccessType.READ: AccessLevel.READ_ONLY,
    DataAccessType.WRITE: AccessLevel.READ_WRITE,
    DataAccessType.DELETE: AccessLevel.FULL_ACCESS,
})


# 4. Resources that additionally require at least one active relationship
RELATIONSHIP_RESOURCES = frozenset({
    "field-operations",
    "supply-chain",
    "transactions",
    "communications",
    "commodity-delivery",
    "equipment-usage",
    "input-supply",
    "transportation",
})


# 5. Role dashboards: widgets, permission bundle and navigation
_BASE_PERMISSIONS = [
    {"resource": "profile", "actions": ["read", "update"]},
    {"resource": "dashboard", "actions": ["read"]},
]

_BASE_NAVIGATION = [
    {"id": "dashboard", "label": "Dashboard", "path": "/dashboard",
     "permissions": ["dashboard:read"]},
    {"id": "profile", "label": "Profile", "path": "/profile",
     "permissions": ["profile:read"]},
]

_SERVICE_PROVIDER_DASHBOARD = {
    "widgets": [
        {
            "id": "recent-transactions",
            "type": "recent_transactions",
            "title": "Recent Transactions",
            "data_source": "transactions",
            "permissions": ["transactions:read"],
            "config": {"limit": 10},
        },
    ],
    "permissions": _BASE_PERMISSIONS,
    "navigation": _BASE_NAVIGATION,
}

DASHBOARD_CONFIGS = _freeze({
    UserRole.APP_ADMIN: {
        "widgets": [
            {
                "id": "pending-approvals",
                "type": "pending_approvals",
                "title": "Pending Registrations",
                "data_source": "registration-requests",
                "permissions": ["registration:read", "registration:approve"],
                "config": {"show_all": True},
            },
            {
                "id": "system-overview",
                "type": "relationship_overview",
                "title": "System Overview",
                "data_source": "system-stats",
                "permissions": ["system:read"],
                "config": {"include_metrics": True},
            },
        ],
        "permissions": _BASE_PERMISSIONS + [
            {"resource": "registration", "actions": ["read", "approve", "reject"]},
            {"resource": "system", "actions": ["read", "manage"]},
        ],
        "navigation": _BASE_NAVIGATION + [
            {"id": "registrations", "label": "User Registrations",
             "path": "/registrations", "permissions": ["registration:read"]},
            {"id": "system", "label": "System Management",
             "path": "/system", "permissions": ["system:read"]},
        ],
    },
    UserRole.FARM_ADMIN: {
        "widgets": [
            {
                "id": "relationship-overview",
                "type": "relationship_overview",
                "title": "Business Relationships",
                "data_source": "business-relationships",
                "permissions": ["relationships:read"],
                "config": {"show_active": True},
            },
            {
                "id": "supply-chain-status",
                "type": "supply_chain_status",
                "title": "Supply Chain Status",
                "data_source": "supply-chain",
                "permissions": ["supply-chain:read"],
                "config": {"real_time": True},
            },
        ],
        "permissions": _BASE_PERMISSIONS + [
            {"resource": "relationships", "actions": ["create", "read", "update", "manage"]},
            {"resource": "field-managers", "actions": ["invite", "manage"]},
            {"resource": "supply-chain", "actions": ["read", "update"]},
        ],
        "navigation": _BASE_NAVIGATION + [
            {"id": "relationships", "label": "Business Relationships",
             "path": "/relationships", "permissions": ["relationships:read"]},
            {"id": "field-managers", "label": "Field Managers",
             "path": "/field-managers", "permissions": ["field-managers:manage"]},
            {"id": "supply-chain", "label": "Supply Chain",
             "path": "/supply-chain", "permissions": ["supply-chain:read"]},
        ],
    },
    UserRole.FIELD_MANAGER: {
        "widgets": [
            {
                "id": "field-operations",
                "type": "field_operations",
                "title": "Field Operations",
                "data_source": "field-data",
                "permissions": ["field-operations:read"],
                "config": {"editable": True},
            },
        ],
        "permissions": _BASE_PERMISSIONS + [
            {"resource": "field-operations", "actions": ["read", "update"]},
        ],
        "navigation": _BASE_NAVIGATION + [
            {"id": "field-operations", "label": "Field Operations",
             "path": "/field-operations", "permissions": ["field-operations:read"]},
        ],
    },
    UserRole.FARMER: _SERVICE_PROVIDER_DASHBOARD,
    UserRole.LORRY_AGENCY: _SERVICE_PROVIDER_DASHBOARD,
    UserRole.FIELD_EQUIPMENT_MANAGER: _SERVICE_PROVIDER_DASHBOARD,
    UserRole.INPUT_SUPPLIER: _SERVICE_PROVIDER_DASHBOARD,
    UserRole.DEALER: _SERVICE_PROVIDER_DASHBOARD,
})

# Served when a dashboard lookup fails so the UI can still render.
FALLBACK_DASHBOARD = _freeze({
    "widgets": [],
    "permissions": [{"resource": "profile", "actions": ["read"]}],
    "navigation": [
        {"id": "dashboard", "label": "Dashboard", "path": "/dashboard",
         "permissions": ["dashboard:read"]},
    ],
})


# 6. Extra permissions unlocked by holding at least one active relationship
_PROVIDER_RELATIONSHIP_PERMISSIONS = [
    "transactions:read", "communications:read", "communications:create",
]

RELATIONSHIP_DERIVED_PERMISSIONS = _freeze({
    UserRole.APP_ADMIN: ["relationships:read"],
    UserRole.FARM_ADMIN: [
        "relationships:read", "relationships:manage", "field-managers:invite",
        "supply-chain:read", "supply-chain:update",
    ],
    UserRole.FIELD_MANAGER: [
        "relationships:read", "field-operations:read", "field-operations:update",
    ],
    **{
        role: ["relationships:read"] + _PROVIDER_RELATIONSHIP_PERMISSIONS
        for role in SERVICE_PROVIDER_ROLES
    },
})


def role_for_relationship_type(relationship_type: RelationshipType) -> UserRole:
    return RELATIONSHIP_TYPE_ROLES[relationship_type]


def default_permissions(relationship_type: RelationshipType) -> Dict[str, List[Any]]:
    """Returns a fresh, JSON-serializable copy of the type's capability lists."""
    template = DEFAULT_RELATIONSHIP_PERMISSIONS[relationship_type]
    return {
        "can_read": list(template["can_read"]),
        "can_write": list(template["can_write"]),
        "can_delete": [],
        "restrictions": [],
    }


def access_level_for(relationship_type: RelationshipType, data_type: SupplyChainDataType):
    """Access level the matrix grants, or None when the pair is absent."""
    return DATA_ACCESS_MATRIX.get(relationship_type, {}).get(data_type)


def thaw(value: Any) -> Any:
    """Inverse of the freezing above: plain dicts and lists, safe to hand out."""
    if isinstance(value, MappingProxyType):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [thaw(v) for v in value]
    return value

# Overview: Permission system package.
# Re-exports all public APIs.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    PRODUCT_PERMISSIONS,
    INVENTORY_PERMISSIONS,
    SALES_PERMISSIONS,
    CASHIER_PERMISSIONS,
    USER_PERMISSIONS,
    SETTINGS_PERMISSIONS,
    FILE_PERMISSIONS,
    REPORT_PERMISSIONS,
)
from .roles import DEFAULT_TYPE_PERMISSIONS
from .helpers import (
    get_all_permission_codes,
    get_permissions_by_category,
    get_permission_definition,
    validate_permission_code,
)

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "PRODUCT_PERMISSIONS",
    "INVENTORY_PERMISSIONS",
    "SALES_PERMISSIONS",
    "CASHIER_PERMISSIONS",
    "USER_PERMISSIONS",
    "SETTINGS_PERMISSIONS",
    "FILE_PERMISSIONS",
    "REPORT_PERMISSIONS",
    "DEFAULT_TYPE_PERMISSIONS",
    "get_all_permission_codes",
    "get_permissions_by_category",
    "get_permission_definition",
    "validate_permission_code",
]

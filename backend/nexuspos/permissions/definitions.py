# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- PRODUCTS --

PRODUCT_PERMISSIONS = [
    ("products.create", "Create Products", "Add products to the catalogue", PermissionCategory.PRODUCTS),
    ("products.read", "View Products", "View products, prices and stock", PermissionCategory.PRODUCTS),
    ("products.update", "Edit Products", "Edit product details and tax configuration", PermissionCategory.PRODUCTS),
    ("products.delete", "Deactivate Products", "Deactivate products", PermissionCategory.PRODUCTS),
    (
        "products.adjust_price",
        "Adjust Prices",
        "Change product cost and price (recorded in price history)",
        PermissionCategory.PRODUCTS,
    ),
    ("products.adjust_stock", "Adjust Stock", "Change stock levels directly", PermissionCategory.PRODUCTS),
]


# -- INVENTORY --

INVENTORY_PERMISSIONS = [
    ("inventory.entrada", "Receive Stock", "Record incoming stock (entrada)", PermissionCategory.INVENTORY),
    ("inventory.salida", "Issue Stock", "Record outgoing stock (salida)", PermissionCategory.INVENTORY),
    ("inventory.ajuste", "Adjust Stock", "Record manual corrections (ajuste)", PermissionCategory.INVENTORY),
    ("inventory.merma", "Record Shrinkage", "Record loss and shrinkage (merma)", PermissionCategory.INVENTORY),
    (
        "inventory.devolucion",
        "Record Returns",
        "Record returned stock (devolucion)",
        PermissionCategory.INVENTORY,
    ),
]


# -- SALES --

SALES_PERMISSIONS = [
    ("sales.create", "Create Sale", "Ring up sales and take payment", PermissionCategory.SALES),
    ("sales.read", "View Sales", "View sales and receipts", PermissionCategory.SALES),
    ("sales.cancel", "Cancel Sale", "Cancel completed sales (PIN required)", PermissionCategory.SALES),
    ("sales.refund", "Refund Sale", "Refund completed sales (PIN required)", PermissionCategory.SALES),
    (
        "sales.modify_price",
        "Override Price",
        "Sell a line at a price other than the catalogue price",
        PermissionCategory.SALES,
    ),
]


# -- CASHIER --

CASHIER_PERMISSIONS = [
    ("cashier.open_drawer", "Open Drawer", "Open shifts and the cash drawer", PermissionCategory.CASHIER),
    ("cashier.close_shift", "Close Shift", "Close own shift with a cash count", PermissionCategory.CASHIER),
    (
        "cashier.view_reports",
        "Shift Reports",
        "View shift reports, force-close and reconcile shifts",
        PermissionCategory.CASHIER,
    ),
]


# -- USERS --

USER_PERMISSIONS = [
    ("users.create", "Create Users", "Register employees and customers", PermissionCategory.USERS),
    ("users.read", "View Users", "View employees and customers", PermissionCategory.USERS),
    ("users.update", "Edit Users", "Edit employees and customers, transfer shifts", PermissionCategory.USERS),
    ("users.delete", "Deactivate Users", "Deactivate employees and customers", PermissionCategory.USERS),
]


# -- SETTINGS --

SETTINGS_PERMISSIONS = [
    ("settings.business", "Business Settings", "Edit business data and registers", PermissionCategory.SETTINGS),
    ("settings.pos", "POS Settings", "Edit point-of-sale settings", PermissionCategory.SETTINGS),
    (
        "settings.permissions",
        "Manage Permissions",
        "Grant and revoke explicit permissions",
        PermissionCategory.SETTINGS,
    ),
]


# -- FILES --

FILE_PERMISSIONS = [
    ("files.upload", "Upload Files", "Upload product images and documents", PermissionCategory.FILES),
    ("files.read", "View Files", "View uploaded files", PermissionCategory.FILES),
    ("files.delete", "Delete Files", "Delete uploaded files", PermissionCategory.FILES),
]


# -- REPORTS --

REPORT_PERMISSIONS = [
    ("reports.inventory", "Inventory Reports", "Stock, low-stock and tax reports", PermissionCategory.REPORTS),
    ("reports.sales", "Sales Reports", "Sales totals and breakdowns", PermissionCategory.REPORTS),
    ("reports.audit", "Audit Log", "View the audit log", PermissionCategory.REPORTS),
]


PERMISSION_DEFINITIONS = (
    PRODUCT_PERMISSIONS
    + INVENTORY_PERMISSIONS
    + SALES_PERMISSIONS
    + CASHIER_PERMISSIONS
    + USER_PERMISSIONS
    + SETTINGS_PERMISSIONS
    + FILE_PERMISSIONS
    + REPORT_PERMISSIONS
)

# Overview: Default permission sets keyed by user type.

# owner ⊇ admin ⊇ cashier. These apply only to active users and only
# inside the user's own business; explicit assignments add on top.
#
# - owner: everything
# - admin: everything except deactivating users
# - cashier: selling at the till and closing their own shift

from .definitions import PERMISSION_DEFINITIONS


_ALL_CODES = [perm[0] for perm in PERMISSION_DEFINITIONS]

DEFAULT_TYPE_PERMISSIONS = {
    "owner": frozenset(_ALL_CODES),

    "admin": frozenset(code for code in _ALL_CODES if code != "users.delete"),

    "cashier": frozenset([
        "products.read",
        "inventory.salida",
        "sales.create",
        "sales.read",
        "files.read",
        "cashier.open_drawer",
        "cashier.close_shift",
    ]),
}

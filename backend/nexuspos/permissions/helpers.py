# Overview: Lookups over the permission catalogue.

from .definitions import PERMISSION_DEFINITIONS

_BY_CODE = {code: (code, name, description, category)
            for code, name, description, category in PERMISSION_DEFINITIONS}


def get_all_permission_codes():
    """Catalogue codes in declaration order."""
    return list(_BY_CODE)


def get_permissions_by_category(category):
    return [definition for definition in PERMISSION_DEFINITIONS if definition[3] == category]


def get_permission_definition(code):
    """Definition of one code as a dict, or None if the code is unknown."""
    definition = _BY_CODE.get(code)
    if definition is None:
        return None
    return dict(zip(("code", "name", "description", "category"), definition))


def validate_permission_code(code):
    return code in _BY_CODE

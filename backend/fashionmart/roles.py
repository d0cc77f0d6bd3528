# Overview: Fixed role names and the role sets routes are gated on.

"""
Roles are flat: there is no hierarchy and no inheritance. Each route declares
exactly which roles it accepts by passing one of these sets (or its own) to
@require_roles.
"""

ADMIN = "admin"
CUSTOMER = "customer"
DESIGNER = "designer"
STAFF = "staff"
INVENTORY_MANAGER = "inventory_manager"

ALL_ROLES = (ADMIN, CUSTOMER, DESIGNER, STAFF, INVENTORY_MANAGER)
DEFAULT_ROLE = CUSTOMER

ADMIN_ONLY = frozenset({ADMIN})
CUSTOMER_ONLY = frozenset({CUSTOMER})
DESIGNER_ONLY = frozenset({DESIGNER})
STAFF_ONLY = frozenset({STAFF})
INVENTORY_MANAGER_ONLY = frozenset({INVENTORY_MANAGER})
ADMIN_OR_STAFF = frozenset({ADMIN, STAFF})
ADMIN_OR_INVENTORY_MANAGER = frozenset({ADMIN, INVENTORY_MANAGER})
ANY_ROLE = frozenset(ALL_ROLES)


def is_valid_role(role: str | None) -> bool:
    return role in ALL_ROLES

"""
Permission constants and role mappings.

WHY: Centralized permission definitions ensure consistency across the application.
All permission codes and role mappings defined here.

DESIGN PRINCIPLES:
- Permissions are granular (one action per permission)
- Admin has all permissions
- The "user" role gets what a counter operator needs: read the catalog,
  ring up sales, restock, and run their own cash register
- Ownership (e.g. "only your own register") is checked by the services on
  top of these codes
"""

from .models.auth import ROLE_ADMIN, ROLE_USER


class PermissionCategory:
    """Permission categories for organization."""
    CLIENTS = "CLIENTS"
    CATALOG = "CATALOG"
    STOCK = "STOCK"
    SALES = "SALES"
    INSTALLMENTS = "INSTALLMENTS"
    REGISTERS = "REGISTERS"
    SYSTEM = "SYSTEM"


# Each permission is defined as: (code, name, description, category)
PERMISSION_DEFINITIONS = [
    (
        "VIEW_CLIENTS",
        "View Clients",
        "List and look up clients (needed to pick the client at checkout)",
        PermissionCategory.CLIENTS
    ),
    (
        "MANAGE_CLIENTS",
        "Manage Clients",
        "Create, edit and delete clients",
        PermissionCategory.CLIENTS
    ),
    (
        "VIEW_PRODUCTS",
        "View Products",
        "List products and stock levels",
        PermissionCategory.CATALOG
    ),
    (
        "MANAGE_PRODUCTS",
        "Manage Products",
        "Create, edit and delete products",
        PermissionCategory.CATALOG
    ),
    (
        "ADJUST_STOCK",
        "Adjust Stock",
        "Manually add or remove stock",
        PermissionCategory.STOCK
    ),
    (
        "RECORD_PURCHASE",
        "Record Purchase",
        "Register a restocking purchase (increments stock)",
        PermissionCategory.STOCK
    ),
    (
        "VIEW_PURCHASES",
        "View Purchases",
        "List restocking purchases",
        PermissionCategory.STOCK
    ),
    (
        "CREATE_SALE",
        "Create Sale",
        "Check out a cart (creates the sale, its installments and stock decrements)",
        PermissionCategory.SALES
    ),
    (
        "VIEW_SALES",
        "View Sales",
        "Browse sales history",
        PermissionCategory.SALES
    ),
    (
        "VIEW_INSTALLMENTS",
        "View Installments",
        "List installments grouped by client",
        PermissionCategory.INSTALLMENTS
    ),
    (
        "RECEIVE_INSTALLMENT",
        "Receive Installment",
        "Mark an installment as paid",
        PermissionCategory.INSTALLMENTS
    ),
    (
        "OPERATE_REGISTER",
        "Operate Register",
        "Open, close and record movements on your own cash register",
        PermissionCategory.REGISTERS
    ),
    (
        "VIEW_ALL_REGISTERS",
        "View All Registers",
        "See and close any operator's cash register",
        PermissionCategory.REGISTERS
    ),
    (
        "VIEW_REPORTS",
        "View Reports",
        "Dashboard figures",
        PermissionCategory.SYSTEM
    ),
]

ALL_PERMISSIONS = frozenset(code for code, _, _, _ in PERMISSION_DEFINITIONS)

DEFAULT_ROLE_PERMISSIONS = {
    ROLE_ADMIN: ALL_PERMISSIONS,
    ROLE_USER: frozenset({
        "VIEW_CLIENTS",
        "VIEW_PRODUCTS",
        "RECORD_PURCHASE",
        "VIEW_PURCHASES",
        "CREATE_SALE",
        "VIEW_SALES",
        "VIEW_INSTALLMENTS",
        "OPERATE_REGISTER",
    }),
}


def get_permissions_by_category():
    """Group permissions by category for UI display."""
    by_category: dict[str, list[dict]] = {}
    for code, name, description, category in PERMISSION_DEFINITIONS:
        by_category.setdefault(category, []).append({
            "code": code,
            "name": name,
            "description": description,
        })
    return by_category

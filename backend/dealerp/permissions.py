"""
Permission System Constants and Definitions

Centralized permission definitions ensure consistency across the application.
All permission codes and role mappings defined here.

- Permissions are granular (one action per permission)
- Categories group related permissions for UI display
- admin has all permissions, viewer is read-only
"""

# =============================================================================
# PERMISSION CATEGORIES
# =============================================================================

class PermissionCategory:
    """Permission categories for organization."""
    INVENTORY = "INVENTORY"
    SALES = "SALES"
    CUSTOMERS = "CUSTOMERS"
    USERS = "USERS"
    SYSTEM = "SYSTEM"


# =============================================================================
# PERMISSION DEFINITIONS
# =============================================================================

# Each permission is defined as: (code, name, description, category)
PERMISSION_DEFINITIONS = [
    # INVENTORY PERMISSIONS
    (
        "VIEW_INVENTORY",
        "View Inventory",
        "View products, stock levels, movements and vehicle units",
        PermissionCategory.INVENTORY
    ),
    (
        "MANAGE_PRODUCTS",
        "Manage Products",
        "Create, edit and delete products and locations",
        PermissionCategory.INVENTORY
    ),
    (
        "RECORD_MOVEMENT",
        "Record Movement",
        "Record manual stock movements (purchases, damage, adjustments)",
        PermissionCategory.INVENTORY
    ),
    (
        "MANAGE_SERIAL_UNITS",
        "Manage Vehicle Units",
        "Register individually tracked units by VIN",
        PermissionCategory.INVENTORY
    ),

    # SALES PERMISSIONS
    (
        "CREATE_SALE",
        "Create Sale",
        "Create sales (deducts stock and marks units sold)",
        PermissionCategory.SALES
    ),
    (
        "VIEW_SALES",
        "View Sales",
        "View sales history and download receipts",
        PermissionCategory.SALES
    ),

    # CUSTOMER PERMISSIONS
    (
        "MANAGE_CUSTOMERS",
        "Manage Customers",
        "View and create customer records",
        PermissionCategory.CUSTOMERS
    ),

    # SYSTEM PERMISSIONS
    (
        "VIEW_DASHBOARD",
        "View Dashboard",
        "View dashboard statistics and recent activity",
        PermissionCategory.SYSTEM
    ),

    # USER MANAGEMENT PERMISSIONS
    (
        "VIEW_USERS",
        "View Users",
        "View user accounts and their roles",
        PermissionCategory.USERS
    ),
    (
        "MANAGE_USERS",
        "Manage Users",
        "Create users, assign roles and deactivate accounts",
        PermissionCategory.USERS
    ),
]


# =============================================================================
# DEFAULT ROLE PERMISSIONS
# =============================================================================

DEFAULT_ROLES = [
    ("admin", "Full system access"),
    ("editor", "Inventory and sales operations"),
    ("viewer", "Read-only access"),
]

DEFAULT_ROLE_PERMISSIONS = {
    "admin": [code for code, _, _, _ in PERMISSION_DEFINITIONS],
    "editor": [
        "VIEW_INVENTORY",
        "MANAGE_PRODUCTS",
        "RECORD_MOVEMENT",
        "MANAGE_SERIAL_UNITS",
        "CREATE_SALE",
        "VIEW_SALES",
        "MANAGE_CUSTOMERS",
        "VIEW_DASHBOARD",
    ],
    "viewer": [
        "VIEW_INVENTORY",
        "VIEW_SALES",
        "VIEW_DASHBOARD",
    ],
}

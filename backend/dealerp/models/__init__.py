from .catalog import Product, Location, TrackingMode
from .inventory import SerialUnit, MovementEntry, UnitStatus, Direction, MovementReason
from .sales import Sale, SaleItem, SaleStatus, DocumentSequence
from .customers import Customer
from .auth import User, Role, UserRole, Permission, RolePermission, SessionToken, SecurityEvent

__all__ = [
    'Product', 'Location', 'TrackingMode',
    'SerialUnit', 'MovementEntry', 'UnitStatus', 'Direction', 'MovementReason',
    'Sale', 'SaleItem', 'SaleStatus', 'DocumentSequence',
    'Customer',
    'User', 'Role', 'UserRole', 'Permission', 'RolePermission', 'SessionToken', 'SecurityEvent',
]

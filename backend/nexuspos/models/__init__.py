from .business import Business
from .auth import User, PermissionAssignment, SessionToken
from .inventory import Department, Product, ServiceItem, InventoryMovement, PriceHistory
from .registers import CashRegister, CashShift
from .sales import Sale, SaleItem, Payment, FiscalSequence
from .customers import Customer
from .audit import AuditLog

__all__ = [
    'Business',
    'User', 'PermissionAssignment', 'SessionToken',
    'Department', 'Product', 'ServiceItem', 'InventoryMovement', 'PriceHistory',
    'CashRegister', 'CashShift',
    'Sale', 'SaleItem', 'Payment', 'FiscalSequence',
    'Customer',
    'AuditLog',
]

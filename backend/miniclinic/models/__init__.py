from .auth import User, Role, Permission, RolePermission, SessionToken
from .inventory import Product, InventoryItem
from .sales import Sale
from .audit import AuditLog, AUDIT_ACTIONS
from .settings import ModuleLock
from .patients import Patient, PaymentPlan, Payment
from .scheduling import Appointment, DoctorUnavailability
from .expenses import Expense, ExpenseCategory

__all__ = [
    'User', 'Role', 'Permission', 'RolePermission', 'SessionToken',
    'Product', 'InventoryItem',
    'Sale',
    'AuditLog', 'AUDIT_ACTIONS',
    'ModuleLock',
    'Patient', 'PaymentPlan', 'Payment',
    'Appointment', 'DoctorUnavailability',
    'Expense', 'ExpenseCategory',
]

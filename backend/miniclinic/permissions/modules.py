# Overview: Module, action and role name constants used as permission keys.


class Module:
    """Business areas; the first key of every permission pair."""
    PATIENTS = "patients"
    APPOINTMENTS = "appointments"
    MEDICAL_RECORDS = "medical_records"
    INVENTORY = "inventory"
    PRODUCTS = "products"
    PAYMENTS = "payments"
    EXPENSES = "expenses"
    MESSAGING = "messaging"
    USERS = "users"
    REPORTS = "reports"
    AUDIT_LOGS = "audit_logs"
    ORTHO_CONSENT = "ortho_consent"


class Action:
    """Operations; the second key of every permission pair."""
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


class RoleName:
    ADMIN = "admin"
    DOCTOR = "doctor"
    RECEPTIONIST = "receptionist"


MODULES = (
    Module.PATIENTS,
    Module.APPOINTMENTS,
    Module.MEDICAL_RECORDS,
    Module.INVENTORY,
    Module.PRODUCTS,
    Module.PAYMENTS,
    Module.EXPENSES,
    Module.MESSAGING,
    Module.USERS,
    Module.REPORTS,
    Module.AUDIT_LOGS,
    Module.ORTHO_CONSENT,
)

ACTIONS = (Action.CREATE, Action.READ, Action.UPDATE, Action.DELETE)

# Actions that change data; module locks only restrict these
MUTATING_ACTIONS = frozenset({Action.CREATE, Action.UPDATE, Action.DELETE})

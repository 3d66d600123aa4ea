# Overview: Default roles and the modules each one is granted.

from .modules import Module, RoleName, MODULES


# (name, description, grants_all_permissions)
DEFAULT_ROLES = [
    (RoleName.ADMIN, "Administrator with full access", True),
    (RoleName.DOCTOR, "Medical professional", False),
    (RoleName.RECEPTIONIST, "Front desk staff", False),
]

# Every action on each listed module is granted to the role.
DEFAULT_ROLE_MODULES = {
    RoleName.ADMIN: set(MODULES),
    RoleName.DOCTOR: {
        Module.PATIENTS,
        Module.APPOINTMENTS,
        Module.MEDICAL_RECORDS,
        Module.MESSAGING,
        Module.REPORTS,
        Module.ORTHO_CONSENT,
    },
    RoleName.RECEPTIONIST: {
        Module.PATIENTS,
        Module.APPOINTMENTS,
        Module.PAYMENTS,
        Module.MESSAGING,
        Module.INVENTORY,
        Module.PRODUCTS,
        Module.EXPENSES,
        Module.REPORTS,
        Module.ORTHO_CONSENT,
        Module.USERS,
    },
}

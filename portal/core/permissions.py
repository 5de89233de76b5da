from enum import Enum


class Role(str, Enum):
    ADMIN = "admin"
    STAFF = "staff"
    CLIENT = "client"


STAFF_ROLES = frozenset({Role.ADMIN, Role.STAFF})


def is_staff_role(role: str | Role) -> bool:
    try:
        return Role(role) in STAFF_ROLES
    except ValueError:
        return False

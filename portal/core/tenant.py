from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from portal.core.errors import PermissionDeniedError
from portal.core.permissions import Role, is_staff_role


@dataclass(slots=True, frozen=True)
class Actor:
    """Authenticated caller as asserted by the identity provider."""

    user_id: UUID
    role: Role
    org_id: UUID | None = None

    @property
    def is_staff(self) -> bool:
        return is_staff_role(self.role)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def can_access_org(self, org_id: UUID | None) -> bool:
        if self.is_staff:
            return True
        return org_id is not None and self.org_id == org_id


def ensure_org_access(actor: Actor, org_id: UUID | None) -> None:
    if not actor.can_access_org(org_id):
        raise PermissionDeniedError("Access to this organization is not allowed")


def require_staff(actor: Actor) -> None:
    if not actor.is_staff:
        raise PermissionDeniedError("Staff access required")


def require_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise PermissionDeniedError("Admin access required")


def scoped_org_id(actor: Actor, requested: UUID | None) -> UUID | None:
    """Resolve the organization filter for a listing.

    Clients are pinned to their own organization; staff may pass any (or none).
    """
    if actor.is_staff:
        return requested
    if requested is not None and requested != actor.org_id:
        raise PermissionDeniedError("Access to this organization is not allowed")
    if actor.org_id is None:
        raise PermissionDeniedError("Client account is not linked to an organization")
    return actor.org_id

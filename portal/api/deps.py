from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from portal.core import context
from portal.core.permissions import Role
from portal.core.security import JWTKeyError, decode_token
from portal.core.tenant import Actor
from portal.db.session import get_db
from portal.services.storage.adapter import StorageAdapter
from portal.services.storage.service import get_storage_adapter

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def actor_from_claims(payload: dict) -> Actor:
    try:
        user_id = UUID(str(payload["sub"]))
        role = Role(payload["role"])
        org_claim = payload.get("org")
        org_id = UUID(str(org_claim)) if org_claim else None
    except (KeyError, ValueError) as exc:
        raise _unauthorized("Token is missing required claims") from exc
    if role == Role.CLIENT and org_id is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Client account is not linked to an organization",
        )
    return Actor(user_id=user_id, role=role, org_id=org_id)


async def get_db_session(db: AsyncSession = Depends(get_db)) -> AsyncSession:
    return db


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Actor:
    if credentials is None or not credentials.credentials:
        raise _unauthorized("Not authenticated")
    try:
        payload = decode_token(credentials.credentials)
    except (ValueError, JWTKeyError) as exc:
        raise _unauthorized("Invalid or expired token") from exc
    actor = actor_from_claims(payload)
    context.bind_actor(actor.user_id, actor.role.value, actor.org_id)
    return actor


def require_role(*roles: Role):
    allowed = set(roles)

    async def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
        return actor

    return dependency


require_staff = require_role(Role.ADMIN, Role.STAFF)
require_admin = require_role(Role.ADMIN)


def get_storage() -> StorageAdapter:
    return get_storage_adapter()


def closed_query(model: type[BaseModel]):
    """Parse query parameters into ``model``, rejecting keys it does not declare."""

    def dependency(request: Request):
        try:
            return model.model_validate(dict(request.query_params))
        except PydanticValidationError as exc:
            raise RequestValidationError(
                exc.errors(include_url=False, include_context=False)
            ) from exc

    return dependency

"""Request context: who is acting, for which business and location.

The context is decoded from the bearer token once per request and handed to
every service explicitly.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status

from poscore.core.security import decode_access_token


class UserRole(str, Enum):
    """User roles for RBAC."""

    OWNER = "owner"
    MANAGER = "manager"
    STAFF = "staff"


# Role hierarchy: owner > manager > staff
ROLE_HIERARCHY = {
    UserRole.OWNER: 3,
    UserRole.MANAGER: 2,
    UserRole.STAFF: 1,
}


@dataclass(frozen=True)
class RequestContext:
    """Identity and scope of the caller.

    Attributes:
        business_id: Tenant the caller acts for; every query is scoped to it.
        location_id: Branch whose stock is reserved and released.
        user_id: Acting user, recorded as created_by/decided_by.
        role: RBAC role from the token.
        session_id: Open POS session, if the token was issued for one.
    """

    business_id: int
    location_id: int
    user_id: Optional[int] = None
    role: UserRole = UserRole.STAFF
    session_id: Optional[int] = None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_request_context(request: Request) -> RequestContext:
    """Build the request context from the Authorization bearer token."""
    payload = None
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header.split(" ", 1)[1]
        if token:
            payload = decode_access_token(token)

    if payload is None:
        raise _unauthorized("Not authenticated")

    user_id = payload.get("sub")
    business_id = payload.get("business_id")
    location_id = payload.get("location_id")
    if user_id is None or business_id is None or location_id is None:
        raise _unauthorized("Invalid token payload")

    try:
        role = UserRole(payload.get("role", UserRole.STAFF.value))
    except ValueError:
        raise _unauthorized("Invalid role in token")

    session_id = payload.get("session_id")
    try:
        return RequestContext(
            business_id=int(business_id),
            location_id=int(location_id),
            user_id=int(user_id),
            role=role,
            session_id=int(session_id) if session_id is not None else None,
        )
    except (TypeError, ValueError):
        raise _unauthorized("Invalid token payload")


def require_role(minimum_role: UserRole):
    """Dependency to require a minimum role level."""

    async def role_checker(
        context: Annotated[RequestContext, Depends(get_request_context)]
    ) -> RequestContext:
        if ROLE_HIERARCHY.get(context.role, 0) < ROLE_HIERARCHY.get(minimum_role, 0):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role {minimum_role.value} or higher",
            )
        return context

    return role_checker


CurrentContext = Annotated[RequestContext, Depends(get_request_context)]
RequireManager = Annotated[RequestContext, Depends(require_role(UserRole.MANAGER))]

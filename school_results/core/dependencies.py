"""FastAPI dependency injection utilities."""

import enum
from typing import Annotated

from fastapi import Depends, Header

from school_results.core.exceptions import AuthenticationError, PermissionDeniedError
from school_results.core.security import verify_access_token


class Role(str, enum.Enum):
    """Roles carried in the access token."""

    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"


class ActorContext:
    """The authenticated caller of a request."""

    def __init__(self, user_id: int, role: Role):
        self.user_id = user_id
        self.role = role

    @property
    def is_student(self) -> bool:
        return self.role == Role.STUDENT

    @property
    def can_view_unpublished(self) -> bool:
        """Staff see draft marks; students only see published results."""
        return self.role in (Role.ADMIN, Role.TEACHER)


def get_current_actor(
    authorization: str = Header(..., description="Bearer token"),
) -> ActorContext:
    """Extract and validate the caller from the JWT token."""
    if not authorization.startswith("Bearer "):
        raise AuthenticationError("Invalid authorization header format")

    token = authorization[7:]  # Remove "Bearer " prefix
    payload = verify_access_token(token)

    if not payload:
        raise AuthenticationError("Invalid or expired token")

    user_id_str = payload.get("sub")
    if not user_id_str:
        raise AuthenticationError("Invalid token payload")

    try:
        user_id = int(user_id_str)
    except ValueError:
        raise AuthenticationError("Invalid user ID in token")

    try:
        role = Role(payload.get("role"))
    except ValueError:
        raise AuthenticationError("Invalid role in token")

    return ActorContext(user_id=user_id, role=role)


def require_role(*roles: Role):
    """Dependency factory that requires one of the given roles."""

    def check_role(
        actor: Annotated[ActorContext, Depends(get_current_actor)],
    ) -> ActorContext:
        if actor.role not in roles:
            raise PermissionDeniedError(
                "You are not allowed to perform this action",
                required_roles=[r.value for r in roles],
            )
        return actor

    return check_role


# Type aliases for dependency injection
CurrentActor = Annotated[ActorContext, Depends(get_current_actor)]
StaffActor = Annotated[ActorContext, Depends(require_role(Role.ADMIN, Role.TEACHER))]
AdminActor = Annotated[ActorContext, Depends(require_role(Role.ADMIN))]

import logging
from typing import Annotated, Iterable

from fastapi import Depends
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.exceptions import AuthorizationDenied
from app.core.scope import CallerContext, CallerContextDep, get_caller_context
from app.domains.users.roles import Role

logger = logging.getLogger(__name__)

DbSession = Annotated[Session, Depends(get_db)]


def require_roles(required_roles: Iterable[Role]):
    """Gate a route on the caller holding at least one of `required_roles`."""
    required = [Role(role) for role in required_roles]

    def role_checker(caller: CallerContext = Depends(get_caller_context)) -> CallerContext:
        if caller.has_any_role(required):
            return caller
        logger.warning(
            f"User {caller.user_id} with roles {caller.roles} denied; requires one of "
            f"{[role.value for role in required]}"
        )
        raise AuthorizationDenied("Insufficient permissions")
    return role_checker


SystemAdmin = Annotated[CallerContext, Depends(require_roles([Role.SYSTEM_ADMIN]))]
CustomerManager = Annotated[
    CallerContext,
    Depends(require_roles([Role.CUSTOMER_ADMIN, Role.PROVIDER_GROUP_ADMIN])),
]
CustomerAdmin = Annotated[CallerContext, Depends(require_roles([Role.CUSTOMER_ADMIN]))]
AnyPortalUser = Annotated[CallerContext, Depends(require_roles(list(Role)))]

"""
FastAPI dependencies for authorization.

Components (policy engine, attribute source, settings) live on
app.state; nothing here is a module-level singleton.

Usage:
    from edunexia_authz.core.auth import CurrentSubject, Authorize, require_permission

    @router.get("/protected")
    async def handler(subject: CurrentSubject):
        ...

    @router.post("/invoices/{id}")
    async def handler(id: int, auth: Authorize):
        await auth.require("invoices", "update", entity_owner_id=invoice.created_by)

    @router.delete("/roles/{role_id}")
    async def handler(role_id: int, _: AuthorizationService = Depends(require_permission("permissions", "delete"))):
        ...
"""

from typing import Annotated, Callable

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError

from edunexia_authz.services.token import TokenService
from edunexia_authz.utils.context import set_context_subject

from .context import Subject
from .service import AuthorizationService

# Import to register default implementations
from . import policy  # noqa: F401
from . import conditions  # noqa: F401


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)


# ============================================================
# SUBJECT DEPENDENCIES
# ============================================================

async def get_current_subject(
    request: Request,
    token: str | None = Depends(oauth2_scheme),
) -> Subject:
    """
    Get current subject from the bearer token.

    Raises:
        HTTPException 401: If not authenticated
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        claims = TokenService(request.app.state.settings.authz).decode_access_token(token)
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    set_context_subject(claims.user_id)
    request.state.subject_id = claims.user_id
    return Subject(
        id=claims.user_id,
        institution_ids=claims.institution_ids,
        polo_ids=claims.polo_ids,
    )


# ============================================================
# AUTHORIZATION SERVICE DEPENDENCY
# ============================================================

async def get_authorization_service(
    request: Request,
    subject: Subject = Depends(get_current_subject),
) -> AuthorizationService:
    """
    Authorization service for the current subject, with its permissions loaded.

    Usage:
        async def handler(auth: Authorize):
            await auth.require("contacts", "read")
    """
    state = request.app.state
    auth = AuthorizationService(
        subject=subject,
        policy_engine=state.policy_engine,
        attribute_source=state.attribute_source,
        timeout=state.settings.authz.check_timeout,
    )
    await auth.load()
    return auth


def require_permission(resource: str, action: str) -> Callable:
    """
    Dependency factory for static permission checks.

    Usage:
        @router.get("/roles")
        async def list_roles(_: AuthorizationService = Depends(require_permission("permissions", "read"))):
            ...
    """

    async def check_permission(
        auth: AuthorizationService = Depends(get_authorization_service),
    ) -> AuthorizationService:
        await auth.require(resource, action)
        return auth

    return check_permission


# ============================================================
# TYPE ALIASES FOR CLEAN SIGNATURES
# ============================================================

# Authenticated subject (required)
CurrentSubject = Annotated[Subject, Depends(get_current_subject)]

# Authorization service
Authorize = Annotated[AuthorizationService, Depends(get_authorization_service)]

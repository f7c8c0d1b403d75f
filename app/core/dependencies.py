from collections.abc import Callable

from fastapi import Depends, Header, Request

from app.aggregator.access import CallerContext
from app.aggregator.service import ServiceContainer
from app.core.exceptions import InternalError
from app.core.security import extract_api_key


def get_container(request: Request) -> ServiceContainer:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise InternalError("Service not initialized")
    return container


async def get_caller(
    request: Request,
    container: ServiceContainer = Depends(get_container),
    x_api_key: str | None = Header(None, alias="X-API-Key"),
    authorization: str | None = Header(None),
) -> CallerContext:
    """Resolve the caller from X-API-Key or Authorization: Bearer. Anonymous when neither is sent."""
    raw_key = extract_api_key(x_api_key, authorization)
    client_ip = request.client.host if request.client else None
    return await container.access.authenticate(raw_key, client_ip)


async def get_admitted_caller(
    caller: CallerContext = Depends(get_caller),
    container: ServiceContainer = Depends(get_container),
) -> CallerContext:
    """Resolve the caller and count the call against its rate limits."""
    await container.access.admit(caller)
    return caller


def require_permission(permission: str) -> Callable:
    """Dependency factory: require an API key carrying `permission`.

    The call is also counted against the key's rate limits.

    Usage:
        @router.get("/audits", dependencies=[Depends(require_permission("security:read"))])
    """

    async def _check(
        caller: CallerContext = Depends(get_caller),
        container: ServiceContainer = Depends(get_container),
    ) -> CallerContext:
        container.access.require(caller, permission)
        await container.access.admit(caller)
        return caller

    return _check

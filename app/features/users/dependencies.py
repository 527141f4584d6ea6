"""
FastAPI dependencies for caller identity and request context.

Authentication happens upstream. The caller's user id arrives in the
X-User-Id header and the organization scope in X-Org-Id or an org_id
query parameter.
"""
from typing import Annotated, Optional
from fastapi import Header, HTTPException, Query, status


async def get_caller_id(
    x_user_id: Annotated[Optional[str], Header()] = None
) -> int:
    """
    Numeric id of the calling user.

    Usage:
        @router.get("/current-user/menus")
        async def my_menus(user_id: int = Depends(get_caller_id)):
            ...
    """
    if not x_user_id or not x_user_id.strip().isdigit():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid X-User-Id header",
        )
    return int(x_user_id)


async def get_requested_org_id(
    x_org_id: Annotated[Optional[str], Header()] = None,
    org_id: Annotated[Optional[int], Query()] = None
) -> Optional[int]:
    """
    Organization scope of the request, header first, then query string.

    None means "use the user's primary organization".
    """
    if x_org_id is not None and x_org_id.strip():
        if not x_org_id.strip().isdigit():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid X-Org-Id header",
            )
        return int(x_org_id)
    return org_id


def get_authorization_header(request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"

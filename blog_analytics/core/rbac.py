"""Role-based access control dependencies."""

from fastapi import Depends, HTTPException, status

from blog_analytics.core.constants import ROLE_ADMIN
from blog_analytics.core.security import get_current_claims


def require_role(role: str):
    """Return a FastAPI dependency that enforces the token's role claim."""

    async def _check(claims: dict = Depends(get_current_claims)) -> dict:
        if claims.get("role") != role:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"This endpoint requires the '{role}' role",
            )
        return claims

    return _check


require_admin = require_role(ROLE_ADMIN)

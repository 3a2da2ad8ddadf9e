from typing import Dict, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from jobboard.db.session import SessionAsync
from jobboard.models.user import User
from jobboard.core.security import SECRET_KEY, ALGORITHM
from jobboard.core.config import settings
from jobboard.core.permissions import CompanyRole
from jobboard.services.authorization import authorize

oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl="/api/auth/token",
    description="Authentication with email and password"
)


async def get_db():
    async with SessionAsync() as session:
        yield session


async def get_redis():
    redis = aioredis.from_url(settings.REDIS_URL)
    try:
        yield redis
    finally:
        await redis.aclose()


async def get_current_user(
    request: Request,
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
):
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        user_id: str = payload.get("sub")
        tv = payload.get("tv")
        if user_id is None or tv is None:
            raise credentials_exception
    except JWTError:
        raise credentials_exception

    if await redis.exists(f"blacklist:{token}"):
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == int(user_id)))
    user = result.scalar_one_or_none()
    if not user or int(tv) != int(user.token_version or 1):
        raise credentials_exception

    request.state.user_id = user.id
    return user


# ==================== Company Role Dependencies ====================

def require_company_role(*roles: CompanyRole):
    """
    Factory to create a dependency that gates a route on the caller's company role.

    The organization comes from the `organization_id` path parameter when the
    route has one, otherwise from the caller's own company.

    Usage:
        @router.get("/{organization_id}/members")
        async def list_members(
            context: Dict = Depends(require_company_role(CompanyRole.ADMIN, CompanyRole.RECRUITER)),
            db: AsyncSession = Depends(get_db)
        ):
            ...

    Args:
        roles: Company roles allowed through

    Returns:
        Dependency returning the gate context
        {organization_id, organization, user, role}
    """
    async def role_checker(
        request: Request,
        organization_id: Optional[int] = None,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db)
    ) -> Dict:
        context = await authorize(db, current_user, organization_id, roles)
        request.state.company_role = context["role"].value
        request.state.organization_id = context["organization_id"]
        return context

    return role_checker

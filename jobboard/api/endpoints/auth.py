"""
    Authentication Endpoints
    Issues and revokes JWT access tokens and exposes the caller's profile.
    Endpoints:
    - /token: OAuth2 password flow (used by the Swagger UI "Authorize" button).
    - /login: Authenticates with a JSON body and issues an access token.
    - /register: Registers a new user and issues an access token.
    - /me: Returns the caller's profile, repaired from the organization side, and a fresh token.
    - /me/role: Changes the caller's global role (candidate or recruiter).
    - /logout: Revokes the current token through the Redis blacklist.
    Tokens carry the user id (sub), the user's token version (tv) and an expiry (exp);
    bumping the token version invalidates every token issued before.
"""
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from jose import JWTError, jwt
import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from jobboard.schemas.user import GlobalRoleUpdate, UserCreate, UserOut
from jobboard.schemas.auth import Token, Login
from jobboard.api.dependencies import get_current_user, get_db, get_redis, oauth2_scheme
from jobboard.models.user import User
from jobboard.core.exceptions import ConflictError, storage_errors
from jobboard.core.logging import get_logger
from jobboard.core.security import create_access_token, get_password_hash, verify_password, SECRET_KEY, ALGORITHM
from jobboard.services import affiliation

router = APIRouter()
logger = get_logger(__name__)


def _token_for(user: User) -> str:
    return create_access_token(data={"sub": str(user.id)}, token_version=user.token_version)


async def _repair_role_on_login(db: AsyncSession, user: User) -> None:
    """Re-derive the global role from the stored company role before issuing a token."""
    if not affiliation.repair_global_role(user):
        return
    async with storage_errors("Failed to refresh role", db=db, user_id=user.id):
        await db.commit()
    logger.info(f"auth.role_repaired user={user.id} role={user.role}")


@router.post("/token", response_model=Token)
async def oauth2_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db)
):
    """
    Standard OAuth2 endpoint.

    The OAuth2 'username' field carries the user's email.
    """
    result = await db.execute(select(User).filter(User.email == form_data.username))
    user = result.scalar_one_or_none()

    if not user or not verify_password(form_data.password, user.password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    await _repair_role_on_login(db, user)
    return {"access_token": _token_for(user), "token_type": "bearer"}


@router.post("/login", response_model=Token)
async def login(login_data: Login, db: AsyncSession = Depends(get_db)):
    """Same as /token with a JSON body."""
    result = await db.execute(select(User).filter(User.email == login_data.email))
    user = result.scalar_one_or_none()

    if not user or not verify_password(login_data.password, user.password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    await _repair_role_on_login(db, user)
    return {"access_token": _token_for(user), "token_type": "bearer", "user": user}


@router.post("/register", response_model=Token, status_code=status.HTTP_201_CREATED)
async def register(user: UserCreate, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(User).filter(User.email == user.email))
    if result.scalar_one_or_none():
        raise ConflictError("Email already registered")

    new_user = User(
        name=user.name,
        email=user.email,
        password=get_password_hash(user.password),
        role=user.role.value,
    )
    async with storage_errors("Failed to register user", db=db):
        db.add(new_user)
        await db.commit()
        await db.refresh(new_user)

    logger.info(f"auth.registered user={new_user.id} role={new_user.role}")
    return {"access_token": _token_for(new_user), "token_type": "bearer", "user": new_user}


@router.get("/me", response_model=Token)
async def read_me(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Caller's profile with a fresh token.

    The affiliation mirror is rebuilt from the organization tables first, so
    the profile never reports a stale company or role.
    """
    await affiliation.rebuild_affiliation(db, current_user)
    return {"access_token": _token_for(current_user), "token_type": "bearer", "user": current_user}


@router.patch("/me/role", response_model=UserOut)
async def update_my_role(
    payload: GlobalRoleUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Choose the global role.

    Affiliated users cannot pick a role other than the one their company role implies.
    """
    if current_user.role == payload.role.value:
        raise ConflictError(f"Role is already '{payload.role.value}'")

    required = affiliation.global_role_for(current_user, payload.role)
    if required != payload.role:
        raise ConflictError(
            f"Your company role '{current_user.company_role}' requires the '{required.value}' role"
        )

    async with storage_errors("Failed to update role", db=db, user_id=current_user.id):
        current_user.role = payload.role.value
        await db.commit()
        await db.refresh(current_user)

    logger.info(f"auth.role_changed user={current_user.id} role={current_user.role}")
    return current_user


@router.post("/logout")
async def logout(
    token: str = Depends(oauth2_scheme),
    current_user: User = Depends(get_current_user),
    redis: aioredis.Redis = Depends(get_redis)
):
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    ttl = int(payload["exp"]) - int(datetime.now(timezone.utc).timestamp())
    if ttl > 0:
        await redis.setex(f"blacklist:{token}", ttl, "revoked")

    logger.info(f"auth.logout user={current_user.id}")
    return {"message": "Logout successful"}

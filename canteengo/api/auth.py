"""
CanteenGo — Auth API routes
"""
from jose import JWTError

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from canteengo.api.deps import run_store_op
from canteengo.core.config import get_settings
from canteengo.core.security import create_access_token, create_refresh_token, decode_token
from canteengo.db.database import get_db
from canteengo.db.user_ops import authenticate, get_role, get_user_summary, register_user
from canteengo.middleware.auth import actor_id
from canteengo.models import User
from canteengo.schemas.auth import (
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
    UserResponse,
)

settings = get_settings()
router = APIRouter(prefix="/auth", tags=["auth"])


async def _issue_tokens(db: AsyncSession, user_id: str) -> TokenResponse:
    role = await get_role(db, user_id)
    token_data = {"sub": user_id, "role": role.value if role else None}
    return TokenResponse(
        access_token=create_access_token(token_data),
        refresh_token=create_refresh_token({"sub": user_id}),
        expires_in=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterRequest, db: AsyncSession = Depends(get_db)):
    """Create an account; its profile and role rows are written in the same transaction."""
    return await run_store_op(register_user(db, payload), "Registration")


@router.post("/login", response_model=TokenResponse)
async def login(payload: LoginRequest, db: AsyncSession = Depends(get_db)):
    user = await run_store_op(authenticate(db, payload.email, payload.password), "Login")
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return await _issue_tokens(db, user.id)


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(payload: RefreshRequest, db: AsyncSession = Depends(get_db)):
    """Issue new access token from valid refresh token."""
    try:
        claims = decode_token(payload.refresh_token)
        if claims.get("type") != "refresh":
            raise ValueError("Wrong token type")
    except (JWTError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired refresh token."
        )

    if await db.get(User, claims["sub"]) is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found.")
    return await _issue_tokens(db, claims["sub"])


@router.get("/me", response_model=UserResponse)
async def me(request: Request, db: AsyncSession = Depends(get_db)):
    summary = await run_store_op(get_user_summary(db, actor_id(request)), "Profile lookup")
    if summary is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found.")
    return summary

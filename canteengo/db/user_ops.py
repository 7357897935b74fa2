"""
CanteenGo — Registration and lookup of users
"""
import logging
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from canteengo.core.errors import ConflictError
from canteengo.core.security import hash_password, verify_password
from canteengo.models import Profile, Role, User, UserRole
from canteengo.schemas.auth import RegisterRequest, UserResponse

logger = logging.getLogger(__name__)


def profile_from_signup(user: User, metadata: dict) -> Profile:
    """Build the profile row that every new account gets."""
    return Profile(id=user.id, name=(metadata.get("name") or "").strip(), email=user.email)


async def register_user(db: AsyncSession, payload: RegisterRequest) -> UserResponse:
    existing = await db.execute(select(User.id).where(User.email == payload.email))
    if existing.first() is not None:
        raise ConflictError("Email already registered.")

    user = User(email=payload.email, hashed_password=hash_password(payload.password))
    db.add(user)
    await db.flush()

    profile = profile_from_signup(user, {"name": payload.name})
    db.add(profile)
    db.add(UserRole(user_id=user.id, role=payload.role))
    await db.commit()

    logger.info("Registered %s %s", payload.role.value, user.id)
    return UserResponse(id=user.id, email=user.email, name=profile.name, role=payload.role)


async def authenticate(db: AsyncSession, email: str, password: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email))
    user: User | None = result.scalar_one_or_none()
    if user is None or not verify_password(password, user.hashed_password):
        return None
    return user


async def get_role(db: AsyncSession, user_id: str) -> Role | None:
    result = await db.execute(select(UserRole.role).where(UserRole.user_id == user_id).limit(1))
    return result.scalar_one_or_none()


async def get_user_summary(db: AsyncSession, user_id: str) -> UserResponse | None:
    result = await db.execute(
        select(User, Profile).join(Profile, Profile.id == User.id, isouter=True).where(User.id == user_id)
    )
    row = result.first()
    if row is None:
        return None
    user, profile = row
    return UserResponse(
        id=user.id,
        email=user.email,
        name=profile.name if profile else "",
        role=await get_role(db, user_id),
    )

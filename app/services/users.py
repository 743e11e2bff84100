from datetime import datetime

from beanie.operators import Set
from pymongo.errors import DuplicateKeyError

from app.core.audit import log_event
from app.core.config import get_settings
from app.core.exceptions import BadRequestError, ConflictError, UnauthorizedError
from app.core.logging import get_logger
from app.core.security import hash_password, verify_password
from app.models.user import User
from app.services import credits as credits_service

log = get_logger(__name__)

MIN_PASSWORD_LENGTH = 8


def _normalize_email(email: str) -> str:
    email = (email or "").strip().lower()
    if "@" not in email:
        raise BadRequestError("Invalid email")
    return email


async def sign_up(email: str, password: str, name: str = "") -> User:
    email = _normalize_email(email)
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise BadRequestError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if await User.find_one(User.email == email):
        raise ConflictError("Email already registered")
    user = User(
        email=email,
        name=name.strip(),
        password_hash=hash_password(password),
        last_login_at=datetime.utcnow(),
    )
    try:
        await user.insert()
    except DuplicateKeyError as e:
        raise ConflictError("Email already registered") from e
    log.info("user_created", user_id=str(user.id), email=user.email)
    await log_event(user.id, "user_created", "user", user.id, {"email": user.email})

    bonus = get_settings().signup_bonus_credits
    if bonus > 0:
        result = await credits_service.credit(
            user.id, bonus, "signup_bonus", idempotency_key=f"signup:{user.id}"
        )
        user.credits = result.balance
    return user


async def sign_in(email: str, password: str) -> User:
    user = await User.find_one(User.email == _normalize_email(email))
    if not user or not verify_password(password, user.password_hash):
        raise UnauthorizedError("Invalid email or password")
    # Targeted update; a full save would overwrite a concurrently debited balance
    user.last_login_at = datetime.utcnow()
    await User.find_one(User.id == user.id).update(Set({User.last_login_at: user.last_login_at}))
    log.info("user_login", user_id=str(user.id))
    return user


async def invalidate_sessions(user: User) -> None:
    """Bump session_version so every cookie issued so far stops resolving."""
    user.session_version += 1
    user.updated_at = datetime.utcnow()
    await User.find_one(User.id == user.id).update(
        Set({User.session_version: user.session_version, User.updated_at: user.updated_at})
    )


def session_payload_for_user(user: User) -> dict:
    return {"user_id": str(user.id), "session_version": user.session_version}

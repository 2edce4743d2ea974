"""
Request-scoped dependencies: database session, API-key authentication,
role gates, pagination and domain-error translation.
"""
from typing import Generator, Iterable
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from incentives.database import SessionLocal
from incentives.config import LEDGER_SETTINGS
from incentives.models.db import User
from incentives.models.db.enums import UserRole
from incentives.services.errors import (
    CampaignNotAvailableError,
    IncentiveError,
    InvalidRedemptionStateError,
    AlreadyPaidError,
    NotFoundError,
    OutOfStockError,
)
from incentives.utils import get_logger

logger = get_logger(__name__)
security = HTTPBearer()

# Keys carry their role in the first four characters
KEY_PREFIXES = {UserRole.ADMIN: "adm_", UserRole.MANAGER: "ger_", UserRole.SELLER: "ven_"}


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """Resolve the bearer API key to an active user, or answer 401."""
    api_key = credentials.credentials
    user = db.query(User).filter(User.api_key == api_key, User.is_active.is_(True)).first()
    if user is None:
        logger.warning("Rejected API key", key_hint=api_key[:4], key_length=len(api_key))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or inactive API key",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not api_key.startswith(KEY_PREFIXES[user.role]):
        # Role changed after the key was issued; the stored role wins
        logger.info("API key prefix does not match role", user_id=user.id, role=user.role.value)
    return user


def require_role(allowed_roles: Iterable[UserRole]):
    """Build a dependency that lets through only users holding one of ``allowed_roles``."""
    allowed = frozenset(allowed_roles)
    labels = sorted(role.value for role in allowed)

    def role_gate(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            logger.warning(
                "Role not allowed",
                user_id=current_user.id,
                role=current_user.role.value,
                allowed=labels
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires one of: {', '.join(labels)}"
            )
        return current_user

    return role_gate


require_admin = require_role([UserRole.ADMIN])


def get_pagination_params(limit: int = 50, offset: int = 0) -> dict:
    max_limit = int(LEDGER_SETTINGS["max_page_size"])
    if not 1 <= limit <= max_limit:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"limit must be between 1 and {max_limit}"
        )
    if offset < 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="offset must be >= 0")
    return {"limit": limit, "offset": offset}



def http_error_for(exc: IncentiveError) -> HTTPException:
    """Map a domain error raised by a service to the HTTP status it deserves."""
    if isinstance(exc, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, CampaignNotAvailableError):
        code = status.HTTP_403_FORBIDDEN
    elif isinstance(exc, (InvalidRedemptionStateError, AlreadyPaidError, OutOfStockError)):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=str(exc))

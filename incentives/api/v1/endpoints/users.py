"""
User and optician management endpoints.
"""
from typing import List
from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import time
import secrets
import string
from incentives.api.deps import KEY_PREFIXES, get_db, get_current_user, get_pagination_params, require_admin
from incentives.models.db import Optician, User
from incentives.models.db.enums import UserRole
from incentives.models.schemas.users import OpticianCreate, OpticianRead, UserCreate, UserCreated, UserRead
from incentives.utils import get_logger, log_business_event, log_performance

router = APIRouter()
logger = get_logger(__name__)


def generate_api_key(role: UserRole) -> str:
    """Role-prefixed random key, e.g. ``ven_`` followed by 32 alphanumerics."""
    alphabet = string.ascii_letters + string.digits
    return KEY_PREFIXES[role] + ''.join(secrets.choice(alphabet) for _ in range(32))


@router.post(
    "/opticians",
    response_model=OpticianRead,
    status_code=status.HTTP_201_CREATED,
    summary="Register optician"
)
async def create_optician(
    data: OpticianCreate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
) -> OpticianRead:
    if data.parent_id is not None and db.get(Optician, data.parent_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Optician {data.parent_id} not found")
    if db.query(Optician).filter(Optician.cnpj == data.cnpj).first():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Optician with CNPJ '{data.cnpj}' already exists")
    optician = Optician(
        name=data.name,
        cnpj=data.cnpj,
        parent_id=data.parent_id,
        ranking_visible_to_sellers=data.ranking_visible_to_sellers,
    )
    db.add(optician)
    db.commit()
    db.refresh(optician)
    log_business_event(
        event_type="optician_created",
        details={"optician_id": optician.id, "parent_id": optician.parent_id},
        user_id=admin.id
    )
    return OpticianRead.model_validate(optician)


@router.post(
    "/",
    response_model=UserCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Create new user",
    description="Register an admin, manager or seller. The API key is only returned here."
)
async def create_user(
    user_data: UserCreate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
) -> UserCreated:
    start_time = time.time()
    request_id = request.headers.get("X-Request-ID", "unknown")

    logger.info(
        "User creation started",
        user_role=user_data.role.value,
        optician_id=user_data.optician_id,
        request_id=request_id
    )

    try:
        if user_data.optician_id is not None and db.get(Optician, user_data.optician_id) is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Optician with ID {user_data.optician_id} not found"
            )
        if user_data.manager_id is not None:
            manager = db.get(User, user_data.manager_id)
            if manager is None or manager.role != UserRole.MANAGER:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"User {user_data.manager_id} is not a manager"
                )

        existing_email = db.query(User).filter(User.email == user_data.email).first()
        if existing_email:
            logger.warning(
                "User creation failed: duplicate email",
                existing_user_id=existing_email.id,
                request_id=request_id
            )
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"User with email '{user_data.email}' already exists"
            )

        new_user = User(
            name=user_data.name,
            email=user_data.email,
            api_key=generate_api_key(user_data.role),
            role=user_data.role,
            optician_id=user_data.optician_id,
            manager_id=user_data.manager_id,
        )
        db.add(new_user)
        db.commit()
        db.refresh(new_user)

        log_business_event(
            event_type="user_created",
            details={
                "user_role": new_user.role.value,
                "optician_id": new_user.optician_id,
                "manager_id": new_user.manager_id,
            },
            user_id=new_user.id,
            request_id=request_id
        )
        log_performance(
            operation="create_user",
            duration_ms=(time.time() - start_time) * 1000,
            additional_data={"user_id": new_user.id, "role": new_user.role.value}
        )
        return UserCreated.model_validate(new_user)

    except HTTPException:
        raise
    except IntegrityError as e:
        db.rollback()
        logger.error(
            "User creation failed: database integrity error",
            error=str(e),
            request_id=request_id
        )
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User violates a uniqueness constraint"
        )


@router.get(
    "/me",
    response_model=UserRead,
    summary="Current user",
    description="Profile, coin balance and ranking totals of the authenticated user"
)
async def read_me(current_user: User = Depends(get_current_user)) -> UserRead:
    return UserRead.model_validate(current_user)


@router.get(
    "/",
    response_model=List[UserRead],
    summary="List users"
)
async def list_users(
    pagination: dict = Depends(get_pagination_params),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
) -> List[UserRead]:
    users = db.query(User).order_by(User.id).offset(pagination["offset"]).limit(pagination["limit"]).all()
    return [UserRead.model_validate(u) for u in users]

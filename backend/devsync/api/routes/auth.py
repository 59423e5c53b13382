from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from devsync.api.response import ResponseEnvelope, success_response
from devsync.core.authz import get_current_user
from devsync.core.errors import ErrorCode, http_exception
from devsync.core.security import create_access_token, hash_password, verify_password
from devsync.db.session import get_db
from devsync.logging import get_logger
from devsync.models.user import User
from devsync.schemas.auth import LoginRequest, PasswordChange, TokenResponse
from devsync.schemas.user import ProfileUpdate, UserCreate, UserRead

router = APIRouter(prefix="/auth", tags=["auth"])
logger = get_logger()


def _token_response(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(user.id),
        token_type="bearer",
        user=UserRead.model_validate(user),
    )


@router.post("/register", response_model=ResponseEnvelope, status_code=status.HTTP_201_CREATED)
def register_user(user_in: UserCreate, db: Session = Depends(get_db)) -> dict:
    existing = db.execute(select(User).where(User.email == user_in.email)).scalar_one_or_none()
    if existing:
        raise http_exception(status.HTTP_409_CONFLICT, ErrorCode.CONFLICT, "User with this email already exists")

    user = User(
        email=user_in.email,
        first_name=user_in.first_name,
        last_name=user_in.last_name,
        hashed_password=hash_password(user_in.password),
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info("user_registered", user_id=str(user.id))
    return success_response(_token_response(user), message="User registered successfully")


@router.post("/login", response_model=ResponseEnvelope)
def login_user(credentials: LoginRequest, db: Session = Depends(get_db)) -> dict:
    user = db.execute(select(User).where(User.email == credentials.email)).scalar_one_or_none()
    if user is None or not verify_password(credentials.password, user.hashed_password):
        logger.warning("login_failed", email_domain=credentials.email.split("@")[-1])
        raise http_exception(
            status.HTTP_401_UNAUTHORIZED,
            ErrorCode.INVALID_CREDENTIALS,
            "Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    logger.info("user_authenticated", user_id=str(user.id))
    return success_response(_token_response(user), message="Login successful")


@router.get("/me", response_model=ResponseEnvelope)
@router.get("/profile", response_model=ResponseEnvelope)
def read_current_user(current_user: User = Depends(get_current_user)) -> dict:
    return success_response(UserRead.model_validate(current_user))


@router.put("/profile", response_model=ResponseEnvelope)
def update_profile(
    payload: ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    updates = payload.model_dump(exclude_unset=True)
    if updates.get("first_name") is not None:
        current_user.first_name = updates["first_name"]
    if updates.get("last_name") is not None:
        current_user.last_name = updates["last_name"]
    if "avatar" in updates:
        current_user.avatar = str(updates["avatar"]) if updates["avatar"] is not None else None
    db.add(current_user)
    db.commit()
    db.refresh(current_user)

    logger.info("profile_updated", user_id=str(current_user.id), fields=sorted(updates))
    return success_response(UserRead.model_validate(current_user), message="Profile updated successfully")


@router.put("/change-password", response_model=ResponseEnvelope)
def change_password(
    payload: PasswordChange,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    if not verify_password(payload.current_password, current_user.hashed_password):
        logger.warning("password_change_rejected", user_id=str(current_user.id))
        raise http_exception(status.HTTP_400_BAD_REQUEST, ErrorCode.INVALID_CREDENTIALS, "Current password is incorrect")

    current_user.hashed_password = hash_password(payload.new_password)
    db.add(current_user)
    db.commit()

    logger.info("password_changed", user_id=str(current_user.id))
    return success_response(message="Password changed successfully")

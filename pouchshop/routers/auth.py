"""
Authentication endpoints for back-office login and account management
"""

from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.orm import Session
import logging

from pouchshop.auth.auth_handler import get_current_user
from pouchshop.database import get_db
from pouchshop.rate_limit import limiter
from pouchshop.schemas.user import UserLogin, PasswordChange, UserResponse, TokenResponse
from pouchshop.services.activity_logger import ActivityLogger
from pouchshop.services.user_service import UserService
from pouchshop.utils.error_handler import DatabaseError

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("/login", response_model=TokenResponse)
@limiter.limit("10/minute")  # Prevent brute force attacks
async def login(
    request: Request,
    login_data: UserLogin,
    db: Session = Depends(get_db)
):
    """Authenticate a back-office user and return an access token"""
    user_service = UserService(db)
    activity_logger = ActivityLogger(db)

    user = await user_service.authenticate_user(login_data)
    if not user:
        await activity_logger.log_activity(
            endpoint="/api/v1/auth/login",
            method="POST",
            status_code=401,
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
            error_message=f"Failed login attempt for: {login_data.email}"
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password"
        )

    await activity_logger.log_activity(
        endpoint="/api/v1/auth/login",
        method="POST",
        status_code=200,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent")
    )

    return TokenResponse(
        access_token=user_service.create_token(user),
        token_type="bearer",
        expires_in=int(user_service.auth_handler.token_lifetime.total_seconds()),
        user=UserResponse.model_validate(user)
    )

@router.get("/me", response_model=UserResponse)
@limiter.limit("30/minute")
async def get_current_user_info(
    request: Request,
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get current user information"""
    user = await UserService(db).require_user(int(current_user["user_id"]))
    return UserResponse.model_validate(user)

@router.post("/change-password")
@limiter.limit("5/minute")  # Strict limit for password changes
async def change_password(
    request: Request,
    password_data: PasswordChange,
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Change own password"""
    try:
        await UserService(db).change_password(int(current_user["user_id"]), password_data)
    except DatabaseError as e:
        logger.error(f"Password change failed: {e.message}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to change password"
        )

    await ActivityLogger(db).log_activity(
        endpoint="/api/v1/auth/change-password",
        method="POST",
        status_code=200,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent")
    )

    logger.info(f"Password changed for user: {current_user['email']}")
    return {"message": "Password changed successfully"}

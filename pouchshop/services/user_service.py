"""
User service for back-office accounts and role management
"""

from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from fastapi import HTTPException, status
from datetime import datetime
from typing import Optional
import logging

from pouchshop.models.user import User, UserRole
from pouchshop.schemas.user import AdminUserCreate, UserLogin, PasswordChange
from pouchshop.auth.auth_handler import AuthHandler
from pouchshop.utils.error_handler import DatabaseError

logger = logging.getLogger(__name__)

class UserService:
    """Service for user management operations"""

    def __init__(self, db: Session):
        self.db = db
        self.auth_handler = AuthHandler()

    async def create_user(self, user_data: AdminUserCreate, admin: bool = True) -> User:
        """Create a new account, granting the admin role by default"""
        existing_user = self.db.query(User).filter(User.email == user_data.email.lower()).first()
        if existing_user:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email already registered"
            )

        try:
            db_user = User(
                email=user_data.email.lower(),
                hashed_password=self.auth_handler.get_password_hash(user_data.password),
                full_name=user_data.full_name,
                is_active=True,
            )
            if admin:
                db_user.roles.append(UserRole(role="admin"))

            self.db.add(db_user)
            self.db.commit()
            self.db.refresh(db_user)

            logger.info(f"Created new user: {db_user.email} (admin={admin})")
            return db_user

        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to create user: {e}")
            raise DatabaseError(f"Failed to create user account: {str(e)}", e)

    async def authenticate_user(self, login_data: UserLogin) -> Optional[User]:
        """Authenticate user credentials"""
        user = self.db.query(User).filter(User.email == login_data.email.lower()).first()

        if not user:
            logger.warning(f"Login attempt with non-existent user: {login_data.email}")
            return None

        if not user.is_active:
            logger.warning(f"Login attempt with inactive user: {user.email}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Account is deactivated"
            )

        if not self.auth_handler.verify_password(login_data.password, user.hashed_password):
            logger.warning(f"Failed login attempt for user: {user.email}")
            return None

        user.last_login = datetime.utcnow()
        self.db.commit()

        logger.info(f"Successful login for user: {user.email}")
        return user

    def create_token(self, user: User) -> str:
        return self.auth_handler.create_access_token({
            "sub": str(user.id),
            "email": user.email,
            "role": "admin" if user.is_admin else "user",
        })

    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    async def get_user_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email.strip().lower()).first()

    async def require_user(self, user_id: int) -> User:
        user = await self.get_user_by_id(user_id)
        if not user:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User not found"
            )
        return user

    async def list_users(self) -> list[User]:
        return self.db.query(User).order_by(User.created_at.desc(), User.id.desc()).all()

    async def list_admin_users(self) -> list[User]:
        return (
            self.db.query(User)
            .join(UserRole, UserRole.user_id == User.id)
            .filter(UserRole.role == "admin")
            .order_by(User.created_at.desc(), User.id.desc())
            .all()
        )

    async def assign_role(self, user: User, role: str = "admin") -> UserRole:
        """Grant a role; granting an existing role returns the existing row"""
        for existing in user.roles:
            if existing.role == role:
                return existing

        user_role = UserRole(user_id=user.id, role=role)
        self.db.add(user_role)
        self.db.commit()
        self.db.refresh(user_role)

        logger.info(f"Granted role '{role}' to user: {user.email}")
        return user_role

    async def remove_role(self, user_id: int, role: str = "admin") -> int:
        removed = (
            self.db.query(UserRole)
            .filter(UserRole.user_id == user_id, UserRole.role == role)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        self.db.expire_all()

        logger.info(f"Removed role '{role}' from user ID {user_id} ({removed} rows)")
        return removed

    async def set_password(self, user_id: int, new_password: str) -> User:
        """Administrative password reset"""
        user = await self.require_user(user_id)
        user.hashed_password = self.auth_handler.get_password_hash(new_password)
        user.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(user)

        logger.info(f"Password reset for user: {user.email}")
        return user

    async def change_password(self, user_id: int, password_data: PasswordChange) -> bool:
        """Change own password after verifying the current one"""
        user = await self.require_user(user_id)

        if not self.auth_handler.verify_password(password_data.current_password, user.hashed_password):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Current password is incorrect"
            )

        user.hashed_password = self.auth_handler.get_password_hash(password_data.new_password)
        user.updated_at = datetime.utcnow()
        self.db.commit()

        logger.info(f"Password changed for user: {user.email}")
        return True

"""
Back-office authentication: bcrypt password hashes and HS256 bearer tokens
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from passlib.context import CryptContext
from jose import JWTError, jwt

from pouchshop.config import Settings, get_settings

ALGORITHM = "HS256"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=get_settings().bcrypt_rounds)
security = HTTPBearer()


def _credentials_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


class AuthHandler:
    """Password hashing and token issue/verification for admin accounts"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.pwd_context = pwd_context

    @property
    def token_lifetime(self) -> timedelta:
        return timedelta(minutes=self.settings.access_token_expire_minutes)

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        return self.pwd_context.verify(plain_password, hashed_password)

    def get_password_hash(self, password: str) -> str:
        return self.pwd_context.hash(password)

    def create_access_token(self, claims: dict, expires_delta: Optional[timedelta] = None) -> str:
        """Sign the claims with an exp stamp; lifetime defaults to ACCESS_TOKEN_EXPIRE_MINUTES"""
        to_encode = claims.copy()
        to_encode["exp"] = datetime.now(timezone.utc) + (expires_delta or self.token_lifetime)
        return jwt.encode(to_encode, self.settings.secret_key, algorithm=ALGORITHM)

    def verify_token(self, token: str) -> dict:
        try:
            return jwt.decode(token, self.settings.secret_key, algorithms=[ALGORITHM])
        except JWTError:
            raise _credentials_error()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    settings: Settings = Depends(get_settings)
):
    """Dependency resolving the bearer token into {user_id, email, role}"""
    payload = AuthHandler(settings).verify_token(credentials.credentials)

    user_id: str = payload.get("sub")
    if user_id is None:
        raise _credentials_error()

    return {
        "user_id": user_id,
        "email": payload.get("email"),
        "role": payload.get("role", "user"),
    }


class RoleChecker:
    """Check user roles for authorization"""

    def __init__(self, allowed_roles: list):
        self.allowed_roles = allowed_roles

    def __call__(self, user: dict = Depends(get_current_user)):
        if user.get("role", "user") not in self.allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Operation not permitted"
            )
        return user

admin_required = RoleChecker(["admin"])

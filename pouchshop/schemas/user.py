"""
Pydantic schemas for back-office user operations
"""

from pydantic import BaseModel, Field, validator, EmailStr
from typing import Optional
from datetime import datetime
import re

def _check_password_strength(v: str) -> str:
    if len(v) < 8:
        raise ValueError('Password must be at least 8 characters long')
    if not re.search(r'[A-Z]', v):
        raise ValueError('Password must contain at least one uppercase letter')
    if not re.search(r'[a-z]', v):
        raise ValueError('Password must contain at least one lowercase letter')
    if not re.search(r'\d', v):
        raise ValueError('Password must contain at least one digit')
    return v

class AdminUserCreate(BaseModel):
    """Schema for creating a back-office user"""
    email: EmailStr = Field(..., description="Valid email address")
    password: str = Field(..., min_length=8, max_length=72, description="Password (minimum 8 characters)")
    full_name: Optional[str] = Field(None, max_length=200)

    @validator('email')
    def normalize_email(cls, v):
        return v.lower()

    @validator('password')
    def validate_password(cls, v):
        return _check_password_strength(v)

class PasswordSet(BaseModel):
    """Schema for an administrator resetting another user's password"""
    user_id: int
    password: str = Field(..., min_length=8, max_length=72)

    @validator('password')
    def validate_password(cls, v):
        return _check_password_strength(v)

class UserLogin(BaseModel):
    """Schema for user login"""
    email: str = Field(..., description="Email address")
    password: str = Field(..., description="Password")

    @validator('email')
    def validate_email(cls, v):
        v = v.strip().lower()
        if not v:
            raise ValueError('Email is required')
        return v

class PasswordChange(BaseModel):
    """Schema for password change"""
    current_password: str = Field(..., description="Current password")
    new_password: str = Field(..., min_length=8, max_length=72, description="New password")
    confirm_new_password: str = Field(..., description="Confirm new password")

    @validator('new_password')
    def validate_new_password(cls, v):
        return _check_password_strength(v)

    @validator('confirm_new_password')
    def passwords_match(cls, v, values, **kwargs):
        if 'new_password' in values and v != values['new_password']:
            raise ValueError('New passwords do not match')
        return v

class UserResponse(BaseModel):
    """Schema for user responses (excludes sensitive data)"""
    id: int
    email: str
    full_name: Optional[str] = None
    is_active: bool
    is_admin: bool
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class TokenResponse(BaseModel):
    """Schema for authentication token response"""
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse

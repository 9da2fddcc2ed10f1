from typing import Optional, Dict, Any
from pydantic import BaseModel, ConfigDict, Field


class UserBase(BaseModel):
    email: Optional[str] = None
    fname: Optional[str] = None
    lname: Optional[str] = None
    preferred_name: Optional[str] = None
    custom: Optional[Dict[str, Any]] = None
    model_config = ConfigDict(extra="forbid")


class UserCreate(UserBase):
    username: str
    password: Optional[str] = None
    is_admin: bool = False
    provider: str = "local"


class UserUpdate(UserBase):
    # Required in bulk requests, ignored on single-item routes
    username: Optional[str] = None
    is_admin: Optional[bool] = None
    archived: Optional[bool] = None


class PasswordUpdate(BaseModel):
    old_password: str
    password: str
    confirm_password: str
    model_config = ConfigDict(extra="forbid")


class LoginResponse(BaseModel):
    token: str
    expires_at: Optional[str] = None
    user: Dict[str, Any] = Field(default_factory=dict)

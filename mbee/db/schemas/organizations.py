from typing import Optional, Dict, Any
from pydantic import BaseModel, ConfigDict

from mbee.utils.role_permissions import RoleEnum


class OrganizationBase(BaseModel):
    name: Optional[str] = None
    custom: Optional[Dict[str, Any]] = None
    # username -> role, or REMOVE_ALL to drop the member
    permissions: Optional[Dict[str, str]] = None
    model_config = ConfigDict(extra="forbid")


class OrganizationCreate(OrganizationBase):
    id: str
    name: str


class OrganizationUpdate(OrganizationBase):
    id: Optional[str] = None
    archived: Optional[bool] = None


class MemberRoleUpdate(BaseModel):
    role: RoleEnum
    model_config = ConfigDict(extra="forbid")

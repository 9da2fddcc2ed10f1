from typing import Optional, Dict, Any, Literal
from pydantic import BaseModel, ConfigDict

Visibility = Literal["internal", "private"]


class ProjectBase(BaseModel):
    name: Optional[str] = None
    custom: Optional[Dict[str, Any]] = None
    permissions: Optional[Dict[str, str]] = None
    model_config = ConfigDict(extra="forbid")


class ProjectCreate(ProjectBase):
    id: str
    name: str
    visibility: Visibility = "private"


class ProjectUpdate(ProjectBase):
    id: Optional[str] = None
    visibility: Optional[Visibility] = None
    archived: Optional[bool] = None

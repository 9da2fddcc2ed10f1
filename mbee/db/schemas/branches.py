from typing import Optional, Dict, Any
from pydantic import BaseModel, ConfigDict


class BranchCreate(BaseModel):
    id: str
    source: str
    name: Optional[str] = None
    tag: bool = False
    custom: Optional[Dict[str, Any]] = None
    model_config = ConfigDict(extra="forbid")


class BranchUpdate(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    custom: Optional[Dict[str, Any]] = None
    archived: Optional[bool] = None
    model_config = ConfigDict(extra="forbid")

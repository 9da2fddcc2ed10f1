from typing import Optional, Dict, Any, Literal
from pydantic import BaseModel, ConfigDict

ElementType = Literal["Block", "Relationship", "Package"]


class ElementBase(BaseModel):
    name: Optional[str] = None
    documentation: Optional[str] = None
    parent: Optional[str] = None
    source: Optional[str] = None
    target: Optional[str] = None
    custom: Optional[Dict[str, Any]] = None
    model_config = ConfigDict(extra="forbid")


class ElementCreate(ElementBase):
    id: str
    type: Optional[ElementType] = None


class ElementUpdate(ElementBase):
    id: Optional[str] = None
    archived: Optional[bool] = None

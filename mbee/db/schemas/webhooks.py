import uuid
from typing import Optional, Dict, Any, List, Literal
from pydantic import BaseModel, ConfigDict, Field

WebhookType = Literal["Outgoing", "Incoming"]


class WebhookAuth(BaseModel):
    username: str
    password: str
    model_config = ConfigDict(extra="forbid")


class WebhookResponseTarget(BaseModel):
    """One HTTP request sent when an outgoing webhook fires."""
    url: str
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE"] = "POST"
    headers: Dict[str, str] = Field(default_factory=lambda: {"Content-Type": "application/json"})
    auth: Optional[WebhookAuth] = None
    data: Optional[Any] = None
    model_config = ConfigDict(extra="forbid")


class WebhookBase(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    triggers: Optional[List[str]] = None
    responses: Optional[List[WebhookResponseTarget]] = None
    token: Optional[str] = None
    token_location: Optional[str] = None
    custom: Optional[Dict[str, Any]] = None
    model_config = ConfigDict(extra="forbid")


class WebhookCreate(WebhookBase):
    type: WebhookType
    triggers: List[str]
    # Level reference; all empty means server level
    org: Optional[str] = None
    project: Optional[str] = None
    branch: Optional[str] = None


class WebhookUpdate(WebhookBase):
    id: Optional[uuid.UUID] = None
    archived: Optional[bool] = None

from typing import Optional, Dict, Any
from pydantic import BaseModel, ConfigDict


class ArtifactUpdate(BaseModel):
    """Metadata changes; new content is uploaded separately."""
    filename: Optional[str] = None
    content_type: Optional[str] = None
    description: Optional[str] = None
    custom: Optional[Dict[str, Any]] = None
    archived: Optional[bool] = None
    model_config = ConfigDict(extra="forbid")

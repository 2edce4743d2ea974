"""
Base schemas used across the application.
"""
from datetime import datetime, timezone
from typing import Optional, Any, Dict, List
from pydantic import BaseModel, Field, ConfigDict


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResponseBase(BaseModel):
    """Standard envelope for API responses with an optional arbitrary data payload."""
    success: bool = True
    message: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)
    data: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)


class FieldError(BaseModel):
    """One business-rule violation scoped to a dotted field path."""
    field: str
    message: str
    category: str


class ValidationErrorResponse(BaseModel):
    success: bool = False
    message: str
    errors: List[FieldError]
    request_id: Optional[str] = None

"""
Base response schemas for standardized API responses.

Every mutating operation answers with ``success`` and a human-readable
``message`` next to whatever snapshot the caller needs.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class SuccessResponse(BaseModel):
    """Standard success response for operations."""

    success: bool = Field(default=True, description="Operation success status")
    message: str = Field(description="Human-readable success message")
    data: Optional[Dict[str, Any]] = Field(default=None, description="Optional additional data")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "success": True,
                "message": "Appointment cancelled",
                "data": None,
            }
        }
    )


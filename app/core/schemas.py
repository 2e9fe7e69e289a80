"""Core schema definitions shared by every router.

This module holds the response shapes that are not owned by a single
domain: the error envelope documented in OpenAPI, the plain acknowledgement
body returned by mutating endpoints, and a UTC-normalising datetime type.
"""

from datetime import UTC, datetime
from typing import Annotated

from pydantic import BaseModel, Field
from pydantic.functional_serializers import PlainSerializer


def _serialize_utc_datetime(v: datetime | None) -> str | None:
    if v is None:
        return None
    if v.tzinfo is None:
        v = v.replace(tzinfo=UTC)
    return v.isoformat()


# Naive datetimes coming back from the database are stored in UTC.
UTCDatetime = Annotated[datetime, PlainSerializer(_serialize_utc_datetime)]


class ErrorResponse(BaseModel):
    """Uniform error envelope.

    Example:
        {
            "message": "Validation error",
            "errors": { "message_text": ["String should have at least 1 character"] }
        }
    """

    message: str = Field(..., description="Human-readable error message")
    errors: dict[str, list[str]] | None = Field(
        None, description="Per-field validation messages"
    )


class ActionMessage(BaseModel):
    """Acknowledgement body for mutating endpoints without a resource to return."""

    message: str


ERROR_RESPONSES: dict[int | str, dict] = {
    400: {"model": ErrorResponse, "description": "Validation error"},
    401: {"model": ErrorResponse, "description": "Missing or invalid credential"},
    403: {"model": ErrorResponse, "description": "Not allowed"},
    404: {"model": ErrorResponse, "description": "Not found"},
}

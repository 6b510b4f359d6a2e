"""Link Pydantic schemas.

JSON bodies use camelCase keys (``destinationUrl``, ``shortCode``); requests
may also use the snake_case field names.
"""

from datetime import datetime
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base schema with camelCase aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class LinkCreate(CamelModel):
    """Schema for creating a new link.

    ``destination_url`` is checked by the link store so that a missing and
    a blank URL get the same error.
    """

    destination_url: str | None = Field(default=None, description="The URL to redirect to")
    title: str | None = Field(default=None, max_length=255, description="Optional title")
    custom_code: str | None = Field(
        default=None,
        max_length=100,
        description="Optional custom short code",
    )
    source: str | None = Field(default=None, max_length=255, description="Optional source tag")


class LinkCreatedResponse(CamelModel):
    """Schema returned when a link is created."""

    id: UUID
    short_code: str
    trackable_url: str
    destination_url: str
    title: str
    source: str | None


class LinkResponse(CamelModel):
    """Schema for link response."""

    id: UUID
    short_code: str
    destination_url: str
    title: str
    source: str | None
    created_at: datetime
    # Read from the model's click_count column
    total_clicks: int = Field(
        validation_alias=AliasChoices("totalClicks", "total_clicks", "click_count"),
        serialization_alias="totalClicks",
    )


class MessageResponse(BaseModel):
    """Schema for plain acknowledgement responses."""

    message: str

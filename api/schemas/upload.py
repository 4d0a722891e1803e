"""
Pydantic schemas for the /uploads endpoints.

These define the HTTP contract, which uses camelCase on the wire:
- IntentRequest / IntentResponse: POST /uploads/intent
- FinalizeRequest / AcceptedResponse: POST /uploads/finalize

FinalizeRequest is the one strongly typed shape a finalize call can take.
tags must be a JSON array of strings and coordinates a JSON object with
numbers; JSON-encoded strings in their place are rejected, not parsed.
ticketId stays a loose optional string here so the gateway can answer
MissingTicket / TicketInvalidFormat instead of a generic 422.
"""

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class IntentRequest(CamelModel):
    """Request body for POST /uploads/intent."""

    file_name: str = Field(..., examples=["sunset.jpg"])
    file_type: str = Field(..., examples=["image/jpeg"])
    file_size: int = Field(..., examples=[2_500_000])


class IntentResponse(CamelModel):
    ticket_id: str
    raw_object_key: str
    upload_url: str
    expires_in: int          # seconds the upload URL stays valid
    max_file_size: int


class Coordinates(BaseModel):
    model_config = ConfigDict(strict=True)

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class FinalizeRequest(CamelModel):
    """Request body for POST /uploads/finalize."""

    ticket_id: str | None = None
    raw_object_key: str | None = None
    title_text: str | None = Field(default=None, examples=["Sunset over the bay"])
    category_ref: str | None = Field(default=None, examples=["landscape"])
    location_text: str | None = None
    camera_model: str | None = None
    coordinates: Coordinates | None = None
    tags: list[str] | None = Field(default=None, examples=[["sunset", "sea"]])


class AcceptedResponse(CamelModel):
    """Response body for POST /uploads/finalize (HTTP 202)."""

    message: str
    processing_time_hint: int    # seconds; completion arrives as a notification
    ticket_id: str
    job_id: UUID

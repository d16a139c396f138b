"""Pydantic schemas for inbound socket payloads."""

from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

from anonchat.settings import settings


class JoinPayload(BaseModel):
    display_name: str = Field(
        default="Stranger",
        min_length=1,
        max_length=40,
        validation_alias=AliasChoices("display_name", "displayName", "username"),
    )
    attribute: Optional[str] = Field(default=None, validation_alias=AliasChoices("attribute", "gender"))
    participant_id: Optional[str] = Field(
        default=None,
        max_length=64,
        validation_alias=AliasChoices("participant_id", "participantId", "id"),
    )
    filter_enabled: bool = Field(default=True, validation_alias=AliasChoices("filter_enabled", "filterEnabled"))
    resume_token: Optional[str] = Field(
        default=None,
        max_length=128,
        validation_alias=AliasChoices("resume_token", "resumeToken"),
    )

    @field_validator("display_name", mode="before")
    def _strip_name(cls, value):  # type: ignore[override]
        if value is None:
            return "Stranger"
        text = str(value).strip()
        return text or "Stranger"


class FindPartnerPayload(BaseModel):
    filter: Optional[str] = Field(default=None, validation_alias=AliasChoices("filter", "genderFilter"))


def _content(value: object) -> str:
    text = str(value or "").strip()
    if not text:
        raise ValueError("empty_message")
    if len(text) > settings.message_max_length:
        raise ValueError("message_too_long")
    return text


class DirectMessagePayload(BaseModel):
    to: str = Field(..., min_length=1)
    content: str

    @field_validator("content", mode="before")
    def _check_content(cls, value):  # type: ignore[override]
        return _content(value)


class JoinRoomPayload(BaseModel):
    room_id: Optional[str] = Field(default=None, max_length=64, validation_alias=AliasChoices("room_id", "roomId"))
    name: Optional[str] = Field(default=None, max_length=80)


class RoomMessagePayload(BaseModel):
    room_id: str = Field(..., min_length=1, validation_alias=AliasChoices("room_id", "roomId"))
    content: str

    @field_validator("content", mode="before")
    def _check_content(cls, value):  # type: ignore[override]
        return _content(value)

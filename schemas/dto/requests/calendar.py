"""
Request DTOs for calendar operations on the gateway.

EventTime / Attendee are shared by both providers; Microsoft expects
``dateTime`` + ``timeZone`` and Google accepts either ``dateTime`` or an
all-day ``date``.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class EventTime(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    date_time: Optional[str] = Field(default=None, alias="dateTime")
    date: Optional[str] = None
    time_zone: Optional[str] = Field(default=None, alias="timeZone")

    @model_validator(mode="after")
    def _one_of_date_or_datetime(self) -> "EventTime":
        if not self.date_time and not self.date:
            raise ValueError("either dateTime or date is required")
        return self


class Attendee(BaseModel):
    email: str


class CreateEventRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    summary: str
    description: Optional[str] = None
    location: Optional[str] = None
    start: EventTime
    end: EventTime
    attendees: list[Attendee] = Field(default_factory=list)
    calendar_id: Optional[str] = Field(default=None, alias="calendarId")
    conference_data: bool = Field(default=False, alias="conferenceData")
    send_updates: Literal["all", "externalOnly", "none"] = Field(
        default="none", alias="sendUpdates"
    )


class UpdateEventRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    summary: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    start: Optional[EventTime] = None
    end: Optional[EventTime] = None
    attendees: Optional[list[Attendee]] = None
    calendar_id: Optional[str] = Field(default=None, alias="calendarId")
    send_updates: Literal["all", "externalOnly", "none"] = Field(
        default="none", alias="sendUpdates"
    )


class FreeBusyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    time_min: str = Field(alias="timeMin")
    time_max: str = Field(alias="timeMax")
    calendar_ids: list[str] = Field(default_factory=lambda: ["primary"], alias="calendarIds")


class ScheduleRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    schedules: list[str]
    start: EventTime
    end: EventTime
    interval_minutes: int = Field(default=30, alias="availabilityViewInterval", ge=5, le=1440)

"""
Microsoft 365 provider: Outlook mail and calendar over Microsoft Graph.

Graph may report granted scopes either bare (``Mail.Read``) or as resource
URLs (``https://graph.microsoft.com/Mail.Read``); both spellings map to the
same permission.
"""

from __future__ import annotations

from typing import Any

from config import OAuthProviderSettings
from infrastructure.providers.microsoft_graph import MicrosoftGraphClient
from providers.types import (
    OAuthConfig,
    Operation,
    PermissionDefinition,
    Provider,
    ProviderCall,
    ProviderUI,
    scope_map,
)
from schemas.dto.requests.calendar import (
    CreateEventRequest,
    ScheduleRequest,
    UpdateEventRequest,
)
from schemas.dto.requests.mail import SendMessageRequest, UpdateMessageRequest

PROVIDER_ID = "microsoft"

_LOGIN_BASE = "https://login.microsoftonline.com"
_GRAPH_RESOURCE = "https://graph.microsoft.com/"

PERMISSIONS: tuple[PermissionDefinition, ...] = (
    PermissionDefinition(
        id="mail:read",
        label="Read emails",
        description="Read email messages, conversations, and folders",
        required_scope="Mail.Read",
    ),
    PermissionDefinition(
        id="mail:send",
        label="Send emails",
        description="Send new email messages",
        required_scope="Mail.Send",
    ),
    PermissionDefinition(
        id="mail:modify",
        label="Modify emails",
        description="Trash/untrash messages, move between folders, modify read status",
        required_scope="Mail.ReadWrite",
    ),
    PermissionDefinition(
        id="calendar:read",
        label="Read calendar",
        description="Read calendar events and free/busy information",
        required_scope="Calendars.Read",
    ),
    PermissionDefinition(
        id="calendar:write",
        label="Write calendar",
        description="Create, update, and delete calendar events",
        required_scope="Calendars.ReadWrite",
    ),
)

PERMISSION_GROUPS: dict[str, tuple[str, ...]] = {
    "readonly": ("mail:read", "calendar:read"),
    "fullMail": ("mail:read", "mail:send", "mail:modify"),
    "fullCalendar": ("calendar:read", "calendar:write"),
    "fullAccess": tuple(p.id for p in PERMISSIONS),
}

OAUTH_SCOPES: tuple[str, ...] = ("openid", "profile", "email", "offline_access") + tuple(
    p.required_scope for p in PERMISSIONS
)

OPENAPI_TAGS = (
    {"name": "Microsoft Mail - Messages", "description": "Outlook message operations"},
    {"name": "Microsoft Mail - Folders", "description": "Outlook folder operations"},
    {"name": "Microsoft Calendar - Calendars", "description": "Outlook calendar list operations"},
    {"name": "Microsoft Calendar - Events", "description": "Outlook event operations"},
    {"name": "Microsoft Calendar - Schedule", "description": "Outlook free/busy operations"},
)


# ── Mail handlers ────────────────────────────────────────────────────────────


async def list_messages(call: ProviderCall) -> Any:
    return await MicrosoftGraphClient(call.http).list_messages(
        call.access_token,
        max_results=call.query_int("maxResults", 20),
        skip=call.query_int("skip"),
        folder_id=call.query_str("folderId"),
        search=call.query_str("q"),
    )


async def get_message(call: ProviderCall) -> Any:
    return await MicrosoftGraphClient(call.http).get_message(
        call.access_token, call.path_params["message_id"]
    )


async def send_message(call: ProviderCall) -> Any:
    body: SendMessageRequest = call.body
    return await MicrosoftGraphClient(call.http).send_message(
        call.access_token,
        to=body.to_list,
        subject=body.subject,
        body=body.html or body.body,
        html=body.html is not None,
        cc=body.cc_list,
        bcc=body.bcc_list,
    )


async def update_message(call: ProviderCall) -> Any:
    body: UpdateMessageRequest = call.body
    return await MicrosoftGraphClient(call.http).update_message(
        call.access_token,
        call.path_params["message_id"],
        is_read=body.is_read,
        categories=body.categories,
    )


async def trash_message(call: ProviderCall) -> Any:
    return await MicrosoftGraphClient(call.http).trash_message(
        call.access_token, call.path_params["message_id"]
    )


async def list_folders(call: ProviderCall) -> Any:
    return await MicrosoftGraphClient(call.http).list_folders(call.access_token)


# ── Calendar handlers ────────────────────────────────────────────────────────


async def list_calendars(call: ProviderCall) -> Any:
    return await MicrosoftGraphClient(call.http).list_calendars(call.access_token)


async def list_events(call: ProviderCall) -> Any:
    return await MicrosoftGraphClient(call.http).list_events(
        call.access_token,
        calendar_id=call.query_str("calendarId"),
        max_results=call.query_int("maxResults", 50),
        skip=call.query_int("skip"),
        start=call.query_str("startDateTime"),
        end=call.query_str("endDateTime"),
    )


async def get_event(call: ProviderCall) -> Any:
    return await MicrosoftGraphClient(call.http).get_event(
        call.access_token, call.path_params["event_id"]
    )


def _graph_time(value: Any) -> dict[str, str]:
    # Graph requires both dateTime and timeZone
    return {
        "dateTime": value.date_time or f"{value.date}T00:00:00",
        "timeZone": value.time_zone or "UTC",
    }


def _graph_event(body: Any) -> dict[str, Any]:
    event: dict[str, Any] = {}
    if body.summary is not None:
        event["subject"] = body.summary
    if body.description is not None:
        event["body"] = {"contentType": "Text", "content": body.description}
    if body.location is not None:
        event["location"] = {"displayName": body.location}
    if body.start is not None:
        event["start"] = _graph_time(body.start)
        if body.start.date and not body.start.date_time:
            event["isAllDay"] = True
    if body.end is not None:
        event["end"] = _graph_time(body.end)
    if body.attendees is not None:
        event["attendees"] = [
            {"emailAddress": {"address": a.email}, "type": "required"}
            for a in body.attendees
        ]
    return event


async def create_event(call: ProviderCall) -> Any:
    body: CreateEventRequest = call.body
    event = _graph_event(body)
    if body.conference_data:
        event["isOnlineMeeting"] = True
        event["onlineMeetingProvider"] = "teamsForBusiness"
    return await MicrosoftGraphClient(call.http).create_event(
        call.access_token, event, calendar_id=body.calendar_id
    )


async def update_event(call: ProviderCall) -> Any:
    body: UpdateEventRequest = call.body
    return await MicrosoftGraphClient(call.http).update_event(
        call.access_token, call.path_params["event_id"], _graph_event(body)
    )


async def delete_event(call: ProviderCall) -> Any:
    return await MicrosoftGraphClient(call.http).delete_event(
        call.access_token, call.path_params["event_id"]
    )


async def get_schedule(call: ProviderCall) -> Any:
    body: ScheduleRequest = call.body
    return await MicrosoftGraphClient(call.http).get_schedule(
        call.access_token,
        body.schedules,
        _graph_time(body.start),
        _graph_time(body.end),
        interval_minutes=body.interval_minutes,
    )


_MESSAGES = "Microsoft Mail - Messages"
_FOLDERS = "Microsoft Mail - Folders"
_CALENDARS = "Microsoft Calendar - Calendars"
_EVENTS = "Microsoft Calendar - Events"
_SCHEDULE = "Microsoft Calendar - Schedule"

OPERATIONS: tuple[Operation, ...] = (
    Operation("list_messages", "GET", "/mail/messages", "mail:read", list_messages,
              "List email messages", _MESSAGES),
    Operation("get_message", "GET", "/mail/messages/{message_id}", "mail:read", get_message,
              "Get an email message", _MESSAGES),
    Operation("send_message", "POST", "/mail/messages", "mail:send", send_message,
              "Send an email message", _MESSAGES, SendMessageRequest),
    Operation("update_message", "PATCH", "/mail/messages/{message_id}", "mail:modify",
              update_message, "Mark read/unread or set categories", _MESSAGES,
              UpdateMessageRequest),
    Operation("trash_message", "POST", "/mail/messages/{message_id}/trash", "mail:modify",
              trash_message, "Move a message to Deleted Items", _MESSAGES),
    Operation("list_folders", "GET", "/mail/folders", "mail:read", list_folders,
              "List mail folders", _FOLDERS),
    Operation("list_calendars", "GET", "/calendar/calendars", "calendar:read", list_calendars,
              "List calendars", _CALENDARS),
    Operation("list_events", "GET", "/calendar/events", "calendar:read", list_events,
              "List calendar events", _EVENTS),
    Operation("get_event", "GET", "/calendar/events/{event_id}", "calendar:read", get_event,
              "Get a calendar event", _EVENTS),
    Operation("create_event", "POST", "/calendar/events", "calendar:write", create_event,
              "Create a calendar event", _EVENTS, CreateEventRequest),
    Operation("update_event", "PATCH", "/calendar/events/{event_id}", "calendar:write",
              update_event, "Update a calendar event", _EVENTS, UpdateEventRequest),
    Operation("delete_event", "DELETE", "/calendar/events/{event_id}", "calendar:write",
              delete_event, "Delete a calendar event", _EVENTS),
    Operation("get_schedule", "POST", "/calendar/schedule", "calendar:read", get_schedule,
              "Get free/busy schedules", _SCHEDULE, ScheduleRequest),
)


def build_microsoft_provider(settings: OAuthProviderSettings) -> Provider:
    tenant = settings.microsoft_tenant or "common"
    return Provider(
        id=PROVIDER_ID,
        ui=ProviderUI(
            name="Microsoft",
            description="Access Outlook and Microsoft Calendar",
            icon="MicrosoftLogo",
            color="#00A4EF",
        ),
        oauth=OAuthConfig(
            client_id=settings.microsoft_client_id,
            client_secret=settings.microsoft_client_secret,
            token_endpoint=f"{_LOGIN_BASE}/{tenant}/oauth2/v2.0/token",
            authorization_endpoint=f"{_LOGIN_BASE}/{tenant}/oauth2/v2.0/authorize",
            scopes=OAUTH_SCOPES,
            additional_params={"prompt": "consent"},
        ),
        permissions=PERMISSIONS,
        scope_to_permissions=scope_map(
            pair
            for p in PERMISSIONS
            for pair in (
                (p.required_scope, [p.id]),
                (_GRAPH_RESOURCE + p.required_scope, [p.id]),
            )
        ),
        permission_groups=PERMISSION_GROUPS,
        operations=OPERATIONS,
        openapi_tags=OPENAPI_TAGS,
    )

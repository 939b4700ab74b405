"""
Google Workspace provider: Gmail and Google Calendar.

Permission ids are provider-local; ``mail:read`` here and ``mail:read`` on
Microsoft are distinct grants. Permissions marked ``requires_reauth`` were
added after the first consent screen shipped, so older accounts may not
hold their scope.
"""

from __future__ import annotations

from typing import Any

from config import OAuthProviderSettings
from infrastructure.providers.google_api import (
    GmailClient,
    GoogleCalendarClient,
    build_raw_message,
)
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
    FreeBusyRequest,
    UpdateEventRequest,
)
from schemas.dto.requests.mail import (
    CreateDraftRequest,
    CreateLabelRequest,
    ModifyLabelsRequest,
    SendMessageRequest,
)

PROVIDER_ID = "google"

TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"
AUTHORIZATION_ENDPOINT = "https://accounts.google.com/o/oauth2/v2/auth"

_SCOPE_BASE = "https://www.googleapis.com/auth/"

PERMISSIONS: tuple[PermissionDefinition, ...] = (
    PermissionDefinition(
        id="mail:read",
        label="Read emails",
        description="Read email messages, threads, and labels",
        required_scope=_SCOPE_BASE + "gmail.readonly",
    ),
    PermissionDefinition(
        id="mail:send",
        label="Send emails",
        description="Send new email messages",
        required_scope=_SCOPE_BASE + "gmail.send",
    ),
    PermissionDefinition(
        id="mail:modify",
        label="Modify emails",
        description="Trash/untrash messages, add/remove labels",
        required_scope=_SCOPE_BASE + "gmail.modify",
        requires_reauth=True,
    ),
    PermissionDefinition(
        id="mail:labels",
        label="Manage labels",
        description="Create, update, and delete labels",
        required_scope=_SCOPE_BASE + "gmail.labels",
        requires_reauth=True,
    ),
    PermissionDefinition(
        id="mail:drafts",
        label="Manage drafts",
        description="Create, update, delete, and send draft messages",
        required_scope=_SCOPE_BASE + "gmail.compose",
        requires_reauth=True,
    ),
    PermissionDefinition(
        id="calendar:read",
        label="Read calendar",
        description="Read calendar events and free/busy information",
        required_scope=_SCOPE_BASE + "calendar.readonly",
    ),
    PermissionDefinition(
        id="calendar:write",
        label="Write calendar",
        description="Create, update, and delete calendar events",
        required_scope=_SCOPE_BASE + "calendar.events",
    ),
)

PERMISSION_GROUPS: dict[str, tuple[str, ...]] = {
    "readonly": ("mail:read", "calendar:read"),
    "fullGmail": ("mail:read", "mail:send", "mail:modify", "mail:labels", "mail:drafts"),
    "fullCalendar": ("calendar:read", "calendar:write"),
    "fullAccess": tuple(p.id for p in PERMISSIONS),
}

OAUTH_SCOPES: tuple[str, ...] = (
    "openid",
    _SCOPE_BASE + "userinfo.email",
    _SCOPE_BASE + "userinfo.profile",
) + tuple(p.required_scope for p in PERMISSIONS)

OPENAPI_TAGS = (
    {"name": "Google Mail - Messages", "description": "Gmail message operations"},
    {"name": "Google Mail - Labels", "description": "Gmail label operations"},
    {"name": "Google Mail - Threads", "description": "Gmail thread operations"},
    {"name": "Google Mail - Drafts", "description": "Gmail draft operations"},
    {"name": "Google Calendar - Calendars", "description": "Google Calendar calendar list operations"},
    {"name": "Google Calendar - Events", "description": "Google Calendar event operations"},
    {"name": "Google Calendar - Free/Busy", "description": "Google Calendar free/busy operations"},
)


# ── Mail handlers ────────────────────────────────────────────────────────────


async def list_messages(call: ProviderCall) -> Any:
    return await GmailClient(call.http).list_messages(
        call.access_token,
        max_results=call.query_int("maxResults", 20),
        page_token=call.query_str("pageToken"),
        q=call.query_str("q"),
        label_ids=call.query_list("labelIds"),
    )


async def get_message(call: ProviderCall) -> Any:
    return await GmailClient(call.http).get_message(
        call.access_token, call.path_params["message_id"]
    )


def _raw(body: SendMessageRequest) -> str:
    return build_raw_message(
        to=body.to_list,
        subject=body.subject,
        body=body.body,
        html=body.html,
        cc=body.cc_list or None,
        bcc=body.bcc_list or None,
        reply_to=body.reply_to,
    )


async def send_message(call: ProviderCall) -> Any:
    return await GmailClient(call.http).send_message(call.access_token, _raw(call.body))


async def modify_message(call: ProviderCall) -> Any:
    body: ModifyLabelsRequest = call.body
    return await GmailClient(call.http).modify_message(
        call.access_token,
        call.path_params["message_id"],
        add_label_ids=body.add_label_ids,
        remove_label_ids=body.remove_label_ids,
    )


async def trash_message(call: ProviderCall) -> Any:
    return await GmailClient(call.http).trash_message(
        call.access_token, call.path_params["message_id"]
    )


async def untrash_message(call: ProviderCall) -> Any:
    return await GmailClient(call.http).untrash_message(
        call.access_token, call.path_params["message_id"]
    )


async def list_labels(call: ProviderCall) -> Any:
    return await GmailClient(call.http).list_labels(call.access_token)


async def create_label(call: ProviderCall) -> Any:
    body: CreateLabelRequest = call.body
    return await GmailClient(call.http).create_label(
        call.access_token, body.model_dump(by_alias=True, exclude_none=True)
    )


async def delete_label(call: ProviderCall) -> Any:
    return await GmailClient(call.http).delete_label(
        call.access_token, call.path_params["label_id"]
    )


async def list_threads(call: ProviderCall) -> Any:
    return await GmailClient(call.http).list_threads(
        call.access_token,
        max_results=call.query_int("maxResults", 20),
        page_token=call.query_str("pageToken"),
        q=call.query_str("q"),
        label_ids=call.query_list("labelIds"),
    )


async def get_thread(call: ProviderCall) -> Any:
    return await GmailClient(call.http).get_thread(
        call.access_token, call.path_params["thread_id"]
    )


async def list_drafts(call: ProviderCall) -> Any:
    return await GmailClient(call.http).list_drafts(
        call.access_token,
        max_results=call.query_int("maxResults", 20),
        page_token=call.query_str("pageToken"),
    )


async def create_draft(call: ProviderCall) -> Any:
    return await GmailClient(call.http).create_draft(call.access_token, _raw(call.body))


async def send_draft(call: ProviderCall) -> Any:
    return await GmailClient(call.http).send_draft(
        call.access_token, call.path_params["draft_id"]
    )


async def delete_draft(call: ProviderCall) -> Any:
    return await GmailClient(call.http).delete_draft(
        call.access_token, call.path_params["draft_id"]
    )


# ── Calendar handlers ────────────────────────────────────────────────────────


async def list_calendars(call: ProviderCall) -> Any:
    return await GoogleCalendarClient(call.http).list_calendars(call.access_token)


async def list_events(call: ProviderCall) -> Any:
    return await GoogleCalendarClient(call.http).list_events(
        call.access_token,
        calendar_id=call.query_str("calendarId") or "primary",
        max_results=call.query_int("maxResults", 50),
        page_token=call.query_str("pageToken"),
        time_min=call.query_str("timeMin"),
        time_max=call.query_str("timeMax"),
        q=call.query_str("q"),
    )


async def get_event(call: ProviderCall) -> Any:
    return await GoogleCalendarClient(call.http).get_event(
        call.access_token,
        call.path_params["event_id"],
        calendar_id=call.query_str("calendarId") or "primary",
    )


async def create_event(call: ProviderCall) -> Any:
    body: CreateEventRequest = call.body
    event = body.model_dump(
        by_alias=True,
        exclude_none=True,
        include={"summary", "description", "location", "start", "end", "attendees"},
    )
    return await GoogleCalendarClient(call.http).create_event(
        call.access_token,
        event,
        calendar_id=body.calendar_id or "primary",
        conference=body.conference_data,
        send_updates=body.send_updates,
    )


async def update_event(call: ProviderCall) -> Any:
    body: UpdateEventRequest = call.body
    changes = body.model_dump(
        by_alias=True,
        exclude_none=True,
        include={"summary", "description", "location", "start", "end", "attendees"},
    )
    return await GoogleCalendarClient(call.http).update_event(
        call.access_token,
        call.path_params["event_id"],
        changes,
        calendar_id=body.calendar_id or "primary",
        send_updates=body.send_updates,
    )


async def delete_event(call: ProviderCall) -> Any:
    return await GoogleCalendarClient(call.http).delete_event(
        call.access_token,
        call.path_params["event_id"],
        calendar_id=call.query_str("calendarId") or "primary",
        send_updates=call.query_str("sendUpdates") or "none",
    )


async def free_busy(call: ProviderCall) -> Any:
    body: FreeBusyRequest = call.body
    return await GoogleCalendarClient(call.http).free_busy(
        call.access_token, body.time_min, body.time_max, body.calendar_ids
    )


_MESSAGES = "Google Mail - Messages"
_LABELS = "Google Mail - Labels"
_THREADS = "Google Mail - Threads"
_DRAFTS = "Google Mail - Drafts"
_CALENDARS = "Google Calendar - Calendars"
_EVENTS = "Google Calendar - Events"
_FREEBUSY = "Google Calendar - Free/Busy"

OPERATIONS: tuple[Operation, ...] = (
    Operation("list_messages", "GET", "/mail/messages", "mail:read", list_messages,
              "List email messages", _MESSAGES),
    Operation("get_message", "GET", "/mail/messages/{message_id}", "mail:read", get_message,
              "Get an email message", _MESSAGES),
    Operation("send_message", "POST", "/mail/messages", "mail:send", send_message,
              "Send an email message", _MESSAGES, SendMessageRequest),
    Operation("modify_message", "POST", "/mail/messages/{message_id}/modify", "mail:modify",
              modify_message, "Add or remove message labels", _MESSAGES, ModifyLabelsRequest),
    Operation("trash_message", "POST", "/mail/messages/{message_id}/trash", "mail:modify",
              trash_message, "Move a message to the trash", _MESSAGES),
    Operation("untrash_message", "POST", "/mail/messages/{message_id}/untrash", "mail:modify",
              untrash_message, "Remove a message from the trash", _MESSAGES),
    Operation("list_labels", "GET", "/mail/labels", "mail:read", list_labels,
              "List labels", _LABELS),
    Operation("create_label", "POST", "/mail/labels", "mail:labels", create_label,
              "Create a label", _LABELS, CreateLabelRequest),
    Operation("delete_label", "DELETE", "/mail/labels/{label_id}", "mail:labels", delete_label,
              "Delete a label", _LABELS),
    Operation("list_threads", "GET", "/mail/threads", "mail:read", list_threads,
              "List email threads", _THREADS),
    Operation("get_thread", "GET", "/mail/threads/{thread_id}", "mail:read", get_thread,
              "Get a thread with all messages", _THREADS),
    Operation("list_drafts", "GET", "/mail/drafts", "mail:drafts", list_drafts,
              "List drafts", _DRAFTS),
    Operation("create_draft", "POST", "/mail/drafts", "mail:drafts", create_draft,
              "Create a draft", _DRAFTS, CreateDraftRequest),
    Operation("send_draft", "POST", "/mail/drafts/{draft_id}/send", "mail:drafts", send_draft,
              "Send a draft", _DRAFTS),
    Operation("delete_draft", "DELETE", "/mail/drafts/{draft_id}", "mail:drafts", delete_draft,
              "Delete a draft", _DRAFTS),
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
    Operation("free_busy", "POST", "/calendar/freebusy", "calendar:read", free_busy,
              "Query free/busy information", _FREEBUSY, FreeBusyRequest),
)


def build_google_provider(settings: OAuthProviderSettings) -> Provider:
    return Provider(
        id=PROVIDER_ID,
        ui=ProviderUI(
            name="Google",
            description="Access Gmail and Google Calendar",
            icon="GoogleLogo",
            color="#4285F4",
        ),
        oauth=OAuthConfig(
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            token_endpoint=TOKEN_ENDPOINT,
            authorization_endpoint=AUTHORIZATION_ENDPOINT,
            scopes=OAUTH_SCOPES,
            additional_params={"access_type": "offline", "prompt": "consent"},
        ),
        permissions=PERMISSIONS,
        scope_to_permissions=scope_map((p.required_scope, [p.id]) for p in PERMISSIONS),
        permission_groups=PERMISSION_GROUPS,
        operations=OPERATIONS,
        openapi_tags=OPENAPI_TAGS,
    )

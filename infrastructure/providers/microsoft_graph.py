"""Microsoft Graph client for Outlook mail and calendar."""

from __future__ import annotations

from typing import Any, Optional, Sequence

from infrastructure.http_client import HttpClient
from infrastructure.providers.base import provider_request

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"

_PROVIDER = "microsoft"
_MESSAGE_FIELDS = (
    "id,conversationId,subject,from,toRecipients,receivedDateTime,"
    "bodyPreview,isRead,hasAttachments,parentFolderId"
)
_EVENT_FIELDS = (
    "id,subject,bodyPreview,start,end,location,attendees,organizer,"
    "isAllDay,isCancelled,webLink,onlineMeeting"
)


def _address(recipient: Optional[dict]) -> Optional[str]:
    if not recipient:
        return None
    return (recipient.get("emailAddress") or {}).get("address")


def _recipients(addresses: Sequence[str]) -> list[dict[str, Any]]:
    return [{"emailAddress": {"address": a}} for a in addresses]


def _message_summary(m: dict) -> dict[str, Any]:
    return {
        "id": m.get("id"),
        "conversationId": m.get("conversationId"),
        "subject": m.get("subject"),
        "from": _address(m.get("from")),
        "to": [_address(r) for r in m.get("toRecipients") or []],
        "receivedDateTime": m.get("receivedDateTime"),
        "snippet": m.get("bodyPreview"),
        "isRead": m.get("isRead"),
        "hasAttachments": m.get("hasAttachments"),
        "folderId": m.get("parentFolderId"),
    }


def _event(e: dict) -> dict[str, Any]:
    return {
        "id": e.get("id"),
        "subject": e.get("subject"),
        "bodyPreview": e.get("bodyPreview"),
        "start": e.get("start") or {},
        "end": e.get("end") or {},
        "location": (e.get("location") or {}).get("displayName"),
        "attendees": [
            {
                "email": _address(a),
                "responseStatus": (a.get("status") or {}).get("response"),
            }
            for a in e.get("attendees") or []
        ],
        "organizer": _address(e.get("organizer")),
        "isAllDay": e.get("isAllDay"),
        "isCancelled": e.get("isCancelled"),
        "webLink": e.get("webLink"),
        "onlineMeetingUrl": (e.get("onlineMeeting") or {}).get("joinUrl"),
    }


class MicrosoftGraphClient:
    def __init__(self, http_client: HttpClient, base_url: str = GRAPH_BASE_URL) -> None:
        self._http = http_client
        self._base = base_url

    async def _call(self, method: str, path: str, access_token: str, **kwargs: Any) -> Any:
        return await provider_request(
            self._http, _PROVIDER, method, f"{self._base}{path}", access_token, **kwargs
        )

    # ── Mail ─────────────────────────────────────────────────────────────────

    async def list_messages(
        self,
        access_token: str,
        max_results: int = 20,
        skip: Optional[int] = None,
        folder_id: Optional[str] = None,
        search: Optional[str] = None,
    ) -> dict[str, Any]:
        path = f"/me/mailFolders/{folder_id}/messages" if folder_id else "/me/messages"
        params: dict[str, Any] = {
            "$top": max_results,
            "$skip": skip,
            "$select": _MESSAGE_FIELDS,
        }
        if search:
            params["$search"] = f'"{search}"'
        else:
            params["$orderby"] = "receivedDateTime desc"
        data = await self._call("GET", path, access_token, params=params)
        return {
            "messages": [_message_summary(m) for m in data.get("value") or []],
            "nextLink": data.get("@odata.nextLink"),
        }

    async def get_message(self, access_token: str, message_id: str) -> dict[str, Any]:
        data = await self._call("GET", f"/me/messages/{message_id}", access_token)
        detail = _message_summary(data)
        body = data.get("body") or {}
        detail["body"] = body.get("content")
        detail["bodyType"] = body.get("contentType")
        detail["cc"] = [_address(r) for r in data.get("ccRecipients") or []]
        return detail

    async def send_message(
        self,
        access_token: str,
        to: Sequence[str],
        subject: str,
        body: str,
        html: bool = False,
        cc: Sequence[str] = (),
        bcc: Sequence[str] = (),
        save_to_sent_items: bool = True,
    ) -> dict[str, Any]:
        message: dict[str, Any] = {
            "subject": subject,
            "body": {"contentType": "HTML" if html else "Text", "content": body},
            "toRecipients": _recipients(to),
        }
        if cc:
            message["ccRecipients"] = _recipients(cc)
        if bcc:
            message["bccRecipients"] = _recipients(bcc)
        await self._call(
            "POST",
            "/me/sendMail",
            access_token,
            json={"message": message, "saveToSentItems": save_to_sent_items},
        )
        return {"success": True}

    async def update_message(
        self,
        access_token: str,
        message_id: str,
        is_read: Optional[bool] = None,
        categories: Optional[list[str]] = None,
    ) -> dict[str, Any]:
        changes: dict[str, Any] = {}
        if is_read is not None:
            changes["isRead"] = is_read
        if categories is not None:
            changes["categories"] = categories
        data = await self._call(
            "PATCH", f"/me/messages/{message_id}", access_token, json=changes
        )
        return _message_summary(data)

    async def trash_message(self, access_token: str, message_id: str) -> dict[str, Any]:
        data = await self._call(
            "POST",
            f"/me/messages/{message_id}/move",
            access_token,
            json={"destinationId": "deleteditems"},
        )
        return {"id": data.get("id"), "folderId": data.get("parentFolderId")}

    async def list_folders(self, access_token: str) -> dict[str, Any]:
        data = await self._call(
            "GET", "/me/mailFolders", access_token, params={"$top": 100}
        )
        return {
            "folders": [
                {
                    "id": f.get("id"),
                    "displayName": f.get("displayName"),
                    "parentFolderId": f.get("parentFolderId"),
                    "totalItemCount": f.get("totalItemCount"),
                    "unreadItemCount": f.get("unreadItemCount"),
                }
                for f in data.get("value") or []
            ]
        }

    # ── Calendar ─────────────────────────────────────────────────────────────

    async def list_calendars(self, access_token: str) -> dict[str, Any]:
        data = await self._call(
            "GET", "/me/calendars", access_token, params={"$top": 100}
        )
        return {
            "calendars": [
                {
                    "id": c.get("id"),
                    "name": c.get("name"),
                    "isDefaultCalendar": c.get("isDefaultCalendar"),
                    "canEdit": c.get("canEdit"),
                    "owner": (c.get("owner") or {}).get("address"),
                }
                for c in data.get("value") or []
            ]
        }

    async def list_events(
        self,
        access_token: str,
        calendar_id: Optional[str] = None,
        max_results: int = 50,
        skip: Optional[int] = None,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ) -> dict[str, Any]:
        base = f"/me/calendars/{calendar_id}" if calendar_id else "/me/calendar"
        params: dict[str, Any] = {
            "$top": max_results,
            "$skip": skip,
            "$select": _EVENT_FIELDS,
        }
        if start and end:
            # calendarView expands recurring events within the window
            path = f"{base}/calendarView"
            params["startDateTime"] = start
            params["endDateTime"] = end
            params["$orderby"] = "start/dateTime"
        else:
            path = f"{base}/events"
        data = await self._call("GET", path, access_token, params=params)
        return {
            "events": [_event(e) for e in data.get("value") or []],
            "nextLink": data.get("@odata.nextLink"),
        }

    async def get_event(self, access_token: str, event_id: str) -> dict[str, Any]:
        data = await self._call("GET", f"/me/events/{event_id}", access_token)
        return _event(data)

    async def create_event(
        self,
        access_token: str,
        event: dict[str, Any],
        calendar_id: Optional[str] = None,
    ) -> dict[str, Any]:
        path = (
            f"/me/calendars/{calendar_id}/events" if calendar_id else "/me/calendar/events"
        )
        data = await self._call("POST", path, access_token, json=event)
        return _event(data)

    async def update_event(
        self, access_token: str, event_id: str, changes: dict[str, Any]
    ) -> dict[str, Any]:
        data = await self._call(
            "PATCH", f"/me/events/{event_id}", access_token, json=changes
        )
        return _event(data)

    async def delete_event(self, access_token: str, event_id: str) -> dict[str, Any]:
        await self._call("DELETE", f"/me/events/{event_id}", access_token)
        return {"success": True}

    async def get_schedule(
        self,
        access_token: str,
        schedules: Sequence[str],
        start: dict[str, str],
        end: dict[str, str],
        interval_minutes: int = 30,
    ) -> dict[str, Any]:
        data = await self._call(
            "POST",
            "/me/calendar/getSchedule",
            access_token,
            json={
                "schedules": list(schedules),
                "startTime": start,
                "endTime": end,
                "availabilityViewInterval": interval_minutes,
            },
        )
        return {
            "schedules": [
                {
                    "scheduleId": s.get("scheduleId"),
                    "availabilityView": s.get("availabilityView"),
                    "items": s.get("scheduleItems") or [],
                }
                for s in data.get("value") or []
            ]
        }

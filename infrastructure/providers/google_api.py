"""Gmail and Google Calendar REST clients.

Thin async wrappers over the public REST endpoints. Responses are reshaped
into compact summaries; everything else is passed through as Google sends it.
"""

from __future__ import annotations

import asyncio
import base64
import time
from email.message import EmailMessage
from typing import Any, Optional, Sequence, Union

from infrastructure.http_client import HttpClient
from infrastructure.providers.base import provider_request

GMAIL_BASE_URL = "https://gmail.googleapis.com/gmail/v1/users/me"
CALENDAR_BASE_URL = "https://www.googleapis.com/calendar/v3"

_PROVIDER = "google"
_METADATA_HEADERS = ["Subject", "From", "To", "Date"]

Recipients = Union[str, Sequence[str]]


def _header(headers: Optional[list], name: str) -> Optional[str]:
    for header in headers or []:
        if (header.get("name") or "").lower() == name.lower():
            return header.get("value")
    return None


def _decode_base64url(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")


def extract_body(payload: Optional[dict]) -> dict[str, str]:
    """Walk a Gmail MIME payload and pull out text/plain and text/html parts."""
    if not payload:
        return {}
    result: dict[str, str] = {}
    data = (payload.get("body") or {}).get("data")
    if data:
        key = "html" if "html" in (payload.get("mimeType") or "") else "text"
        result[key] = _decode_base64url(data)
        return result

    for part in payload.get("parts") or []:
        mime = part.get("mimeType")
        part_data = (part.get("body") or {}).get("data")
        if mime == "text/plain" and part_data:
            result["text"] = _decode_base64url(part_data)
        elif mime == "text/html" and part_data:
            result["html"] = _decode_base64url(part_data)
        elif part.get("parts"):
            result.update(extract_body(part))
    return result


def _join(recipients: Optional[Recipients]) -> Optional[str]:
    if recipients is None:
        return None
    if isinstance(recipients, str):
        return recipients
    return ", ".join(recipients)


def build_raw_message(
    to: Recipients,
    subject: str,
    body: str,
    html: Optional[str] = None,
    cc: Optional[Recipients] = None,
    bcc: Optional[Recipients] = None,
    reply_to: Optional[str] = None,
) -> str:
    """RFC 2822 message, base64url encoded as Gmail's ``raw`` field expects."""
    message = EmailMessage()
    message["To"] = _join(to)
    message["Subject"] = subject
    if cc:
        message["Cc"] = _join(cc)
    if bcc:
        message["Bcc"] = _join(bcc)
    if reply_to:
        message["Reply-To"] = reply_to
    message.set_content(body)
    if html:
        message.add_alternative(html, subtype="html")
    return base64.urlsafe_b64encode(message.as_bytes()).decode("ascii").rstrip("=")


def _message_summary(data: dict) -> dict[str, Any]:
    headers = (data.get("payload") or {}).get("headers")
    return {
        "id": data.get("id"),
        "threadId": data.get("threadId", ""),
        "subject": _header(headers, "Subject"),
        "from": _header(headers, "From"),
        "to": _header(headers, "To"),
        "date": _header(headers, "Date"),
        "snippet": data.get("snippet"),
        "labelIds": data.get("labelIds"),
    }


def _message_detail(data: dict) -> dict[str, Any]:
    detail = _message_summary(data)
    body = extract_body(data.get("payload"))
    detail["body"] = body.get("text")
    detail["bodyHtml"] = body.get("html")
    return detail


class GmailClient:
    def __init__(self, http_client: HttpClient, base_url: str = GMAIL_BASE_URL) -> None:
        self._http = http_client
        self._base = base_url

    async def _call(self, method: str, path: str, access_token: str, **kwargs: Any) -> Any:
        return await provider_request(
            self._http, _PROVIDER, method, f"{self._base}{path}", access_token, **kwargs
        )

    # ── Messages ─────────────────────────────────────────────────────────────

    async def list_messages(
        self,
        access_token: str,
        max_results: int = 20,
        page_token: Optional[str] = None,
        q: Optional[str] = None,
        label_ids: Optional[list[str]] = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"maxResults": max_results, "pageToken": page_token, "q": q}
        if label_ids:
            params["labelIds"] = label_ids
        listing = await self._call("GET", "/messages", access_token, params=params)

        ids = [m for m in listing.get("messages") or [] if m.get("id")]
        details = await asyncio.gather(
            *(
                self._call(
                    "GET",
                    f"/messages/{m['id']}",
                    access_token,
                    params={"format": "metadata", "metadataHeaders": _METADATA_HEADERS},
                )
                for m in ids
            )
        )
        return {
            "messages": [_message_summary(d) for d in details],
            "nextPageToken": listing.get("nextPageToken"),
        }

    async def get_message(self, access_token: str, message_id: str) -> dict[str, Any]:
        data = await self._call(
            "GET", f"/messages/{message_id}", access_token, params={"format": "full"}
        )
        return _message_detail(data)

    async def send_message(self, access_token: str, raw: str) -> dict[str, Any]:
        data = await self._call("POST", "/messages/send", access_token, json={"raw": raw})
        return {"id": data.get("id"), "threadId": data.get("threadId")}

    async def modify_message(
        self,
        access_token: str,
        message_id: str,
        add_label_ids: Optional[list[str]] = None,
        remove_label_ids: Optional[list[str]] = None,
    ) -> dict[str, Any]:
        data = await self._call(
            "POST",
            f"/messages/{message_id}/modify",
            access_token,
            json={
                "addLabelIds": add_label_ids or [],
                "removeLabelIds": remove_label_ids or [],
            },
        )
        return {
            "id": data.get("id"),
            "threadId": data.get("threadId"),
            "labelIds": data.get("labelIds"),
        }

    async def trash_message(self, access_token: str, message_id: str) -> dict[str, Any]:
        data = await self._call("POST", f"/messages/{message_id}/trash", access_token)
        return {"id": data.get("id"), "labelIds": data.get("labelIds")}

    async def untrash_message(self, access_token: str, message_id: str) -> dict[str, Any]:
        data = await self._call("POST", f"/messages/{message_id}/untrash", access_token)
        return {"id": data.get("id"), "labelIds": data.get("labelIds")}

    # ── Labels ───────────────────────────────────────────────────────────────

    async def list_labels(self, access_token: str) -> dict[str, Any]:
        data = await self._call("GET", "/labels", access_token)
        return {"labels": data.get("labels") or []}

    async def create_label(self, access_token: str, label: dict[str, Any]) -> dict[str, Any]:
        return await self._call("POST", "/labels", access_token, json=label)

    async def delete_label(self, access_token: str, label_id: str) -> dict[str, Any]:
        await self._call("DELETE", f"/labels/{label_id}", access_token)
        return {"success": True}

    # ── Threads ──────────────────────────────────────────────────────────────

    async def list_threads(
        self,
        access_token: str,
        max_results: int = 20,
        page_token: Optional[str] = None,
        q: Optional[str] = None,
        label_ids: Optional[list[str]] = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"maxResults": max_results, "pageToken": page_token, "q": q}
        if label_ids:
            params["labelIds"] = label_ids
        data = await self._call("GET", "/threads", access_token, params=params)
        return {
            "threads": [
                {"id": t.get("id"), "snippet": t.get("snippet"), "historyId": t.get("historyId")}
                for t in data.get("threads") or []
            ],
            "nextPageToken": data.get("nextPageToken"),
        }

    async def get_thread(self, access_token: str, thread_id: str) -> dict[str, Any]:
        data = await self._call(
            "GET", f"/threads/{thread_id}", access_token, params={"format": "full"}
        )
        return {
            "id": data.get("id"),
            "historyId": data.get("historyId"),
            "messages": [_message_detail(m) for m in data.get("messages") or []],
        }

    # ── Drafts ───────────────────────────────────────────────────────────────

    async def list_drafts(
        self, access_token: str, max_results: int = 20, page_token: Optional[str] = None
    ) -> dict[str, Any]:
        data = await self._call(
            "GET",
            "/drafts",
            access_token,
            params={"maxResults": max_results, "pageToken": page_token},
        )
        return {
            "drafts": [
                {"id": d.get("id"), "message": d.get("message")}
                for d in data.get("drafts") or []
            ],
            "nextPageToken": data.get("nextPageToken"),
        }

    async def create_draft(self, access_token: str, raw: str) -> dict[str, Any]:
        data = await self._call(
            "POST", "/drafts", access_token, json={"message": {"raw": raw}}
        )
        return {"id": data.get("id"), "message": data.get("message")}

    async def send_draft(self, access_token: str, draft_id: str) -> dict[str, Any]:
        data = await self._call("POST", "/drafts/send", access_token, json={"id": draft_id})
        return {"id": data.get("id"), "threadId": data.get("threadId")}

    async def delete_draft(self, access_token: str, draft_id: str) -> dict[str, Any]:
        await self._call("DELETE", f"/drafts/{draft_id}", access_token)
        return {"success": True}


def _event(event: dict) -> dict[str, Any]:
    return {
        "id": event.get("id", ""),
        "summary": event.get("summary"),
        "description": event.get("description"),
        "location": event.get("location"),
        "start": event.get("start") or {},
        "end": event.get("end") or {},
        "attendees": [
            {"email": a.get("email", ""), "responseStatus": a.get("responseStatus")}
            for a in event.get("attendees") or []
        ],
        "htmlLink": event.get("htmlLink"),
        "hangoutLink": event.get("hangoutLink"),
    }


class GoogleCalendarClient:
    def __init__(self, http_client: HttpClient, base_url: str = CALENDAR_BASE_URL) -> None:
        self._http = http_client
        self._base = base_url

    async def _call(self, method: str, path: str, access_token: str, **kwargs: Any) -> Any:
        return await provider_request(
            self._http, _PROVIDER, method, f"{self._base}{path}", access_token, **kwargs
        )

    async def list_calendars(self, access_token: str) -> dict[str, Any]:
        data = await self._call("GET", "/users/me/calendarList", access_token)
        return {
            "calendars": [
                {
                    "id": c.get("id"),
                    "summary": c.get("summary"),
                    "primary": bool(c.get("primary", False)),
                    "accessRole": c.get("accessRole"),
                    "timeZone": c.get("timeZone"),
                }
                for c in data.get("items") or []
            ]
        }

    async def list_events(
        self,
        access_token: str,
        calendar_id: str = "primary",
        max_results: int = 50,
        page_token: Optional[str] = None,
        time_min: Optional[str] = None,
        time_max: Optional[str] = None,
        q: Optional[str] = None,
    ) -> dict[str, Any]:
        data = await self._call(
            "GET",
            f"/calendars/{calendar_id}/events",
            access_token,
            params={
                "maxResults": max_results,
                "pageToken": page_token,
                "timeMin": time_min,
                "timeMax": time_max,
                "q": q,
                "singleEvents": "true",
                "orderBy": "startTime",
            },
        )
        return {
            "events": [_event(e) for e in data.get("items") or []],
            "nextPageToken": data.get("nextPageToken"),
        }

    async def get_event(
        self, access_token: str, event_id: str, calendar_id: str = "primary"
    ) -> dict[str, Any]:
        data = await self._call(
            "GET", f"/calendars/{calendar_id}/events/{event_id}", access_token
        )
        return _event(data)

    async def create_event(
        self,
        access_token: str,
        event: dict[str, Any],
        calendar_id: str = "primary",
        conference: bool = False,
        send_updates: str = "none",
    ) -> dict[str, Any]:
        body = dict(event)
        params: dict[str, Any] = {"sendUpdates": send_updates}
        if conference:
            body["conferenceData"] = {
                "createRequest": {
                    "requestId": f"meet_{int(time.time() * 1000)}",
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            }
            params["conferenceDataVersion"] = 1
        data = await self._call(
            "POST", f"/calendars/{calendar_id}/events", access_token, params=params, json=body
        )
        return _event(data)

    async def update_event(
        self,
        access_token: str,
        event_id: str,
        changes: dict[str, Any],
        calendar_id: str = "primary",
        send_updates: str = "none",
    ) -> dict[str, Any]:
        data = await self._call(
            "PATCH",
            f"/calendars/{calendar_id}/events/{event_id}",
            access_token,
            params={"sendUpdates": send_updates},
            json=changes,
        )
        return _event(data)

    async def delete_event(
        self,
        access_token: str,
        event_id: str,
        calendar_id: str = "primary",
        send_updates: str = "none",
    ) -> dict[str, Any]:
        await self._call(
            "DELETE",
            f"/calendars/{calendar_id}/events/{event_id}",
            access_token,
            params={"sendUpdates": send_updates},
        )
        return {"success": True}

    async def free_busy(
        self,
        access_token: str,
        time_min: str,
        time_max: str,
        calendar_ids: Sequence[str] = ("primary",),
    ) -> dict[str, Any]:
        data = await self._call(
            "POST",
            "/freeBusy",
            access_token,
            json={
                "timeMin": time_min,
                "timeMax": time_max,
                "items": [{"id": cid} for cid in calendar_ids],
            },
        )
        return {
            "calendars": {
                cid: {"busy": (info or {}).get("busy") or []}
                for cid, info in (data.get("calendars") or {}).items()
            }
        }

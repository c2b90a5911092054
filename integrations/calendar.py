"""
Calendar API Integration
Google Calendar v3 over REST, authenticated with an OAuth2 refresh token.
"""
from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, List, Optional

import httpx
from dotenv import load_dotenv

from supremo_gateway.errors import RemoteAPIError

load_dotenv()

logger = logging.getLogger(__name__)

CALENDAR_BASE_URL = "https://www.googleapis.com/calendar/v3"
TOKEN_URL = "https://oauth2.googleapis.com/token"


def to_event_time(value: str, timezone: str) -> Dict[str, str]:
    """Date-only strings become all-day times; anything else is a dateTime."""
    if "T" in value:
        return {"dateTime": value, "timeZone": timezone}
    return {"date": value}


class GoogleCalendarClient:
    """
    Async client for the Google Calendar events resource.

    Non-2xx answers raise RemoteAPIError carrying the raw body. Retrying is
    left to the caller.
    """

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        refresh_token: Optional[str] = None,
        calendar_id: Optional[str] = None,
        timezone: str = "America/Sao_Paulo",
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.client_id = client_id or os.getenv("GOOGLE_CLIENT_ID", "")
        self.client_secret = client_secret or os.getenv("GOOGLE_CLIENT_SECRET", "")
        self.refresh_token = refresh_token or os.getenv("GOOGLE_REFRESH_TOKEN", "")
        self.calendar_id = calendar_id or os.getenv("GOOGLE_CALENDAR_ID", "primary")
        self.timezone = timezone
        self.timeout = timeout
        self._client = http_client
        self._access_token: Optional[str] = None
        self._token_expires_at = 0.0

        if not (self.client_id and self.client_secret and self.refresh_token):
            logger.warning(
                "Google Calendar credentials not configured. "
                "Set GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET and GOOGLE_REFRESH_TOKEN."
            )

    async def get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _token(self) -> str:
        if self._access_token and time.time() < self._token_expires_at - 60:
            return self._access_token

        client = await self.get_client()
        response = await client.post(
            TOKEN_URL,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": self.refresh_token,
                "grant_type": "refresh_token",
            },
        )
        if not response.is_success:
            logger.error(f"Google token refresh failed: {response.status_code}")
            raise RemoteAPIError("Google OAuth", response.status_code, response.text)
        data = response.json()
        self._access_token = data["access_token"]
        self._token_expires_at = time.time() + float(data.get("expires_in", 3600))
        return self._access_token

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        client = await self.get_client()
        headers = {"Authorization": f"Bearer {await self._token()}"}
        url = f"{CALENDAR_BASE_URL}/calendars/{self.calendar_id}{path}"
        response = await client.request(method, url, headers=headers, **kwargs)
        if not response.is_success:
            logger.error(f"Google Calendar API error: {method} {path} -> {response.status_code} - {response.text}")
            raise RemoteAPIError("Google Calendar", response.status_code, response.text)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def _resource(self, data: Dict[str, Any]) -> Dict[str, Any]:
        resource: Dict[str, Any] = {}
        for key in ("summary", "description", "location", "colorId"):
            if data.get(key):
                resource[key] = data[key]
        if data.get("start"):
            resource["start"] = to_event_time(data["start"], self.timezone)
        if data.get("end"):
            resource["end"] = to_event_time(data["end"], self.timezone)
        # an empty list clears the guests
        if data.get("attendees") is not None:
            resource["attendees"] = [
                a if isinstance(a, dict) else {"email": a} for a in data["attendees"]
            ]
        if data.get("reminders"):
            resource["reminders"] = data["reminders"]
        if data.get("recurrence"):
            recurrence = data["recurrence"]
            resource["recurrence"] = recurrence if isinstance(recurrence, list) else [recurrence]
        return resource

    async def list_events(self, time_min: str, time_max: str) -> List[Dict[str, Any]]:
        data = await self._request(
            "GET",
            "/events",
            params={
                "timeMin": time_min,
                "timeMax": time_max,
                "singleEvents": "true",
                "orderBy": "startTime",
            },
        )
        items = (data or {}).get("items", [])
        logger.debug(f"Listed {len(items)} events between {time_min} and {time_max}")
        return items

    async def create_event(self, data: Dict[str, Any]) -> Dict[str, Any]:
        resource = self._resource(data)
        resource["reminders"] = {"useDefault": False, "overrides": [{"method": "popup", "minutes": 30}]}
        if "end" not in resource and "start" in resource:
            resource["end"] = resource["start"]
        params = {}
        if data.get("online"):
            resource["conferenceData"] = {
                "createRequest": {
                    "requestId": f"supremo-{int(time.time() * 1000)}",
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            }
            params["conferenceDataVersion"] = 1
        event = await self._request("POST", "/events", json=resource, params=params)
        logger.info(f"Created event {event.get('id')}: {event.get('summary')}")
        return event

    async def update_event(self, event_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        event = await self._request("PATCH", f"/events/{event_id}", json=self._resource(updates))
        logger.info(f"Updated event {event_id}")
        return event

    async def delete_event(self, event_id: str) -> None:
        await self._request("DELETE", f"/events/{event_id}")
        logger.info(f"Deleted event {event_id}")

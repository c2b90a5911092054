"""Tests for the Trello and Google Calendar REST clients."""

import json
import time

import httpx
import pytest

from integrations.board import TRELLO_BASE_URL, TrelloClient
from integrations.calendar import CALENDAR_BASE_URL, GoogleCalendarClient
from supremo_gateway.errors import RemoteAPIError


class Recorder:
    def __init__(self, status=200, body=None):
        self.requests = []
        self.status = status
        self.body = body

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.body is None:
            return httpx.Response(self.status)
        return httpx.Response(self.status, json=self.body)


def trello(recorder):
    client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    return TrelloClient(api_key="k", token="t", board_id="b1", inbox_list_id="l0", http_client=client)


def google(recorder):
    client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    calendar = GoogleCalendarClient(
        client_id="id", client_secret="secret", refresh_token="refresh", calendar_id="primary", http_client=client
    )
    calendar._access_token = "token"
    calendar._token_expires_at = time.time() + 3600
    return calendar


class TestTrelloClient:
    @pytest.mark.asyncio
    async def test_archive_list_sends_closed_flag(self):
        recorder = Recorder(body={"id": "l1", "closed": True})
        await trello(recorder).update_list("l1", {"closed": True})

        request = recorder.requests[0]
        assert request.method == "PUT"
        assert str(request.url).startswith(f"{TRELLO_BASE_URL}/lists/l1?")
        assert request.url.params["closed"] == "true"
        assert "name" not in request.url.params

    @pytest.mark.asyncio
    async def test_create_list_on_board(self):
        recorder = Recorder(body={"id": "l9", "name": "Financeiro"})
        board_list = await trello(recorder).create_list("Financeiro")

        assert board_list["id"] == "l9"
        params = recorder.requests[0].url.params
        assert (params["name"], params["idBoard"], params["pos"]) == ("Financeiro", "b1", "bottom")

    @pytest.mark.asyncio
    async def test_deletions_use_card_and_checklist_paths(self):
        recorder = Recorder()
        client = trello(recorder)
        await client.remove_label("c1", "lbl1")
        await client.delete_check_item("c1", "i1")
        await client.delete_checklist("chk1")

        assert [(r.method, r.url.path) for r in recorder.requests] == [
            ("DELETE", "/1/cards/c1/idLabels/lbl1"),
            ("DELETE", "/1/cards/c1/checkItem/i1"),
            ("DELETE", "/1/checklists/chk1"),
        ]

    @pytest.mark.asyncio
    async def test_card_detail_asks_for_nested_resources(self):
        recorder = Recorder(body={"id": "c1"})
        await trello(recorder).get_card_detail("c1")

        params = recorder.requests[0].url.params
        assert params["checklists"] == "all"
        assert params["members"] == "true"
        assert params["attachments"] == "true"

    @pytest.mark.asyncio
    async def test_error_status_raises_remote_error(self):
        recorder = Recorder(status=404, body={"message": "not found"})
        with pytest.raises(RemoteAPIError) as excinfo:
            await trello(recorder).get_card_actions("c1")
        assert excinfo.value.status_code == 404


class TestGoogleCalendarClient:
    @pytest.mark.asyncio
    async def test_update_can_clear_attendees_and_set_reminders(self):
        recorder = Recorder(body={"id": "e1"})
        reminders = {"useDefault": False, "overrides": [{"method": "popup", "minutes": 30}]}
        await google(recorder).update_event("e1", {"attendees": [], "reminders": reminders})

        request = recorder.requests[0]
        assert request.method == "PATCH"
        assert str(request.url) == f"{CALENDAR_BASE_URL}/calendars/primary/events/e1"
        assert json.loads(request.content) == {"attendees": [], "reminders": reminders}

    @pytest.mark.asyncio
    async def test_plain_addresses_become_attendee_objects(self):
        recorder = Recorder(body={"id": "e1"})
        await google(recorder).update_event("e1", {"attendees": ["ana@escritorio.com"]})
        assert json.loads(recorder.requests[0].content) == {"attendees": [{"email": "ana@escritorio.com"}]}

"""
Board API Integration
Trello REST API client (lists, cards, labels, members, checklists).
"""
from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

import httpx
from dotenv import load_dotenv

from supremo_gateway.errors import RemoteAPIError

load_dotenv()

logger = logging.getLogger(__name__)

TRELLO_BASE_URL = "https://api.trello.com/1"
CARD_FIELDS = "name,shortUrl,url,due,dueComplete,idList,labels,desc,closed,dateLastActivity"


class TrelloClient:
    """
    Async Trello client.

    Every call authenticates with key/token query parameters. Non-2xx answers
    raise RemoteAPIError with the raw body; retrying is left to the caller.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        token: Optional[str] = None,
        board_id: Optional[str] = None,
        inbox_list_id: Optional[str] = None,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key or os.getenv("TRELLO_API_KEY", "")
        self.token = token or os.getenv("TRELLO_TOKEN", "")
        self.board_id = board_id or os.getenv("TRELLO_BOARD_ID", "")
        self.inbox_list_id = inbox_list_id or os.getenv("TRELLO_LIST_ID_INBOX", "")
        self.timeout = timeout
        self._client = http_client

        if not self.api_key or not self.token:
            logger.warning("Trello API key or token not configured. Set TRELLO_API_KEY and TRELLO_TOKEN.")

    async def get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        client = await self.get_client()
        query = {"key": self.api_key, "token": self.token}
        query.update({k: v for k, v in (params or {}).items() if v is not None})
        response = await client.request(method, f"{TRELLO_BASE_URL}{path}", params=query)
        if not response.is_success:
            logger.error(f"Trello API error: {method} {path} -> {response.status_code} - {response.text}")
            raise RemoteAPIError("Trello", response.status_code, response.text)
        if not response.content:
            return None
        return response.json()

    # Lists and cards

    async def get_lists(self) -> List[Dict[str, Any]]:
        return await self._request("GET", f"/boards/{self.board_id}/lists")

    async def create_list(self, name: str) -> Dict[str, Any]:
        board_list = await self._request("POST", "/lists", {"name": name, "idBoard": self.board_id, "pos": "bottom"})
        logger.info(f"Created list {board_list.get('id')}: {name}")
        return board_list

    async def update_list(self, list_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Rename (``name``) or archive (``closed``) a list."""
        params = {"name": updates.get("name")}
        if "closed" in updates:
            params["closed"] = "true" if updates["closed"] else "false"
        board_list = await self._request("PUT", f"/lists/{list_id}", params)
        logger.info(f"Updated list {list_id}: {sorted(k for k, v in params.items() if v is not None)}")
        return board_list

    async def list_cards(self, list_id: Optional[str] = None) -> List[Dict[str, Any]]:
        list_id = list_id or self.inbox_list_id
        return await self._request("GET", f"/lists/{list_id}/cards", {"fields": CARD_FIELDS})

    async def list_grouped(self) -> List[Dict[str, Any]]:
        """Open lists of the board, each with its open cards."""
        groups = []
        for board_list in await self.get_lists():
            cards = await self.list_cards(board_list["id"])
            groups.append({"id": board_list["id"], "name": board_list["name"], "cards": cards})
        logger.debug(f"Grouped {sum(len(g['cards']) for g in groups)} cards in {len(groups)} lists")
        return groups

    async def list_all_cards(self) -> List[Dict[str, Any]]:
        cards = []
        for group in await self.list_grouped():
            cards.extend({**card, "listName": group["name"]} for card in group["cards"])
        return cards

    async def get_card(self, card_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/cards/{card_id}", {"fields": CARD_FIELDS})

    async def get_card_detail(self, card_id: str) -> Dict[str, Any]:
        """Card with its members, checklists and attachments."""
        return await self._request(
            "GET",
            f"/cards/{card_id}",
            {
                "fields": CARD_FIELDS,
                "members": "true",
                "member_fields": "fullName,username",
                "checklists": "all",
                "attachments": "true",
            },
        )

    async def get_card_actions(self, card_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        return await self._request("GET", f"/cards/{card_id}/actions", {"filter": "all", "limit": limit})

    async def create_card(self, data: Dict[str, Any]) -> Dict[str, Any]:
        params = {
            "idList": data.get("idList") or self.inbox_list_id,
            "name": data.get("name"),
            "desc": data.get("desc") or None,
            "due": data.get("due") or None,
            "idLabels": ",".join(data["labels"]) if data.get("labels") else None,
            "idMembers": ",".join(data["members"]) if data.get("members") else None,
        }
        card = await self._request("POST", "/cards", params)
        logger.info(f"Created card {card.get('id')}: {card.get('name')}")
        return card

    async def update_card(self, card_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        params = {k: updates.get(k) for k in ("name", "desc", "due", "idList", "dueComplete")}
        if "closed" in updates:
            params["closed"] = "true" if updates["closed"] else "false"
        card = await self._request("PUT", f"/cards/{card_id}", params)
        logger.info(f"Updated card {card_id}: {sorted(k for k, v in params.items() if v is not None)}")
        return card

    async def delete_card(self, card_id: str) -> None:
        await self._request("DELETE", f"/cards/{card_id}")
        logger.info(f"Deleted card {card_id}")

    async def search_cards(self, query: str) -> List[Dict[str, Any]]:
        data = await self._request(
            "GET",
            "/search",
            {
                "query": query,
                "idBoards": self.board_id,
                "modelTypes": "cards",
                "card_fields": CARD_FIELDS,
                "cards_limit": 50,
                "partial": "true",
            },
        )
        return (data or {}).get("cards", [])

    async def add_comment(self, card_id: str, text: str) -> Dict[str, Any]:
        return await self._request("POST", f"/cards/{card_id}/actions/comments", {"text": text})

    # Labels and members

    async def get_labels(self) -> List[Dict[str, Any]]:
        return await self._request("GET", f"/boards/{self.board_id}/labels")

    async def create_label(self, name: str, color: str = "sky") -> Dict[str, Any]:
        label = await self._request("POST", "/labels", {"name": name, "color": color, "idBoard": self.board_id})
        logger.info(f"Created label {name} ({color})")
        return label

    async def add_label(self, card_id: str, label_id: str) -> Any:
        return await self._request("POST", f"/cards/{card_id}/idLabels", {"value": label_id})

    async def remove_label(self, card_id: str, label_id: str) -> Any:
        return await self._request("DELETE", f"/cards/{card_id}/idLabels/{label_id}")

    async def get_members(self) -> List[Dict[str, Any]]:
        return await self._request("GET", f"/boards/{self.board_id}/members")

    async def add_member(self, card_id: str, member_id: str) -> Any:
        return await self._request("POST", f"/cards/{card_id}/idMembers", {"value": member_id})

    # Checklists

    async def get_card_checklists(self, card_id: str) -> List[Dict[str, Any]]:
        return await self._request("GET", f"/cards/{card_id}/checklists")

    async def add_checklist(self, card_id: str, name: str, items: Optional[List[str]] = None) -> Dict[str, Any]:
        checklist = await self._request("POST", f"/cards/{card_id}/checklists", {"name": name or "Checklist"})
        for item in items or []:
            await self.add_checklist_item(checklist["id"], item)
        logger.info(f"Created checklist {checklist.get('id')} with {len(items or [])} items on card {card_id}")
        return checklist

    async def add_checklist_item(self, checklist_id: str, name: str) -> Dict[str, Any]:
        return await self._request("POST", f"/checklists/{checklist_id}/checkItems", {"name": name})

    async def update_check_item(self, card_id: str, item_id: str, state: str) -> Dict[str, Any]:
        return await self._request("PUT", f"/cards/{card_id}/checkItem/{item_id}", {"state": state})

    async def delete_check_item(self, card_id: str, item_id: str) -> None:
        await self._request("DELETE", f"/cards/{card_id}/checkItem/{item_id}")
        logger.info(f"Deleted check item {item_id} from card {card_id}")

    async def delete_checklist(self, checklist_id: str) -> None:
        await self._request("DELETE", f"/checklists/{checklist_id}")
        logger.info(f"Deleted checklist {checklist_id}")

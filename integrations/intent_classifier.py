"""LLM-backed intent classification.

Turns a chat message into a list of raw intent records. The model is told
to answer with JSON only; its output is stripped of code fences and parsed
strictly. Network and parse failures raise ClassifierError so the caller can
tell "the model failed" apart from "the model chose to just chat".
"""

import json
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytz

from supremo_gateway.errors import ClassifierError

logger = logging.getLogger(__name__)

WEEKDAYS_PT = ["segunda-feira", "terça-feira", "quarta-feira", "quinta-feira", "sexta-feira", "sábado", "domingo"]

INTENT_CATALOG = """\
Agenda:
- create_event: summary, start (ISO), end (ISO, opcional), description, location, online (bool), priority (high|medium|low)
- list_events: period (day|week), target_date (YYYY-MM-DD)
- update_event: query, target_date, summary, start, end, description, location
- complete_event / delete_event: query, target_date
- complete_all_events: period (day|week|YYYY-MM-DD)
- check_availability: target_date, period (morning|afternoon)
- smart_schedule: summary, duration (minutos), target_date, period
- report: period (day|week), target_date
- event_add_attendee / event_remove_attendee: query, email, target_date
- event_set_reminder: query, minutes, method (popup|email), target_date
- event_get_detail: query, field (location|description|start|attendees|duration), target_date
Trello:
- trello_create: name, desc, due, checklist (lista), list_query, label_query, priority
- trello_list: list_query, filter (due_today|overdue)
- trello_update: query, name, desc, due
- trello_move: query, list
- trello_archive / trello_delete / trello_search: query
- trello_clear_list: list_query
- trello_add_comment: query, comment
- trello_add_label: query, label
- trello_add_member: query, member
- trello_add_checklist_item: query, item, checklist_name
- trello_check_item: query, item, state (complete|incomplete)
- trello_get / trello_checklist / trello_card_activity: query (trello_card_activity aceita limit)
- trello_remove_label: query, label
- trello_due_complete: query, complete (bool)
- trello_delete_check_item: query, item (nome ou número)
- trello_delete_checklist: query, checklist_name
- trello_list_lists / trello_board_stats: sem campos
- trello_create_list: name
- trello_rename_list: list_query, new_name
- trello_archive_list: list_query
- trello_move_all_cards: from_list, to_list
Memória:
- store_info: key, value, category
- query_info: query
- list_info: category
- delete_info: key
Outros:
- undo
- chat: message (resposta conversacional)"""


def build_classifier_prompt(now: datetime, user_context: Optional[str] = None) -> str:
    """System prompt with the current date and the intent catalog."""
    context = f"\nContexto do usuário: {user_context}\n" if user_context else ""
    return f"""Você é o classificador de um assistente pessoal.
Data atual: {now.strftime('%Y-%m-%d')} ({WEEKDAYS_PT[now.weekday()]}), ano {now.year}.
Fuso horário: {now.tzinfo}.{context}
Converta a mensagem do usuário em JSON. Responda APENAS com JSON: um objeto
ou uma lista de objetos, cada um com o campo "type" e os campos do tipo.
Datas e horários em ISO 8601 no fuso local.

Tipos disponíveis:
{INTENT_CATALOG}"""


def strip_code_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        lines = [line for line in text.split("\n") if not line.strip().startswith("```")]
        text = "\n".join(lines).strip()
    return text


def parse_classifier_output(response_text: str) -> List[Dict[str, Any]]:
    """Parse the model's JSON answer into a list of raw intent dicts."""
    text = strip_code_fences(response_text)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning(f"Classifier output is not valid JSON: {e}")
        raise ClassifierError("classifier returned invalid JSON") from e

    if isinstance(data, dict) and isinstance(data.get("intents"), list):
        data = data["intents"]
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise ClassifierError("classifier output is not an object or a list of objects")
    return data


class IntentClassifier:
    """Callable classifier collaborator used by the dispatcher."""

    def __init__(
        self,
        llm_client,
        timezone_str: str = "America/Sao_Paulo",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.llm_client = llm_client
        self.tz = pytz.timezone(timezone_str)
        self._clock = clock or (lambda: datetime.now(pytz.utc))

    async def interpret(
        self,
        text: str,
        user_id: str,
        user_context: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        now = self._clock().astimezone(self.tz)
        messages = [
            {"role": "system", "content": build_classifier_prompt(now, user_context)},
            {"role": "user", "content": text},
        ]
        try:
            result = await self.llm_client.chat_completion(
                messages=messages,
                temperature=0.0,
                json_output=True,
            )
            response_text = result["choices"][0]["message"]["content"]
        except (httpx.HTTPError, KeyError, IndexError, TypeError) as e:
            logger.error(f"Classifier request failed for user {user_id}: {e}")
            raise ClassifierError("classifier request failed") from e

        logger.info(f"Classifier raw output for user {user_id}: {response_text[:200]}")
        intents = parse_classifier_output(response_text)
        logger.info(f"Classified {len(intents)} intent(s): {[i.get('type') or i.get('tipo') for i in intents]}")
        return intents

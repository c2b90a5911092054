"""Supremo Gateway - FastAPI surface for the chat transport.

The chat bot (or any other transport) posts user messages and button
presses here and relays the returned replies with their inline buttons.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from integrations.board import TrelloClient
from integrations.calendar import GoogleCalendarClient
from integrations.intent_classifier import IntentClassifier
from integrations.llm_client import LLMClient
from storage.json_store import JsonFileStore
from storage.knowledge_store import KnowledgeStore

from .action_history import ActionHistoryStore
from .config import Config
from .dispatcher import IntentDispatcher
from .errors import sanitize_error_message
from .flow_state import FlowStateStore
from .models import CallbackRequest, ErrorDetail, ErrorResponse, MessageRequest, RepliesResponse
from .pending_confirmations import ConfirmationStore
from .retry import RetryPolicy
from .state_paths import action_history_path, knowledge_db_path, sessions_path

logger = logging.getLogger(__name__)

# Global config, collaborators and dispatcher
_config: Optional[Config] = None
_dispatcher: Optional[IntentDispatcher] = None
_clients: list = []


def get_config() -> Config:
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def build_dispatcher(config: Config) -> IntentDispatcher:
    """Wire collaborators and persistent stores from ``config``."""
    state_dir = config.state_dir
    llm_client = LLMClient(base_url=config.llm_api_url, model=config.llm_model, api_key=config.llm_api_key)
    calendar = GoogleCalendarClient(
        client_id=config.google_client_id,
        client_secret=config.google_client_secret,
        refresh_token=config.google_refresh_token,
        calendar_id=config.google_calendar_id,
        timezone=config.timezone,
    )
    board = TrelloClient(
        api_key=config.trello_api_key,
        token=config.trello_token,
        board_id=config.trello_board_id,
        inbox_list_id=config.trello_inbox_list_id,
    )
    memory = KnowledgeStore(knowledge_db_path(state_dir))
    _clients.extend([llm_client, calendar, board, memory])

    logger.info(f"Building dispatcher with state in {state_dir}")
    return IntentDispatcher(
        classifier=IntentClassifier(llm_client, timezone_str=config.timezone),
        calendar=calendar,
        board=board,
        memory=memory,
        confirmations=ConfirmationStore(timeout=config.confirmation_timeout),
        history=ActionHistoryStore(JsonFileStore(action_history_path(state_dir))),
        flow_states=FlowStateStore(JsonFileStore(sessions_path(state_dir))),
        retry=RetryPolicy(max_attempts=config.retry_max_attempts),
        timezone_str=config.timezone,
        user_profiles=config.user_profiles,
    )


def get_dispatcher() -> IntentDispatcher:
    """Get or create the dispatcher."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = build_dispatcher(get_config())
    return _dispatcher


def check_allowed(user_id: str) -> None:
    if not get_config().is_allowed(user_id):
        logger.warning(f"Rejected request from unlisted chat {user_id}")
        raise HTTPException(status_code=403, detail="chat not allowed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Supremo Gateway starting up...")
    yield
    global _dispatcher
    for client in _clients:
        close = getattr(client, "close", None)
        if close is None:
            continue
        result = close()
        if hasattr(result, "__await__"):
            await result
    _clients.clear()
    _dispatcher = None
    logger.info("Supremo Gateway shut down.")


app = FastAPI(
    title="Supremo Gateway",
    description="Chat assistant for calendar, Trello board and memory",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error: {exc}")
    error = ErrorResponse(
        error=ErrorDetail(message=sanitize_error_message(exc), type="server_error", code="internal_error")
    )
    return JSONResponse(status_code=500, content=error.model_dump())


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    error = ErrorResponse(
        error=ErrorDetail(
            message=str(exc.detail),
            type="invalid_request_error" if exc.status_code < 500 else "server_error",
            code=str(exc.status_code),
        )
    )
    return JSONResponse(status_code=exc.status_code, content=error.model_dump())


@app.get("/health")
async def health_check():
    return {"status": "healthy", "gateway": True}


@app.post("/v1/messages")
async def post_message(
    request: MessageRequest,
    dispatcher: IntentDispatcher = Depends(get_dispatcher),
) -> RepliesResponse:
    check_allowed(request.user_id)
    logger.info(f"Message from {request.user_id}: {request.text[:80]}")
    replies = await dispatcher.handle_message(request.user_id, request.text)
    return RepliesResponse.from_replies(replies)


@app.post("/v1/callbacks")
async def post_callback(
    request: CallbackRequest,
    dispatcher: IntentDispatcher = Depends(get_dispatcher),
) -> RepliesResponse:
    check_allowed(request.user_id)
    replies = await dispatcher.handle_callback(request.user_id, request.data)
    return RepliesResponse.from_replies(replies)


def create_app() -> FastAPI:
    """Factory function to create the FastAPI app."""
    return app


if __name__ == "__main__":
    import uvicorn

    from agent_logging import configure_component_loggers

    config = get_config()
    configure_component_loggers(config.log_level)
    uvicorn.run(
        "supremo_gateway.server:app",
        host=config.host,
        port=config.port,
        reload=False,
    )

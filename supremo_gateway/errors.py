"""Error types shared by the gateway and its service clients."""

from __future__ import annotations

import re
from typing import Optional

GENERIC_ERROR_MESSAGE = "Ocorreu um erro interno. Tente novamente."

# Anything that looks like a credential in a query string or header dump
_SECRET_PATTERN = re.compile(r"(key|token|secret|authorization)=?[:\s]*\S+", re.IGNORECASE)


class AssistantError(Exception):
    """Base class for errors raised inside the assistant."""


class RemoteAPIError(AssistantError):
    """A remote service answered with a non-2xx status.

    The raw response body is kept for logging; it is never shown to users.
    """

    def __init__(self, service: str, status_code: int, body: str = ""):
        self.service = service
        self.status_code = status_code
        self.body = body
        super().__init__(f"{service} returned HTTP {status_code}")

    @property
    def is_transient(self) -> bool:
        return self.status_code == 429 or self.status_code >= 500


class ClassifierError(AssistantError):
    """The language model could not be reached or its output was unusable."""


class IntentValidationError(AssistantError):
    """An intent record was recognised but is missing required fields."""

    def __init__(self, intent_type: str, detail: str):
        self.intent_type = intent_type
        self.detail = detail
        super().__init__(f"Invalid '{intent_type}' intent: {detail}")


def sanitize_error_message(error: Optional[BaseException]) -> str:
    """Return a message that is safe to show in the chat.

    Messages carrying file paths, credentials or long remote payloads are
    replaced by a generic text.
    """
    if error is None:
        return GENERIC_ERROR_MESSAGE
    if isinstance(error, RemoteAPIError):
        return f"O serviço {error.service} não respondeu como esperado (HTTP {error.status_code})."

    message = str(error).strip()
    if not message:
        return GENERIC_ERROR_MESSAGE
    if "/" in message or "\\" in message or len(message) > 100:
        return GENERIC_ERROR_MESSAGE
    if _SECRET_PATTERN.search(message):
        return GENERIC_ERROR_MESSAGE
    return message

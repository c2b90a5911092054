"""Integration modules package."""
from .board import TrelloClient
from .calendar import GoogleCalendarClient
from .intent_classifier import IntentClassifier
from .llm_client import LLMClient

__all__ = [
    "TrelloClient",
    "GoogleCalendarClient",
    "IntentClassifier",
    "LLMClient",
]

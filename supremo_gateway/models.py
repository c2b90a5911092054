"""Pydantic models for the gateway HTTP API."""

from typing import List, Optional

from pydantic import BaseModel, Field

from .formatting import Reply


# Request models
class MessageRequest(BaseModel):
    """A chat message from one user."""
    user_id: str = Field(min_length=1)
    text: str


class CallbackRequest(BaseModel):
    """An inline button press; ``data`` is the button's callback data."""
    user_id: str = Field(min_length=1)
    data: str = Field(min_length=1)


# Response models
class ButtonModel(BaseModel):
    text: str
    callback_data: str


class ReplyModel(BaseModel):
    """One message to send back, with optional rows of inline buttons."""
    text: str
    buttons: List[List[ButtonModel]] = Field(default_factory=list)
    markdown: bool = True

    @classmethod
    def from_reply(cls, reply: Reply) -> "ReplyModel":
        return cls.model_validate(reply.to_dict())


class RepliesResponse(BaseModel):
    replies: List[ReplyModel]

    @classmethod
    def from_replies(cls, replies: List[Reply]) -> "RepliesResponse":
        return cls(replies=[ReplyModel.from_reply(r) for r in replies])


class ErrorDetail(BaseModel):
    message: str
    type: str
    code: Optional[str] = None


class ErrorResponse(BaseModel):
    error: ErrorDetail

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _Inbound(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class InboundMessage(_Inbound):
    message_id: Optional[str] = Field(default=None, alias="messageId")
    text: str = ""


class SuggestionResponse(_Inbound):
    postback_data: str = Field(default="", alias="postbackData")
    text: Optional[str] = None


class UserStatus(_Inbound):
    is_typing: Optional[bool] = Field(default=None, alias="isTyping")


class Receipt(_Inbound):
    receipt_type: str = Field(default="", alias="receiptType")
    message: str = ""


class Receipts(_Inbound):
    receipts: List[Receipt] = Field(default_factory=list)


class CallbackPayload(_Inbound):
    """Webhook body posted by the messaging platform to /callback."""
    conversation_id: str = Field(alias="conversationId", min_length=1)
    request_id: Optional[str] = Field(default=None, alias="requestId")
    message: Optional[InboundMessage] = None
    suggestion_response: Optional[SuggestionResponse] = Field(default=None, alias="suggestionResponse")
    user_status: Optional[UserStatus] = Field(default=None, alias="userStatus")
    receipts: Optional[Receipts] = None

    @property
    def event_id(self) -> Optional[str]:
        # Typed messages dedupe on their message id, other events on requestId
        if self.message is not None and self.message.message_id:
            return self.message.message_id
        return self.request_id or None

    @property
    def user_text(self) -> Optional[str]:
        if self.message is not None:
            return self.message.text
        if self.suggestion_response is not None:
            return self.suggestion_response.postback_data
        return None

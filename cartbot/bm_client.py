from __future__ import annotations

import logging
import threading
import uuid
from typing import Any, Dict, List, Optional

import google.auth.transport.requests
import httpx
from google.auth import exceptions as google_auth_exceptions
from google.oauth2 import service_account

from .reply_builder import (
    Card,
    CarouselReply,
    Reply,
    SingleCardReply,
    Suggestion,
    TextReply,
    fallback_text,
)

logger = logging.getLogger(__name__)

TYPING_STARTED = "TYPING_STARTED"
TYPING_STOPPED = "TYPING_STOPPED"
MEDIA_HEIGHT_MEDIUM = "MEDIUM"
BM_SCOPE = "https://www.googleapis.com/auth/businessmessages"


class OutboundTransportError(Exception):
    """A single outbound sub-request failed."""


def _suggestions_json(suggestions: List[Suggestion]) -> List[Dict[str, Any]]:
    return [{"reply": {"text": s.text, "postbackData": s.postback_data}} for s in suggestions]


def _card_json(card: Card) -> Dict[str, Any]:
    out: Dict[str, Any] = {"title": card.title}
    if card.description:
        out["description"] = card.description
    if card.media_url:
        out["media"] = {
            "height": MEDIA_HEIGHT_MEDIUM,
            "contentInfo": {"fileUrl": card.media_url, "forceRefresh": True},
        }
    if card.suggestions:
        out["suggestions"] = _suggestions_json(card.suggestions)
    return out


def message_body(reply: Reply, agent_name: str, message_id: Optional[str] = None) -> Dict[str, Any]:
    """Translate a Reply into the Business Messages message resource."""
    body: Dict[str, Any] = {
        "messageId": message_id or str(uuid.uuid4()),
        "representative": representative(agent_name),
        "fallback": fallback_text(reply),
        "suggestions": _suggestions_json(reply.suggestions),
    }
    if isinstance(reply, TextReply):
        body["text"] = reply.text
    elif isinstance(reply, SingleCardReply):
        body["richCard"] = {"standaloneCard": {"cardContent": _card_json(reply.card)}}
    elif isinstance(reply, CarouselReply):
        body["richCard"] = {
            "carouselCard": {
                "cardWidth": reply.card_width,
                "cardContents": [_card_json(c) for c in reply.cards],
            }
        }
    else:
        raise TypeError(f"Unsupported reply type: {type(reply).__name__}")
    return body


def representative(agent_name: str) -> Dict[str, str]:
    return {"representativeType": "BOT", "displayName": agent_name}


def _json_or_empty(r: httpx.Response) -> Dict[str, Any]:
    # The message was accepted; a body we cannot parse is not a delivery failure
    if not r.content:
        return {}
    try:
        return r.json()
    except ValueError:
        logger.warning(f"Non-JSON {r.status_code} response from {r.request.url}; body ignored")
        return {}


def load_service_account(path: str) -> service_account.Credentials:
    """Service-account credentials scoped for Business Messages; tokens are minted on first use."""
    return service_account.Credentials.from_service_account_file(path, scopes=[BM_SCOPE])


class BusinessMessagesClient:
    """Outbound transport to the Business Messages API.

    Every call opens its own short-lived httpx client with the configured
    deadline; failures surface as OutboundTransportError. Authenticates with
    either a static bearer token or google-auth credentials, which are
    refreshed whenever their token has expired.
    """

    def __init__(
        self,
        api_url: str,
        access_token: Optional[str],
        agent_name: str,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
        credentials: Optional[Any] = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.agent_name = agent_name
        self.timeout = timeout
        self._access_token = access_token
        self._transport = transport
        self._credentials = credentials
        self._refresh_lock = threading.Lock()

    @property
    def ready(self) -> bool:
        return bool(self._access_token or self._credentials)

    def _bearer_token(self) -> Optional[str]:
        if self._credentials is None:
            return self._access_token
        with self._refresh_lock:
            if not self._credentials.valid:
                try:
                    self._credentials.refresh(google.auth.transport.requests.Request())
                except google_auth_exceptions.GoogleAuthError as e:
                    raise OutboundTransportError(f"Access token refresh failed: {e}") from e
                logger.info("Refreshed Business Messages access token")
            return self._credentials.token

    def _headers(self) -> Dict[str, str]:
        token = self._bearer_token()
        if not token:
            raise OutboundTransportError("No outbound credentials: set BM_CREDENTIALS_FILE or BM_ACCESS_TOKEN")
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json; charset=UTF-8",
        }

    def _post(self, url: str, payload: Dict[str, Any], params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        headers = self._headers()
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                r = client.post(url, headers=headers, params=params, json=payload)
                r.raise_for_status()
                return _json_or_empty(r)
        except httpx.TimeoutException as e:
            raise OutboundTransportError(f"Deadline of {self.timeout}s exceeded for {url}") from e
        except httpx.HTTPStatusError as e:
            raise OutboundTransportError(f"{e.response.status_code} from {url}: {e.response.text[:200]}") from e
        except httpx.HTTPError as e:
            raise OutboundTransportError(f"Request to {url} failed: {e}") from e

    def send_event(self, conversation_id: str, event_type: str) -> Dict[str, Any]:
        url = f"{self.api_url}/conversations/{conversation_id}/events"
        payload = {"eventType": event_type, "representative": representative(self.agent_name)}
        return self._post(url, payload, params={"eventId": str(uuid.uuid4())})

    def send_message(self, conversation_id: str, reply: Reply) -> Dict[str, Any]:
        url = f"{self.api_url}/conversations/{conversation_id}/messages"
        body = message_body(reply, self.agent_name)
        logger.info(f"Sending message {body['messageId']} to {conversation_id}")
        logger.debug(f"Message body: {body}")
        return self._post(url, body)

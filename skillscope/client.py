"""HTTP client for a SkillScope server.

Builds the request body for every endpoint, rejects empty input before any
network call and turns ``{"error": ...}`` envelopes back into the typed
errors of ``skillscope.errors``.
"""

import os
from typing import Any, Dict, List, Optional

import requests

from .errors import (
    AuthenticationError,
    NotFoundError,
    QuotaExhaustedError,
    RateLimitError,
    SkillScopeError,
    UpstreamError,
    ValidationError,
)
from .models import (
    AnalysisResult,
    AssistanceType,
    ChatReply,
    ChatTurn,
    Conversation,
    MindMapGraph,
    SavedMindMap,
    UserInterest,
)
from .transcript import Transcript

DEFAULT_URL = "http://localhost:13337"
DEFAULT_TIMEOUT = 60

ERRORS_BY_STATUS = {
    400: ValidationError,
    401: AuthenticationError,
    402: QuotaExhaustedError,
    404: NotFoundError,
    429: RateLimitError,
}


def error_for_status(status_code: int, message: Optional[str] = None) -> SkillScopeError:
    error_class = ERRORS_BY_STATUS.get(status_code)
    if error_class is None:
        return UpstreamError(message, status_code=status_code)
    return error_class(message)


def require_text(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} is required and must be a string")
    return value.strip()


class SkillScopeClient:
    """
    Talks to the SkillScope JSON API
    * SKILLSCOPE_URL and SKILLSCOPE_API_KEY are read from the environment when not given
    * every request carries an explicit timeout
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        session=None,
    ):
        self.base_url = (base_url or os.getenv("SKILLSCOPE_URL") or DEFAULT_URL).rstrip("/")
        self.api_key = api_key or os.getenv("SKILLSCOPE_API_KEY")
        self.timeout = timeout
        self.session = session if session is not None else requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = "Bearer " + self.api_key
        return headers

    def _send_request(
        self,
        method: str,
        path: str,
        body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        try:
            response = self.session.request(
                method,
                self.base_url + path,
                json=body,
                params=params,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise UpstreamError("SkillScope server did not answer in time") from e
        except requests.RequestException as e:
            raise UpstreamError(f"Could not reach SkillScope server: {e}") from e

        try:
            data = response.json() or {}
        except ValueError:
            data = {}

        if response.status_code >= 400:
            raise error_for_status(response.status_code, data.get("error"))
        return data

    # Contracts

    def analyze_topic(self, topic: str) -> AnalysisResult:
        body = {"topic": require_text(topic, "Topic")}
        data = self._send_request("POST", "/analyze-topic", body)
        return AnalysisResult.model_validate(data["analysis"])

    def generate_mind_map(
        self,
        topic: str,
        interest_area: Optional[str] = None,
        skill_level: Optional[str] = None,
    ) -> MindMapGraph:
        body = {"topic": require_text(topic, "Topic")}
        if interest_area:
            body["interestArea"] = interest_area
        if skill_level:
            body["skillLevel"] = skill_level
        data = self._send_request("POST", "/generate-mind-map", body)
        return MindMapGraph.model_validate(data["mindMap"])

    def layout(self, graph: MindMapGraph) -> Dict[str, List[dict]]:
        return self._send_request("POST", "/mind-map/layout", {"mindMap": graph.to_wire()})

    def chat(
        self,
        message: str,
        conversation_id: str,
        assistance_type: str = AssistanceType.GENERAL.value,
        user_interests: Optional[List[str]] = None,
        user_id: Optional[str] = None,
    ) -> ChatReply:
        body = {
            "message": require_text(message, "Message"),
            "conversationId": require_text(conversation_id, "conversationId"),
            "assistanceType": assistance_type,
        }
        if user_interests is not None:
            body["userInterests"] = list(user_interests)
        if user_id is not None:
            body["userId"] = user_id
        return ChatReply.model_validate(self._send_request("POST", "/personalized-chat", body))

    # Conversations

    def create_conversation(self, assistance_type: Optional[str] = None) -> Conversation:
        body = {"assistanceType": assistance_type} if assistance_type else {}
        data = self._send_request("POST", "/conversations", body)
        return Conversation.model_validate(data["conversation"])

    def set_assistance_type(self, conversation_id: str, assistance_type: str) -> Conversation:
        data = self._send_request(
            "PATCH", f"/conversations/{conversation_id}", {"assistanceType": assistance_type}
        )
        return Conversation.model_validate(data["conversation"])

    def messages(self, conversation_id: str, after: Optional[int] = None) -> List[ChatTurn]:
        params = {"after": after} if after is not None else None
        data = self._send_request("GET", f"/conversations/{conversation_id}/messages", params=params)
        return [ChatTurn.model_validate(turn) for turn in data["messages"]]

    # Saved data

    def save_mind_map(
        self,
        topic: str,
        graph: MindMapGraph,
        interest_area: Optional[str] = None,
        skill_level: Optional[str] = None,
    ) -> SavedMindMap:
        body = {
            "topic": require_text(topic, "Topic"),
            "mindMap": graph.to_wire(),
            "interestArea": interest_area,
            "skillLevel": skill_level,
        }
        data = self._send_request("POST", "/mind-maps", body)
        return SavedMindMap.model_validate(data["mindMap"])

    def mind_maps(self) -> List[SavedMindMap]:
        data = self._send_request("GET", "/mind-maps")
        return [SavedMindMap.model_validate(item) for item in data["mindMaps"]]

    def interests(self, limit: Optional[int] = None) -> List[UserInterest]:
        params = {"limit": limit} if limit is not None else None
        data = self._send_request("GET", "/interests", params=params)
        return [UserInterest.model_validate(item) for item in data["interests"]]


class ChatSession:
    """A conversation as seen by one client, with an optimistic transcript"""

    def __init__(
        self,
        client: SkillScopeClient,
        conversation_id: Optional[str] = None,
        assistance_type: str = AssistanceType.GENERAL.value,
        user_interests: Optional[List[str]] = None,
    ):
        self.client = client
        self.conversation_id = conversation_id
        self.assistance_type = assistance_type
        self.user_interests = user_interests
        self.transcript = Transcript()

    def start(self) -> str:
        if self.conversation_id is None:
            conversation = self.client.create_conversation(self.assistance_type)
            self.conversation_id = conversation.id
        else:
            self.refresh()
        return self.conversation_id

    def send(self, message: str) -> str:
        """Echo the message, ask the server, then swap echoes for the stored turns.

        If the call fails the echo is removed and the error propagates; the
        caller still holds the text it tried to send.
        """
        message = require_text(message, "Message")
        if self.conversation_id is None:
            self.start()

        user_echo = self.transcript.echo("user", message)
        try:
            reply = self.client.chat(
                message,
                self.conversation_id,
                assistance_type=self.assistance_type,
                user_interests=self.user_interests,
            )
        except SkillScopeError:
            self.transcript.discard(user_echo)
            raise

        assistant_echo = self.transcript.echo("assistant", reply.response)
        if len(reply.turns) == 2:
            user_turn, assistant_turn = reply.turns
            self.transcript.bind(user_echo, user_turn)
            self.transcript.bind(assistant_echo, assistant_turn)
        return reply.response

    def switch(self, assistance_type: str) -> Conversation:
        conversation = self.client.set_assistance_type(self.conversation_id, assistance_type)
        self.assistance_type = conversation.assistance_type.value
        return conversation

    def refresh(self) -> int:
        """Pull turns written since the last one we know of, returns the new transcript length"""
        turns = self.client.messages(self.conversation_id, after=self.transcript.last_turn_id)
        self.transcript.reconcile(turns)
        return len(self.transcript)

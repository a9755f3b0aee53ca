import logging
from typing import List, Optional

from flask.logging import default_handler

from . import prompts
from .config import Config
from .errors import NotFoundError, PersistenceError, ValidationError
from .generator import Generator
from .models import (
    AnalysisResult,
    AssistanceType,
    ChatReply,
    ChatRequest,
    ChatTurn,
    Conversation,
    MindMapGraph,
)
from .normalizer import normalize_analysis, normalize_chat, normalize_mind_map
from .store import Store
from .variable_handler import PatternLoader


class Assistant:
    """The three request/response contracts: topic analysis, mind map, chat turn"""

    def __init__(self, config: Config, generator: Generator, store: Store, patterns: PatternLoader):
        self.config = config
        self.generator = generator
        self.store = store
        self.patterns = patterns

        self.logger = logging.getLogger("app.services")
        self.logger.addHandler(default_handler)
        self.logger.setLevel(self.config.get("logging.loglevel", default=logging.INFO))

    @staticmethod
    def _require(value: Optional[str], name: str) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"{name} is required and must be a string")
        return value.strip()

    def _record_interest(self, user_id: Optional[str], topic: str):
        """Interest tracking never fails the request it rides on"""
        if user_id is None:
            return
        try:
            self.store.record_interest(user_id, topic)
        except PersistenceError:
            self.logger.warning("Could not record interest '%s' for %s", topic, user_id)

    def analyze_topic(self, topic: str, user_id: Optional[str] = None) -> AnalysisResult:
        topic = self._require(topic, "Topic")
        self.logger.info("Calling AI gateway for topic: %s", topic)

        completion = self.generator.generate(
            prompts.analysis_messages(self.patterns, topic),
            tools=[prompts.ANALYSIS_TOOL],
            tool_choice=prompts.ANALYSIS_TOOL_NAME,
        )
        analysis = normalize_analysis(completion, prompts.ANALYSIS_TOOL_NAME)
        self.logger.info("Analysis extracted successfully: %s is %s", topic, analysis.relevance.status)

        self._record_interest(user_id, topic)
        return analysis

    def generate_mind_map(
        self,
        topic: str,
        interest_area: Optional[str] = None,
        skill_level: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> MindMapGraph:
        topic = self._require(topic, "Topic")
        self.logger.info(
            "Generating mind map for: topic=%s interest_area=%s skill_level=%s",
            topic,
            interest_area,
            skill_level,
        )

        completion = self.generator.generate(
            prompts.mind_map_messages(self.patterns, topic, interest_area, skill_level),
            json_mode=True,
        )
        graph = normalize_mind_map(completion)
        self.logger.info("Mind map generated successfully: %d nodes", len(graph.nodes))

        self._record_interest(user_id, topic)
        return graph

    def _interests(self, request: ChatRequest, user_id: Optional[str], warnings: List[str]):
        limit = self.config.chat.interest_limit
        if request.user_interests is not None:
            return [topic.strip() for topic in request.user_interests if topic.strip()][:limit]
        if user_id is None:
            return []
        try:
            return [interest.topic for interest in self.store.top_interests(user_id, limit)]
        except PersistenceError:
            self.logger.warning("Could not load interests for %s", user_id)
            warnings.append("Your interests could not be loaded for this reply.")
            return []

    def chat(self, request: ChatRequest, user_id: Optional[str] = None) -> ChatReply:
        """One conversational turn.

        The user turn and the reply are stored together, and only after the
        model answered; a failed model call leaves the conversation untouched.
        """
        if request.user_id is not None and user_id is not None and request.user_id != user_id:
            raise ValidationError("userId does not match the signed-in user")
        user_id = user_id or request.user_id

        if self.generator.exceeds_token_limit(request.message, self.config.chat.max_input_tokens):
            raise ValidationError("Message is too long")

        conversation = self._owned_conversation(request.conversation_id, user_id)

        assistance_type = conversation.assistance_type
        if request.assistance_type is not None:
            assistance_type = AssistanceType.coerce(request.assistance_type)
        warnings: List[str] = []
        interests = self._interests(request, user_id, warnings)
        history = self.store.recent_turns(conversation.id, self.config.chat.history_window)

        self.logger.info(
            "Calling AI gateway with assistance type: %s (%d turns of history)",
            assistance_type.value,
            len(history),
        )
        system_prompt = prompts.chat_system_prompt(self.patterns, assistance_type, interests)
        completion = self.generator.generate(
            prompts.chat_messages(system_prompt, history, request.message)
        )
        reply = ChatReply(response=normalize_chat(completion), warnings=warnings)

        try:
            reply.turns = list(
                self.store.append_turn_pair(conversation.id, request.message, reply.response)
            )
        except PersistenceError:
            self.logger.error("Reply for conversation %s could not be saved", conversation.id)
            reply.warnings.append("This conversation could not be saved.")
        return reply

    # Conversations

    def _owned_conversation(self, conv_id: str, user_id: Optional[str]):
        """Ownerless conversations belong to the anonymous pages, not to signed-in users"""
        conversation = self.store.get_conversation(conv_id)
        if conversation.user_id != user_id:
            raise NotFoundError(f"Conversation not found: {conv_id}")
        return conversation

    def create_conversation(
        self, user_id: Optional[str], assistance_type: Optional[str] = None
    ) -> Conversation:
        return self.store.create_conversation(user_id, AssistanceType.coerce(assistance_type))

    def set_assistance_type(
        self, conv_id: str, assistance_type: Optional[str], user_id: Optional[str]
    ) -> Conversation:
        if assistance_type is None:
            raise ValidationError("assistanceType is required")
        try:
            new_type = AssistanceType(str(assistance_type).lower())
        except ValueError as e:
            raise ValidationError(f"Unknown assistanceType: {assistance_type}") from e
        self._owned_conversation(conv_id, user_id)
        return self.store.update_assistance_type(conv_id, new_type)

    def conversation_feed(
        self, conv_id: str, user_id: Optional[str], after_id: Optional[int] = None
    ) -> List[ChatTurn]:
        self._owned_conversation(conv_id, user_id)
        return self.store.turns_after(conv_id, after_id)

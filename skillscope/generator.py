import copy
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import anthropic
import openai
import tiktoken
from flask.logging import default_handler
from langchain_core.messages.chat import ChatMessage

from .config import Config, Profile, ProfileType
from .errors import QuotaExhaustedError, RateLimitError, UpstreamError
from .helpers import merge_dicts

UPSTREAM_STATUS_ERRORS = (openai.APIStatusError, anthropic.APIStatusError)
# timeouts are connection errors in both SDKs
UPSTREAM_CONNECTION_ERRORS = (openai.APIConnectionError, anthropic.APIConnectionError)


@dataclass
class ToolCall:
    name: str
    arguments: Optional[str]


@dataclass
class Completion:
    """Provider independent view of a single model response"""

    content: Optional[str] = None
    tool_calls: List[ToolCall] = field(default_factory=list)
    model: Optional[str] = None
    usage: Dict[str, int] = field(default_factory=dict)


class Generator:
    """Handle API connections and completions using the configured LLM profiles"""

    def __init__(self, config: Config):
        self.config = config

        self.logger = logging.getLogger("app.generator")
        self.logger.addHandler(default_handler)
        self.logger.setLevel(self.config.get("logging.loglevel", default=logging.INFO))

        self._clients: Dict[str, Any] = {}

    def _load_profile(self, profile_name) -> Profile:
        profile = self.config.get("llm.profiles", default={}).get(profile_name, None)
        if profile is None:
            raise ValueError(f"Profile '{profile_name}' not found in config")
        return profile

    def _get_profile(self, profile_name):
        if profile_name is None:  # try default profile
            profile_name = self.config.get("llm.default_profile")
            if profile_name is None:
                raise ValueError("No default profile defined")

        return profile_name, self._load_profile(profile_name)

    def _client_kwargs(self, profile: Profile) -> Dict[str, Any]:
        api_key = profile.config.resolve_api_key()
        if not api_key:
            self.logger.error("API key is not configured for %s profile", profile.type.value)
            raise UpstreamError("AI service not configured")
        # the relay never retries on its own, a 429 goes straight back to the user
        return {"api_key": api_key, "timeout": self.config.llm.timeout, "max_retries": 0}

    def _get_azure_openai_client(self, profile: Profile):
        endpoint = profile.get("config.endpoint")
        assert endpoint is not None, "endpoint for profile not found in config!"

        return openai.AzureOpenAI(
            azure_endpoint=endpoint,
            api_version=profile.config.api_version,
            **self._client_kwargs(profile),
        )

    def _get_openai_client(self, profile: Profile):
        return openai.OpenAI(base_url=profile.get("config.base_url"), **self._client_kwargs(profile))

    def _get_anthropic_client(self, profile: Profile):
        kwargs = self._client_kwargs(profile)
        return anthropic.Anthropic(
            base_url=profile.get("config.base_url"),
            default_headers={"api-key": kwargs["api_key"]},
            **kwargs,
        )

    def _get_client(self, profile_name):
        if profile_name in self._clients:
            return self._clients[profile_name]

        _, profile = self._get_profile(profile_name)

        if profile.type == ProfileType.AZURE_OPENAI:
            self._clients[profile_name] = self._get_azure_openai_client(profile)
        elif profile.type == ProfileType.OPENAI:
            self._clients[profile_name] = self._get_openai_client(profile)
        elif profile.type == ProfileType.ANTHROPIC:
            self._clients[profile_name] = self._get_anthropic_client(profile)
        else:
            raise ValueError(f"Uknown profile type: '{profile.type}'")

        return self._clients[profile_name]

    def _complete_openai(
        self,
        profile_name: str,
        model: str,
        messages: List[Dict],
        tools: Optional[List[Dict]] = None,
        tool_choice: Optional[str] = None,
        json_mode: bool = False,
        **kwargs,
    ) -> Completion:
        client = self._get_client(profile_name)
        if tools:
            kwargs["tools"] = tools
            if tool_choice:
                kwargs["tool_choice"] = {"type": "function", "function": {"name": tool_choice}}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        response = client.chat.completions.create(model=model, messages=messages, **kwargs)

        completion = Completion(model=getattr(response, "model", model))
        if getattr(response, "usage", None):
            completion.usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }
        if not response.choices:
            return completion

        message = response.choices[0].message
        completion.content = message.content
        for call in getattr(message, "tool_calls", None) or []:
            function = getattr(call, "function", None)
            if function is None:
                continue
            completion.tool_calls.append(ToolCall(name=function.name, arguments=function.arguments))
        return completion

    def _complete_anthropic(
        self,
        profile_name: str,
        model: str,
        messages: List[Dict],
        tools: Optional[List[Dict]] = None,
        tool_choice: Optional[str] = None,
        json_mode: bool = False,
        **kwargs,
    ) -> Completion:
        client = self._get_client(profile_name)

        # Anthropic accepts system messages in a different way
        if messages and messages[0]["role"] == "system":
            kwargs["system"] = messages[0]["content"]
            messages = messages[1:]

        if tools:
            kwargs["tools"] = [self._anthropic_tool(tool) for tool in tools]
            if tool_choice:
                kwargs["tool_choice"] = {"type": "tool", "name": tool_choice}
        if "max_tokens" not in kwargs:
            kwargs["max_tokens"] = 4096

        response = client.messages.create(model=model, messages=messages, **kwargs)

        completion = Completion(model=getattr(response, "model", model))
        if getattr(response, "usage", None):
            completion.usage = {
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            }
        text = []
        for block in response.content:
            if block.type == "text":
                text.append(block.text)
            elif block.type == "tool_use":
                completion.tool_calls.append(
                    ToolCall(name=block.name, arguments=json.dumps(block.input))
                )
        completion.content = "".join(text) if text else None
        return completion

    @staticmethod
    def _anthropic_tool(tool: Dict[str, Any]) -> Dict[str, Any]:
        """Convert an OpenAI function tool to Anthropic's tool format"""
        function = tool["function"]
        return {
            "name": function["name"],
            "description": function.get("description", ""),
            "input_schema": function["parameters"],
        }

    def translate_options(self, options: Dict[str, Any], flavor: str = "openai"):
        """Translate keys in options dict to OpenAI/Anthropic compatible keys
        Anything not found in mapping will be ignored!
        """
        mapping = {}
        if flavor == "openai":
            mapping = {  # "generic_name": "openai_name"
                "temperature": "temperature",
                "num_predict": "max_tokens",
                "max_tokens": "max_tokens",
                "top_p": "top_p",
                "presence_penalty": "presence_penalty",
                "frequency_penalty": "frequency_penalty",
            }
        elif flavor == "anthropic":
            mapping = {  # "generic_name": "anthropic_name"
                "temperature": "temperature",
                "num_predict": "max_tokens",
                "max_tokens": "max_tokens",
                "top_p": "top_p",
            }

        ignored = []
        translated = {}
        for key, val in options.items():
            if key in mapping:
                translated[mapping[key]] = val
            else:
                ignored.append(key)

        return translated, ignored

    @staticmethod
    def count_tokens(text: str, model: str = "gpt-4o-mini") -> int:
        """Count tokens of text"""
        encoding = tiktoken.encoding_for_model(model)
        return len(encoding.encode(text))

    def exceeds_token_limit(self, text: str, limit: int) -> bool:
        # a token is at least one byte, so short texts never need the tokenizer
        if len(text.encode("utf-8")) <= limit:
            return False
        return self.count_tokens(text) > limit

    @staticmethod
    def _chatmessages_to_json(messages: List[ChatMessage]):
        """Convert langchain message format to JSON compatible with APIs"""
        return [{"role": msg.role, "content": copy.copy(msg.content)} for msg in messages]

    def generate(
        self,
        messages: List[ChatMessage],
        tools: Optional[List[Dict[str, Any]]] = None,
        tool_choice: Optional[str] = None,
        json_mode: bool = False,
        profile_name: Optional[str] = None,
        model: Optional[str] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> Completion:
        """Single outbound call to the gateway.

        Gateway failures are translated: 429 -> RateLimitError,
        402 -> QuotaExhaustedError, anything else (including timeouts) -> UpstreamError.
        """
        api_messages = self._chatmessages_to_json(messages)
        profile_name, profile = self._get_profile(profile_name)
        service = profile.type.value

        if model is None:
            model = profile.default_model

        options = merge_dicts(options or {}, profile.options)
        flavor = "anthropic" if profile.type == ProfileType.ANTHROPIC else "openai"
        translated_options, ignored_options = self.translate_options(options, flavor=flavor)
        if len(ignored_options):
            self.logger.debug("Ignored options in the request: %s", ignored_options)

        self.logger.info(
            "profile:%s // service:%s // model:%s // options:%s // tools:%s // json:%s",
            profile_name,
            service,
            model,
            translated_options,
            tool_choice,
            json_mode,
        )

        if profile.type == ProfileType.ANTHROPIC:
            complete = self._complete_anthropic
        else:
            complete = self._complete_openai

        try:
            return complete(
                profile_name,
                model,
                api_messages,
                tools=tools,
                tool_choice=tool_choice,
                json_mode=json_mode,
                **translated_options,
            )
        except UPSTREAM_STATUS_ERRORS as e:
            self.logger.error("AI gateway error: %s %s", e.status_code, e.message)
            if e.status_code == 429:
                raise RateLimitError() from e
            if e.status_code == 402:
                raise QuotaExhaustedError() from e
            raise UpstreamError() from e
        except UPSTREAM_CONNECTION_ERRORS as e:
            self.logger.error("Error requesting AI gateway: %s", str(e))
            raise UpstreamError() from e

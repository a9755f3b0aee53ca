import json
import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .helpers import load_file

PACKAGE_DIR = Path(__file__).resolve().parent
DEFAULT_PATTERN_PATH = str(PACKAGE_DIR / "patterns")


class Configuration(BaseModel):
    """Base for config sections; adds dotted-path lookups"""

    model_config = ConfigDict(extra="forbid")  # disallows extra keys not defined in the model

    def get(self, path: str, default: Any = None) -> Any:
        """config.get("llm.profiles") style access, returns default on any miss"""
        node: Any = self
        for part in path.split("."):
            if isinstance(node, BaseModel):
                if part not in type(node).model_fields:
                    return default
                node = getattr(node, part)
            elif isinstance(node, dict):
                if part not in node:
                    return default
                node = node[part]
            else:
                return default
            if node is None:
                return default
        return node


class ProfileType(str, Enum):
    OPENAI = "openai"
    AZURE_OPENAI = "azure_openai"
    ANTHROPIC = "anthropic"


class ProfileConfig(Configuration):
    base_url: Optional[str] = None
    endpoint: Optional[str] = None
    api_key: Optional[str] = None
    api_key_env: Optional[str] = None
    api_version: str = "2024-08-01-preview"

    def resolve_api_key(self) -> Optional[str]:
        if self.api_key:
            return self.api_key
        if self.api_key_env:
            return os.getenv(self.api_key_env)
        return None


class Profile(Configuration):
    type: ProfileType
    default_model: str
    config: ProfileConfig = Field(default_factory=ProfileConfig)
    options: Dict[str, Any] = Field(default_factory=dict)


class LLMConfig(Configuration):
    default_profile: Optional[str] = "gateway"
    timeout: float = 30.0
    profiles: Dict[str, Profile] = Field(
        default_factory=lambda: {
            "gateway": Profile(
                type=ProfileType.OPENAI,
                default_model="google/gemini-2.5-flash",
                config=ProfileConfig(
                    base_url="https://ai.gateway.lovable.dev/v1",
                    api_key_env="LOVABLE_API_KEY",
                ),
            )
        }
    )


class DBConfig(Configuration):
    # empty path means a volatile in-memory database
    path: str = "~/.local/share/skillscope/skillscope.sqlite3"


class UserDetails(Configuration):
    realname: str
    api_key: str


class ChatConfig(Configuration):
    history_window: int = Field(default=20, ge=1, le=20)
    interest_limit: int = Field(default=5, ge=0, le=5)
    max_input_tokens: int = 4000


class CorsConfig(Configuration):
    origins: Union[str, List[str]] = "*"
    allow_headers: List[str] = Field(
        default_factory=lambda: ["authorization", "x-client-info", "apikey", "content-type"]
    )


class LoggingConfig(Configuration):
    loglevel: Union[str, int] = "INFO"


class Config(Configuration):
    pattern_paths: List[str] = Field(default_factory=lambda: [DEFAULT_PATTERN_PATH])
    llm: LLMConfig = Field(default_factory=LLMConfig)
    db: DBConfig = Field(default_factory=DBConfig)
    users: Dict[str, UserDetails] = Field(default_factory=dict)
    chat: ChatConfig = Field(default_factory=ChatConfig)
    cors: CorsConfig = Field(default_factory=CorsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: Optional[str] = None) -> Config:
    """Load config from a JSON file, CONFIG_PATH, or fall back to defaults"""
    if config_path is None:
        config_path = os.getenv("CONFIG_PATH")
    if not config_path:
        return Config()
    return Config.model_validate(json.loads(load_file(os.path.expanduser(config_path))))

import logging
import re
from pathlib import Path
from typing import Dict, Union

from flask.logging import default_handler

from .config import Config
from .helpers import load_file

VARIABLE_PATTERN = re.compile(r"{{\s*([\w\d_]+)\s*}}")


class VariableHandler:
    """Handles variable replacements in prompt templates"""

    def __init__(self, config: Config):
        self.config = config

        self.logger = logging.getLogger("app.variables")
        self.logger.addHandler(default_handler)
        self.logger.setLevel(self.config.get("logging.loglevel", default=logging.INFO))

    def resolve(self, template: str, variables: Dict[str, Union[str, int]]) -> str:
        """
        Replace variables in template (text)
        If <var_name> exists in variables, replace, otherwise leave {{ var_name }} in template
        """

        def replace_match(match):
            key = match.group(1)
            if key in variables and variables[key] is not None:
                return str(variables[key])
            self.logger.debug("Unresolved template variable: %s", key)
            return match.group(0)

        return VARIABLE_PATTERN.sub(replace_match, template)


class PatternLoader:
    """Looks up prompt patterns (a directory with system.md / user.md) on the configured paths"""

    def __init__(self, config: Config, variable_handler: VariableHandler):
        self.config = config
        self.variable_handler = variable_handler
        self._cache: Dict[str, str] = {}

    def _find(self, pattern: str, part: str) -> Path:
        for ppath in self.config.pattern_paths:
            candidate = Path(ppath).expanduser() / pattern / part
            if candidate.exists():
                return candidate
        raise FileNotFoundError(f"Pattern not found: {pattern}/{part}")

    def load(self, pattern: str, part: str = "system.md") -> str:
        key = f"{pattern}/{part}"
        if key not in self._cache:
            self._cache[key] = load_file(self._find(pattern, part)).strip()
        return self._cache[key]

    def render(self, pattern: str, part: str = "system.md", **variables) -> str:
        return self.variable_handler.resolve(self.load(pattern, part), variables)

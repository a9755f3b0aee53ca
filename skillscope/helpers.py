"""Helper functions for SkillScope"""

import copy
import datetime
import os
import re
from typing import Any, Dict

CODE_FENCE_OPEN = re.compile(r"^\s*```[\w-]*[ \t]*\n?")
CODE_FENCE_CLOSE = re.compile(r"\n?```\s*$")


def load_file(path, default=None, type: str = "r"):
    """Load a file or: raise an exception/return default"""
    try:
        with open(path, type, encoding="utf-8" if type == "r" else None) as fp:
            return fp.read()
    except FileNotFoundError as e:
        if default is None:
            raise e
        return default


def ensure_directories_exist(path: str) -> None:
    """Checks if the directories in the provided path exist and creates them if not"""
    abs_path = os.path.expanduser(os.path.dirname(path))

    if abs_path and not os.path.exists(abs_path):
        os.makedirs(abs_path)


def merge_dicts(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into a copy of base; override wins on conflicts"""
    merged = copy.deepcopy(base) if base else {}
    for key, val in (override or {}).items():
        if isinstance(val, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_dicts(merged[key], val)
        else:
            merged[key] = val
    return merged


def strip_code_fences(text: str) -> str:
    """Remove a leading ```json (or bare ```) and a trailing ``` marker.

    Text without fences is only trimmed.
    """
    text = CODE_FENCE_OPEN.sub("", text, count=1)
    text = CODE_FENCE_CLOSE.sub("", text, count=1)
    return text.strip()


def utcnow() -> datetime.datetime:
    """Naive UTC timestamp, the form SQLite hands back"""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)

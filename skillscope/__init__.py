"""SkillScope: topic analysis, learning mind maps and a personalized study assistant"""

from .server import SkillScopeServer

__all__ = ["SkillScopeServer"]

"""
Code generation stage: runs host tools to produce additional sources.
"""

from .stage import CodeGenStage, GeneratedSource, expand_args

__all__ = ["CodeGenStage", "GeneratedSource", "expand_args"]

"""
Host tools: code generators built with the host toolchain.
"""

from .builder import DEFAULT_ARGS, HostTool, HostToolBuilder, HostToolSpec

__all__ = ["DEFAULT_ARGS", "HostTool", "HostToolBuilder", "HostToolSpec"]

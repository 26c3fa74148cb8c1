"""MCP 도구 모음"""

from .cache_tools import CacheQueryTools

__all__ = ["CacheQueryTools"]

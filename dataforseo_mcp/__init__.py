"""
DataForSEO MCP 서버 패키지

DataForSEO API를 MCP 도구로 노출하고 SQL 기반 읽기 통과 캐시를 제공합니다.
"""

__version__ = "0.1.0"

"""
공유 비밀 URL 인증 ASGI 미들웨어

스트리밍 HTTP 앱 앞단에서 경로에 포함된 토큰으로 요청을 인증합니다.

라우팅 규칙:
    - GET /health: 그대로 통과
    - /mcp/{token}, /http/{token}: 토큰이 SHARED_SECRET과 일치해야 함
        - 불일치: 403 {"error": "forbidden"}
        - DataForSEO 자격 증명 미설정: 401 JSON-RPC 오류 (-32001)
        - 그 외: 경로를 /mcp로 바꿔 앱에 전달
    - /mcp, /http (토큰 없음): 403
    - 그 외 경로: 404 "Not found"

인증이 비활성화되면 /mcp와 /http 요청은 토큰 없이 /mcp로 전달됩니다.
"""

import hmac
import re

import structlog
from starlette.responses import JSONResponse, PlainTextResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from dataforseo_mcp.exceptions import ErrorCode

logger = structlog.get_logger(__name__)

MCP_PATH = "/mcp"
HEALTH_PATH = "/health"

_TOKEN_PATH = re.compile(r"^/(?:mcp|http)/([^/]+)/?$")
_BARE_PATH = re.compile(r"^/(?:mcp|http)/?$")

CREDENTIALS_MISSING_MESSAGE = (
    "DataForSEO credentials not configured. "
    "Set DATAFORSEO_USERNAME and DATAFORSEO_PASSWORD on the server."
)


class SharedSecretMiddleware:
    """
    경로 토큰 기반 인증 미들웨어

    Args:
        app: 감쌀 ASGI 앱
        shared_secret: URL 경로에 포함되어야 하는 비밀 값
        credentials_configured: DataForSEO 자격 증명 설정 여부
        require_auth: False면 토큰 검사를 생략
    """

    def __init__(
        self,
        app: ASGIApp,
        shared_secret: str | None = None,
        credentials_configured: bool = True,
        require_auth: bool = True,
    ) -> None:
        self.app = app
        self.shared_secret = shared_secret or ""
        self.credentials_configured = credentials_configured
        self.require_auth = require_auth

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        path = scope.get("path", "")

        if path == HEALTH_PATH:
            await self.app(scope, receive, send)
            return

        if not self.require_auth:
            if _BARE_PATH.match(path):
                await self.app(self._rewrite(scope), receive, send)
            else:
                await self.app(scope, receive, send)
            return

        token_match = _TOKEN_PATH.match(path)
        if token_match:
            if not self._token_valid(token_match.group(1)):
                logger.warning("shared_secret_rejected", path_prefix=path.split("/")[1])
                await JSONResponse({"error": "forbidden"}, status_code=403)(scope, receive, send)
                return

            if not self.credentials_configured:
                response = JSONResponse(
                    {
                        "jsonrpc": "2.0",
                        "error": {
                            "code": ErrorCode.AUTHENTICATION_ERROR.value,
                            "message": CREDENTIALS_MISSING_MESSAGE,
                        },
                        "id": None,
                    },
                    status_code=401,
                )
                await response(scope, receive, send)
                return

            await self.app(self._rewrite(scope), receive, send)
            return

        if _BARE_PATH.match(path):
            await JSONResponse({"error": "forbidden"}, status_code=403)(scope, receive, send)
            return

        logger.debug("unknown_path", path=path)
        await PlainTextResponse("Not found", status_code=404)(scope, receive, send)

    def _token_valid(self, token: str) -> bool:
        if not self.shared_secret:
            return False
        return hmac.compare_digest(token.encode(), self.shared_secret.encode())

    @staticmethod
    def _rewrite(scope: Scope) -> Scope:
        rewritten = dict(scope)
        rewritten["path"] = MCP_PATH
        rewritten["raw_path"] = MCP_PATH.encode()
        return rewritten

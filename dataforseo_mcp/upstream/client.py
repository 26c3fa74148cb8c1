"""
DataForSEO API 클라이언트

httpx 비동기 클라이언트로 DataForSEO v3 엔드포인트를 호출합니다.

주요 기능:
    - HTTP Basic 인증 (DATAFORSEO_USERNAME / DATAFORSEO_PASSWORD)
    - 속도 제한(429) 시 Retry-After 만큼 대기 후 재시도
    - 네트워크/HTTP 오류를 UpstreamError로, 시간 초과를 TimeoutError로 변환

DataForSEO는 모든 요청을 작업(task) 배열로 받으며, 응답은
{"status_code", "status_message", "tasks": [{"status_code", "result": [...]}]}
형태입니다.
"""

import asyncio
from typing import Any

import httpx
import structlog

from dataforseo_mcp.exceptions import AuthenticationError, TimeoutError, UpstreamError

ClientConfig = dict[str, Any]


class DataForSEOClient:
    """
    DataForSEO REST 클라이언트

    Args:
        config: 클라이언트 설정
            - username (str): API 로그인
            - password (str): API 비밀번호
            - base_url (str): 기본 URL (기본값: https://api.dataforseo.com/v3)
            - timeout (float): 요청 타임아웃 초 (기본값: 30)
            - max_retries (int): 429 재시도 횟수 (기본값: 3)
        transport: 테스트용 httpx 전송 계층 (선택사항)
    """

    BASE_URL = "https://api.dataforseo.com/v3"

    def __init__(
        self,
        config: ClientConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self.logger = structlog.get_logger(self.__class__.__name__)

        self.username = config.get("username")
        self.password = config.get("password")
        self.base_url = (config.get("base_url") or self.BASE_URL).rstrip("/")
        self.timeout = float(config.get("timeout", 30))
        self.max_retries = max(1, int(config.get("max_retries", 3)))

        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and self.password)

    @property
    def connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        """HTTP 클라이언트 생성"""
        if self._client is not None:
            return
        auth = httpx.BasicAuth(self.username, self.password) if self.has_credentials else None
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            auth=auth,
            timeout=self.timeout,
            transport=self._transport,
            headers={"Content-Type": "application/json"},
        )
        self._log_operation("connect", base_url=self.base_url, credentials=self.has_credentials)

    async def disconnect(self) -> None:
        """HTTP 클라이언트 종료"""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self._log_operation("disconnect")

    async def post(self, endpoint: str, payload: list[dict[str, Any]]) -> dict[str, Any]:
        """
        엔드포인트에 작업 배열 POST

        Args:
            endpoint: base_url 기준 상대 경로 (예: "keywords_data/google_ads/search_volume/live")
            payload: 작업 목록

        Returns:
            dict[str, Any]: 디코딩된 JSON 응답

        Raises:
            AuthenticationError: 자격 증명 미설정 시
            TimeoutError: 요청 시간 초과 시
            UpstreamError: 네트워크 오류, HTTP 오류, 잘못된 JSON, 재시도 소진 시
        """
        if not self.has_credentials:
            raise AuthenticationError(
                "DataForSEO credentials are not configured", data={"tool": endpoint}
            )

        if self._client is None:
            await self.connect()

        for attempt in range(self.max_retries):
            try:
                response = await self._client.post(endpoint.lstrip("/"), json=payload)
                response.raise_for_status()

            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if status == 429 and attempt < self.max_retries - 1:
                    # Retry-After 헤더에서 대기 시간 추출 (기본값: 1초)
                    retry_after = self._retry_after(e.response)
                    self._log_operation(
                        "post",
                        endpoint=endpoint,
                        status="rate_limited",
                        retry_after=retry_after,
                        attempt=attempt + 1,
                    )
                    await asyncio.sleep(retry_after)
                    continue
                self._log_operation("post", endpoint=endpoint, status="failed", http_status=status)
                raise UpstreamError(
                    f"DataForSEO request failed with HTTP {status}",
                    tool_name=endpoint,
                    status_code=status,
                ) from e

            except httpx.TimeoutException as e:
                self._log_operation("post", endpoint=endpoint, status="timeout", error=str(e))
                raise TimeoutError(
                    f"DataForSEO request timed out: {e}",
                    operation=endpoint,
                    timeout_seconds=self.timeout,
                ) from e

            except httpx.HTTPError as e:
                self._log_operation("post", endpoint=endpoint, status="failed", error=str(e))
                raise UpstreamError(f"DataForSEO request failed: {e}", tool_name=endpoint) from e

            try:
                return response.json()
            except ValueError as e:
                raise UpstreamError(f"DataForSEO returned invalid JSON: {e}", tool_name=endpoint) from e

        raise UpstreamError("DataForSEO retries exhausted", tool_name=endpoint)

    @staticmethod
    def _retry_after(response: httpx.Response) -> float:
        """Retry-After 초 단위 값, 없거나 HTTP 날짜 형식이면 1초"""
        try:
            return max(float(response.headers.get("Retry-After", "1")), 0.0)
        except ValueError:
            return 1.0

    async def health_check(self) -> dict[str, Any]:
        return {
            "healthy": self.has_credentials,
            "connected": self.connected,
            "base_url": self.base_url,
        }

    def _log_operation(self, operation: str, **kwargs: Any) -> None:
        self.logger.info("upstream_operation", operation=operation, **kwargs)

    async def __aenter__(self) -> "DataForSEOClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect()

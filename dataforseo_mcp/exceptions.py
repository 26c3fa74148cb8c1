"""
사용자 정의 예외 및 에러 처리 모듈

DataForSEO MCP 서버에서 발생하는 모든 에러를 정의하고 처리합니다.
JSON-RPC 2.0 표준 에러 코드와 함께 서버 전용 에러 코드를 제공합니다.

주요 구성요소:
    - ErrorCode: 표준 및 사용자 정의 에러 코드 열거형
    - MCPError: 모든 MCP 예외의 기본 클래스
    - 구체적인 예외 클래스들: 인증, 입력 검증, 업스트림 API, 캐시 저장소 등
    - ErrorHandler: 에러 로깅 컨텍스트 생성기

에러 분류:
    - 업스트림 실패(UpstreamError): 호출자에게 그대로 전파
    - 자격 증명 누락(AuthenticationError), 시간 초과(TimeoutError): 업스트림 실패와 같이 전파
    - 캐시 비활성 상태의 조회 도구 호출(ServiceUnavailableError): 오류 텍스트로 반환
    - 캐시 실패(CacheError): 디스패치 계층에서 로그만 남기고 흡수
    - 파괴적 작업의 잘못된 인자(ValidationError): 사용자에게 에러로 표시

에러 코드 범위:
    - 표준 JSON-RPC: -32700 ~ -32603
    - 사용자 정의: -32000 ~ -32099
"""

from typing import Any, Dict, Optional
from enum import Enum


class ErrorCode(Enum):
    """
    MCP 에러 코드 열거형

    표준 코드는 JSON-RPC 스펙을 따르고, 사용자 정의 코드는
    -32000 ~ -32099 범위를 사용합니다.
    """

    # 표준 JSON-RPC 에러 코드
    PARSE_ERROR = -32700          # JSON 파싱 에러
    INVALID_REQUEST = -32600      # 잘못된 요청 형식
    METHOD_NOT_FOUND = -32601     # 메서드를 찾을 수 없음
    INVALID_PARAMS = -32602       # 잘못된 매개변수
    INTERNAL_ERROR = -32603       # 내부 서버 에러

    # 사용자 정의 에러 코드
    AUTHENTICATION_ERROR = -32001  # 인증 실패 또는 자격 증명 미설정
    UPSTREAM_ERROR = -32002        # DataForSEO API 호출 실패
    CACHE_ERROR = -32003           # 캐시 저장소 작업 실패
    VALIDATION_ERROR = -32005      # 입력값 검증 실패
    TIMEOUT_ERROR = -32006         # 작업 시간 초과
    SERVICE_UNAVAILABLE = -32008   # 서비스 일시 중단


class MCPError(Exception):
    """
    모든 MCP 에러의 기본 예외 클래스

    JSON-RPC 2.0 형식의 에러 응답을 생성할 수 있도록 설계되었습니다.

    Attributes:
        message (str): 에러 메시지
        code (ErrorCode): 에러 코드
        data (dict): 추가 에러 정보 (선택사항)
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        data: Optional[Dict[str, Any]] = None
    ):
        """
        MCP 에러 초기화

        Args:
            message: 사용자에게 표시될 에러 메시지
            code: 에러 코드 (기본값: INTERNAL_ERROR)
            data: 디버깅에 유용한 추가 정보 (선택사항)
        """
        self.message = message
        self.code = code
        self.data = data or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """
        에러를 JSON-RPC 에러 형식으로 변환

        data 필드는 값이 있을 때만 포함됩니다.

        Returns:
            Dict[str, Any]: code, message, data(선택) 키를 가진 에러 객체
        """
        error_dict = {
            "code": self.code.value,
            "message": self.message
        }
        if self.data:
            error_dict["data"] = self.data
        return error_dict


class AuthenticationError(MCPError):
    """
    인증 실패 에러

    공유 비밀 토큰 불일치, 또는 DataForSEO 자격 증명이
    설정되지 않은 경우에 사용됩니다.
    """

    def __init__(self, message: str = "Authentication failed", data: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            code=ErrorCode.AUTHENTICATION_ERROR,
            data=data
        )


class UpstreamError(MCPError):
    """
    DataForSEO API 호출 실패 에러

    네트워크 오류, HTTP 오류 상태, 재시도 소진 등 업스트림 호출이
    응답을 돌려주지 못한 경우 발생합니다. 캐시 계층은 이 에러를
    흡수하지 않고 호출자에게 그대로 전파합니다.
    """

    def __init__(
        self,
        message: str,
        tool_name: Optional[str] = None,
        status_code: Optional[int] = None,
        data: Optional[Dict[str, Any]] = None
    ):
        """
        Args:
            message: 에러 메시지
            tool_name: 실패한 도구 또는 엔드포인트 이름 (선택사항)
            status_code: HTTP 또는 DataForSEO 상태 코드 (선택사항)
            data: 추가 정보
        """
        if data is None:
            data = {}
        if tool_name:
            data["tool"] = tool_name
        if status_code is not None:
            data["status_code"] = status_code

        self.tool_name = tool_name
        self.status_code = status_code
        super().__init__(
            message=message,
            code=ErrorCode.UPSTREAM_ERROR,
            data=data
        )


class CacheError(MCPError):
    """
    캐시 저장소 작업 실패 에러

    데이터베이스 연결 실패, 쿼리 실패, 배치 쓰기 일부 실패 등에 사용됩니다.

    Attributes:
        operation (str | None): 실패한 저장소 작업 이름 (예: "batch_upsert")
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None
    ):
        if data is None:
            data = {}
        if operation:
            data["operation"] = operation

        self.operation = operation
        super().__init__(
            message=message,
            code=ErrorCode.CACHE_ERROR,
            data=data
        )


class ValidationError(MCPError):
    """
    요청 검증 실패 에러

    허용 목록에 없는 테이블 이름처럼 입력 매개변수가 유효하지 않을 때
    발생합니다. 어떤 필드가 문제인지, 어떤 값이 잘못되었는지 정보를
    포함할 수 있습니다.
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        data: Optional[Dict[str, Any]] = None
    ):
        """
        Args:
            message: 에러 메시지
            field: 검증에 실패한 필드 이름 (선택사항)
            value: 잘못된 값 (선택사항)
            data: 추가 정보 (예: 허용 값 목록)
        """
        if data is None:
            data = {}
        if field:
            data["field"] = field
        if value is not None:
            # 긴 값은 100자로 잘라서 로그에 과도한 데이터 방지
            data["value"] = str(value)[:100]

        super().__init__(
            message=message,
            code=ErrorCode.VALIDATION_ERROR,
            data=data
        )


class TimeoutError(MCPError):
    """작업 시간 초과 에러"""

    def __init__(
        self,
        message: str = "Operation timed out",
        operation: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        data: Optional[Dict[str, Any]] = None
    ):
        if data is None:
            data = {}
        if operation:
            data["operation"] = operation
        if timeout_seconds:
            data["timeout_seconds"] = timeout_seconds

        super().__init__(
            message=message,
            code=ErrorCode.TIMEOUT_ERROR,
            data=data
        )


class ServiceUnavailableError(MCPError):
    """
    서비스 이용 불가 에러

    캐시 기능이 비활성화되었거나 저장소에 연결되지 않은 상태에서
    캐시 조회 도구가 호출되는 경우 등에 사용됩니다.
    """

    def __init__(
        self,
        message: str = "Service temporarily unavailable",
        service_name: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None
    ):
        if data is None:
            data = {}
        if service_name:
            data["service"] = service_name

        super().__init__(
            message=message,
            code=ErrorCode.SERVICE_UNAVAILABLE,
            data=data
        )


class ErrorHandler:
    """
    중앙 집중식 에러 처리기

    미들웨어 로깅에 쓰는 에러 컨텍스트를 생성하는 유틸리티 클래스입니다.
    """

    @staticmethod
    def create_error_context(
        error: Exception,
        method: Optional[str] = None,
        tool_name: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        로깅을 위한 에러 컨텍스트 생성

        Args:
            error: 발생한 예외
            method: 호출된 MCP 메서드 (예: "tools/call")
            tool_name: 에러가 발생한 도구 이름

        Returns:
            Dict[str, Any]: error_type, error_message 및 선택적 컨텍스트
        """
        context = {
            "error_type": type(error).__name__,
            "error_message": str(error)
        }

        if method:
            context["method"] = method
        if tool_name:
            context["tool_name"] = tool_name

        if isinstance(error, MCPError):
            context["error_code"] = error.code.value
            context["error_data"] = error.data

        return context

"""
REST API客户端基类

提供通用的HTTP请求功能，包括：
- 自动重试（共享的 retry_with_backoff）
- 错误处理
- 请求/响应日志
- 认证支持
- 超时控制
"""
import asyncio
import json
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import httpx
from pydantic import BaseModel

from core.logging_config import get_logger
from shared.retry import BackoffPolicy, retry_with_backoff

logger = get_logger(__name__)


class HTTPMethod(Enum):
    """HTTP方法枚举"""
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


@dataclass
class APIResponse:
    """API响应封装"""
    status_code: int
    headers: Dict[str, str]
    data: Any
    raw_content: bytes
    elapsed_ms: float
    request_id: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400

    def json(self) -> Any:
        """获取JSON响应"""
        if self.data is not None:
            return self.data
        return json.loads(self.raw_content)

    def payload(self) -> Any:
        """解包统一响应信封中的 data 字段"""
        body = self.json()
        if isinstance(body, dict) and "code" in body and "data" in body:
            return body["data"]
        return body


class APIError(Exception):
    """API错误基类"""
    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Optional[APIResponse] = None,
        request_id: Optional[str] = None
    ):
        self.message = message
        self.status_code = status_code
        self.response = response
        self.request_id = request_id
        super().__init__(self.message)

    def __str__(self):
        parts = [self.message]
        if self.status_code:
            parts.append(f"Status: {self.status_code}")
        if self.request_id:
            parts.append(f"Request ID: {self.request_id}")
        return " | ".join(parts)


class RateLimitError(APIError):
    """速率限制错误"""


class AuthenticationError(APIError):
    """认证错误"""


class NotFoundError(APIError):
    """资源未找到错误"""


class ServerError(APIError):
    """服务器错误"""


RETRY_STATUS_CODES = {429, 500, 502, 503, 504}

_ERROR_MAP = {
    401: AuthenticationError,
    403: AuthenticationError,
    404: NotFoundError,
    429: RateLimitError,
    500: ServerError,
    502: ServerError,
    503: ServerError,
    504: ServerError,
}


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    return isinstance(exc, APIError) and exc.status_code in RETRY_STATUS_CODES


class BaseAPIClient:
    """
    REST API客户端基类

    提供通用的HTTP请求功能，子类可以继承并实现具体的API调用
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        headers: Optional[Dict[str, str]] = None,
        auth_token: Optional[str] = None,
        verify_ssl: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        初始化API客户端

        Args:
            base_url: API基础URL
            timeout: 请求超时时间（秒）
            max_retries: 最大重试次数（不含首次请求）
            retry_delay: 重试基础延迟（秒）
            headers: 默认请求头
            auth_token: 认证令牌
            verify_ssl: 是否验证SSL证书
            transport: 自定义 httpx 传输层（测试时注入 MockTransport）
            sleep: 重试等待函数
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self.retry_policy = BackoffPolicy(
            max_attempts=max_retries + 1,
            base_delay=retry_delay,
            max_delay=retry_delay * 8,
        )
        self._transport = transport
        self._sleep = sleep

        self.default_headers = {
            "Accept": "application/json",
            "User-Agent": "media-pipeline-client/1.0",
        }
        if headers:
            self.default_headers.update(headers)
        if auth_token:
            self.set_auth_token(auth_token)

        self._client: Optional[httpx.AsyncClient] = None

    def set_auth_token(self, token: str, header_name: str = "Authorization", prefix: str = "Bearer"):
        """设置认证令牌"""
        self.default_headers[header_name] = f"{prefix} {token}" if prefix else token

    @property
    def client(self) -> httpx.AsyncClient:
        """获取或创建HTTP客户端"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                verify=self.verify_ssl,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _build_url(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def _raise_for_status(self, response: APIResponse) -> None:
        error_class = _ERROR_MAP.get(response.status_code, APIError)
        message = f"API request failed with status {response.status_code}"
        if isinstance(response.data, dict):
            message = (
                response.data.get("message")
                or response.data.get("error")
                or response.data.get("detail")
                or message
            )
            if not isinstance(message, str):
                message = json.dumps(message, default=str)
        raise error_class(
            message=message,
            status_code=response.status_code,
            response=response,
            request_id=response.request_id,
        )

    async def _send_once(self, method: str, url: str, **kwargs) -> APIResponse:
        started = time.perf_counter()
        response = await self.client.request(method=method, url=url, **kwargs)
        elapsed = (time.perf_counter() - started) * 1000

        response_data = None
        if "application/json" in response.headers.get("content-type", ""):
            try:
                response_data = response.json()
            except json.JSONDecodeError:
                response_data = None

        api_response = APIResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            data=response_data,
            raw_content=response.content,
            elapsed_ms=round(elapsed, 2),
            request_id=response.headers.get("x-request-id"),
        )
        logger.debug(
            "api_response",
            method=method,
            url=url,
            status_code=api_response.status_code,
            elapsed_ms=api_response.elapsed_ms,
            request_id=api_response.request_id,
        )
        if api_response.is_error:
            self._raise_for_status(api_response)
        return api_response

    async def _request(
        self,
        method: Union[str, HTTPMethod],
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Union[Dict[str, Any], BaseModel]] = None,
        data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        files: Optional[Dict[str, Any]] = None,
        **kwargs
    ) -> APIResponse:
        """
        发送HTTP请求；网络错误与 429/5xx 按重试策略重试

        Raises:
            APIError: 重试耗尽或不可重试的错误
        """
        if isinstance(method, HTTPMethod):
            method = method.value
        url = self._build_url(endpoint)

        request_headers = {**self.default_headers}
        if json_data is not None:
            request_headers["Content-Type"] = "application/json"
            if isinstance(json_data, BaseModel):
                json_data = json_data.model_dump(exclude_unset=True)
        if headers:
            request_headers.update(headers)

        logger.debug("api_request", method=method, url=url, params=params)

        try:
            return await retry_with_backoff(
                lambda: self._send_once(
                    method,
                    url,
                    params=params,
                    json=json_data,
                    data=data,
                    files=files,
                    headers=request_headers,
                    **kwargs,
                ),
                policy=self.retry_policy,
                is_retryable=_is_retryable,
                sleep=self._sleep,
                operation_name=f"{method} {endpoint}",
            )
        except httpx.TimeoutException as exc:
            raise APIError(f"Request timeout after {self.timeout}s") from exc
        except httpx.TransportError as exc:
            raise APIError(f"Network error: {exc}") from exc

    async def get(self, endpoint: str, **kwargs) -> APIResponse:
        return await self._request(HTTPMethod.GET, endpoint, **kwargs)

    async def post(self, endpoint: str, **kwargs) -> APIResponse:
        return await self._request(HTTPMethod.POST, endpoint, **kwargs)

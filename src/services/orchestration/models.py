"""
调度层数据结构

- RequestDescriptor: 一次上游调用的描述（URL、方法、头、请求体、超时）
- DispatchOutcome: 一次调度的结构化结果（成功载荷或分类后的错误）
- UpstreamStream: 流式响应句柄，原样透传上游字节
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx

from src.config.constants import DispatchDefaults
from src.core.exceptions import ERROR_TYPES, FatalRequestError, GatewayException


class ErrorClassification(str, Enum):
    """失败分类"""

    CREDENTIAL_RELATED = "credential_related"  # 换一个凭证可能成功
    FATAL = "fatal"  # 换凭证无济于事，立即停止


@dataclass
class RequestDescriptor:
    url: str
    method: str = "POST"
    headers: dict[str, str] = field(default_factory=dict)
    body: Any | None = None
    timeout_ms: int = DispatchDefaults.TIMEOUT_MS

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000


@dataclass
class DispatchOutcome:
    """
    调度结果

    success=True 时 payload 为上游响应（非流式为解析后的 JSON，流式为 UpstreamStream），
    classification 为 None；失败时 error / classification / error_type 均有值。
    used_credential 只保存脱敏后的前缀。
    """

    success: bool
    payload: Any | None = None
    error: str | None = None
    classification: ErrorClassification | None = None
    error_type: str | None = None
    used_credential: str | None = None
    status_code: int | None = None
    attempts: int = 0

    @classmethod
    def ok(
        cls,
        payload: Any,
        *,
        used_credential: str | None,
        status_code: int | None = None,
    ) -> DispatchOutcome:
        return cls(
            success=True,
            payload=payload,
            used_credential=used_credential,
            status_code=status_code,
            attempts=1,
        )

    @classmethod
    def failure(
        cls,
        error: str,
        classification: ErrorClassification,
        error_type: type[GatewayException],
        *,
        used_credential: str | None = None,
        status_code: int | None = None,
        attempts: int = 0,
    ) -> DispatchOutcome:
        return cls(
            success=False,
            error=error,
            classification=classification,
            error_type=error_type.__name__,
            used_credential=used_credential,
            status_code=status_code,
            attempts=attempts,
        )

    @property
    def is_credential_related(self) -> bool:
        return self.classification == ErrorClassification.CREDENTIAL_RELATED

    def to_exception(self, *, status_code: int | None = None) -> GatewayException:
        """把失败结果转换为异常，供路由层抛出"""
        if self.success:
            raise ValueError("cannot convert a successful outcome to an exception")
        exc_cls = ERROR_TYPES.get(self.error_type or "", FatalRequestError)
        return exc_cls(
            self.error or "request failed",
            status_code=status_code,
            used_credential=self.used_credential,
            upstream_status=self.status_code,
        )


class UpstreamStream:
    """
    流式上游响应句柄

    不做任何缓冲：iter_bytes() 逐块转发 httpx 解码后的字节（不转发 Content-Encoding），
    迭代结束或出错时自动关闭响应；调用方提前放弃时需要自行 aclose()。
    """

    def __init__(self, response: httpx.Response) -> None:
        self._response = response

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def headers(self) -> httpx.Headers:
        return self._response.headers

    @property
    def is_closed(self) -> bool:
        return self._response.is_closed

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_bytes():
                yield chunk
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if not self._response.is_closed:
            await self._response.aclose()

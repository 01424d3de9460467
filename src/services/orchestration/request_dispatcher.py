"""
请求分发器 - 用一个凭证执行一次上游调用

职责：
1. 构造请求头（Authorization: Bearer + 调用方头，调用方头优先）
2. 以 RequestDescriptor.timeout_ms 为总截止时间，超时即取消在途请求
3. 对失败进行分类（委托 error_classifier），不修改凭证池
4. 请求无法构造（非法 URL、非 ASCII 凭证等）时不发送，返回 FATAL 结果

任何失败都以 DispatchOutcome 返回，不向上抛异常。

凭证池的记账由 FailoverOrchestrator 负责。
"""

from __future__ import annotations

import asyncio
import time

import httpx

from src.clients.http_client import HTTPClientPool
from src.core.error_utils import extract_error_message, format_http_error
from src.core.exceptions import CredentialRelatedError, FatalRequestError, RequestTimeoutError
from src.core.logger import logger
from src.services.orchestration.error_classifier import classify_failure
from src.services.orchestration.models import (
    DispatchOutcome,
    ErrorClassification,
    RequestDescriptor,
    UpstreamStream,
)
from src.utils.masking import mask_secret, redact_secret_in_text, redact_url_for_log

TIMEOUT_MESSAGE = "request timed out"
MALFORMED_REQUEST_MESSAGE = "malformed request"

# 构造请求阶段的异常：非法 URL、非 ASCII 请求头（UnicodeEncodeError）、
# 不可 JSON 序列化的请求体。httpx.InvalidURL 不是 httpx.HTTPError 的子类
_REQUEST_BUILD_ERRORS = (httpx.InvalidURL, UnicodeError, ValueError, TypeError)


class RequestDispatcher:
    """
    单次上游调用

    client 为空时使用全局 HTTPClientPool 默认客户端；测试中可注入
    基于 httpx.MockTransport 的客户端。
    """

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        return await HTTPClientPool.get_default_client_async()

    @staticmethod
    def build_headers(descriptor: RequestDescriptor, credential_secret: str) -> httpx.Headers:
        headers = httpx.Headers(
            {
                "Content-Type": "application/json",
                "Authorization": f"Bearer {credential_secret}",
            }
        )
        # httpx.Headers 大小写不敏感，调用方头覆盖默认头
        for name, value in descriptor.headers.items():
            headers[name] = value
        return headers

    def _build_request(
        self,
        client: httpx.AsyncClient,
        descriptor: RequestDescriptor,
        credential_secret: str,
    ) -> httpx.Request:
        return client.build_request(
            descriptor.method.upper(),
            descriptor.url,
            headers=self.build_headers(descriptor, credential_secret),
            json=descriptor.body,
        )

    @staticmethod
    def _classified_failure(
        status_code: int,
        body_text: str,
        credential_secret: str,
    ) -> DispatchOutcome:
        classification = classify_failure(status_code, body_text)
        error_type = (
            CredentialRelatedError
            if classification == ErrorClassification.CREDENTIAL_RELATED
            else FatalRequestError
        )
        return DispatchOutcome.failure(
            format_http_error(status_code, redact_secret_in_text(body_text, credential_secret)),
            classification,
            error_type,
            used_credential=mask_secret(credential_secret),
            status_code=status_code,
            attempts=1,
        )

    @staticmethod
    def _transport_failure(exc: Exception, credential_secret: str) -> DispatchOutcome:
        if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
            return DispatchOutcome.failure(
                TIMEOUT_MESSAGE,
                ErrorClassification.FATAL,
                RequestTimeoutError,
                used_credential=mask_secret(credential_secret),
                attempts=1,
            )
        return DispatchOutcome.failure(
            extract_error_message(exc),
            ErrorClassification.FATAL,
            FatalRequestError,
            used_credential=mask_secret(credential_secret),
            attempts=1,
        )

    @staticmethod
    def _malformed_request(
        exc: Exception,
        descriptor: RequestDescriptor,
        credential_secret: str,
    ) -> DispatchOutcome:
        detail = redact_secret_in_text(extract_error_message(exc), credential_secret)
        logger.warning(
            "请求构造失败，未发送: {} {} error={}",
            descriptor.method.upper(),
            redact_url_for_log(descriptor.url),
            detail,
        )
        return DispatchOutcome.failure(
            f"{MALFORMED_REQUEST_MESSAGE}: {detail}",
            ErrorClassification.FATAL,
            FatalRequestError,
            used_credential=mask_secret(credential_secret),
            attempts=1,
        )

    async def _prepare(
        self,
        descriptor: RequestDescriptor,
        credential_secret: str,
    ) -> tuple[httpx.AsyncClient, httpx.Request | DispatchOutcome]:
        client = await self._get_client()
        try:
            return client, self._build_request(client, descriptor, credential_secret)
        except _REQUEST_BUILD_ERRORS as exc:
            return client, self._malformed_request(exc, descriptor, credential_secret)

    async def execute(
        self,
        descriptor: RequestDescriptor,
        credential_secret: str,
    ) -> DispatchOutcome:
        """
        执行一次非流式调用

        Returns:
            成功: payload 为解析后的 JSON（原样返回，不做解释）
            失败: 带分类的 DispatchOutcome，超时固定为 FATAL "request timed out"
        """
        masked = mask_secret(credential_secret)
        client, request = await self._prepare(descriptor, credential_secret)
        if isinstance(request, DispatchOutcome):
            return request
        started = time.perf_counter()

        try:
            response = await asyncio.wait_for(
                client.send(request), timeout=descriptor.timeout_seconds
            )
        except (asyncio.TimeoutError, httpx.HTTPError) as exc:
            outcome = self._transport_failure(exc, credential_secret)
            logger.warning(
                "上游请求失败: {} {} key={} error={}",
                descriptor.method.upper(),
                redact_url_for_log(descriptor.url),
                masked,
                outcome.error,
            )
            return outcome

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.debug(
            "上游响应: status={} key={} {}ms",
            response.status_code,
            masked,
            elapsed_ms,
        )

        if not response.is_success:
            return self._classified_failure(response.status_code, response.text, credential_secret)

        try:
            payload = response.json()
        except ValueError as exc:
            return DispatchOutcome.failure(
                f"invalid JSON in upstream response: {exc}",
                ErrorClassification.FATAL,
                FatalRequestError,
                used_credential=masked,
                status_code=response.status_code,
                attempts=1,
            )

        return DispatchOutcome.ok(payload, used_credential=masked, status_code=response.status_code)

    async def open_stream(
        self,
        descriptor: RequestDescriptor,
        credential_secret: str,
    ) -> DispatchOutcome:
        """
        发起流式调用

        超时只约束到拿到响应头为止；成功时 payload 为 UpstreamStream，
        字节流原样交给调用方，不缓冲、不重试。
        """
        client, request = await self._prepare(descriptor, credential_secret)
        if isinstance(request, DispatchOutcome):
            return request

        async def _open() -> tuple[httpx.Response, str | None]:
            response = await client.send(request, stream=True)
            if response.is_success:
                return response, None
            try:
                await response.aread()
            finally:
                await response.aclose()
            return response, response.text

        try:
            response, error_text = await asyncio.wait_for(
                _open(), timeout=descriptor.timeout_seconds
            )
        except (asyncio.TimeoutError, httpx.HTTPError) as exc:
            outcome = self._transport_failure(exc, credential_secret)
            logger.warning(
                "上游流式请求失败: {} key={} error={}",
                redact_url_for_log(descriptor.url),
                mask_secret(credential_secret),
                outcome.error,
            )
            return outcome

        if error_text is not None:
            return self._classified_failure(response.status_code, error_text, credential_secret)

        return DispatchOutcome.ok(
            UpstreamStream(response),
            used_credential=mask_secret(credential_secret),
            status_code=response.status_code,
        )

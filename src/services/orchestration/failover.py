"""
故障转移编排器

组合 CredentialPool 与 RequestDispatcher：
1. 调用方自带凭证 -> 只调用一次，结果原样返回，不经过凭证池、不重试
2. 凭证池为空 -> ConfigurationError，不发起任何网络请求
3. 否则按轮询顺序依次尝试，最多尝试"配置的凭证总数"次：
   - 成功：记录成功并返回
   - 凭证相关失败：记录失败，换下一个凭证
   - 致命失败：立即返回（换凭证无济于事，只会浪费配额）
4. 尝试次数用尽 -> PoolExhaustedError，携带最后一次凭证相关错误

尝试严格串行，不做并行推测重试，避免对上游产生重复的有副作用调用。

流式请求不支持故障转移：只用一个凭证（自带凭证，或从池中取到的第一个），
字节流直接交给调用方。对已经输出的部分流做重试需要缓冲，会改变延迟和内存特征。
"""

from __future__ import annotations

import asyncio

from src.core.exceptions import ConfigurationError, FatalRequestError, PoolExhaustedError
from src.core.logger import logger
from src.services.credential import CredentialPool, CredentialSnapshot
from src.services.orchestration.models import (
    DispatchOutcome,
    ErrorClassification,
    RequestDescriptor,
)
from src.services.orchestration.request_dispatcher import RequestDispatcher

NO_CREDENTIAL_CONFIGURED = "no credential configured"
NO_WORKING_CREDENTIAL = "no working credential available"
ALL_CREDENTIALS_EXHAUSTED = "all credentials exhausted"
REQUEST_CANCELLED = "request cancelled"


class FailoverOrchestrator:
    """多凭证故障转移调度"""

    def __init__(
        self,
        pool: CredentialPool,
        dispatcher: RequestDispatcher | None = None,
    ) -> None:
        self.pool = pool
        self.dispatcher = dispatcher or RequestDispatcher()

    def _preflight(self) -> DispatchOutcome | None:
        """凭证池为空时直接返回 ConfigurationError"""
        if self.pool.has_credentials:
            return None
        logger.error("未配置服务端凭证，且请求未携带凭证")
        return DispatchOutcome.failure(
            NO_CREDENTIAL_CONFIGURED,
            ErrorClassification.FATAL,
            ConfigurationError,
        )

    async def dispatch(
        self,
        descriptor: RequestDescriptor,
        explicit_credential: str | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> DispatchOutcome:
        """
        调度一次非流式请求

        Args:
            descriptor: 上游请求描述
            explicit_credential: 调用方自带凭证（优先于凭证池）
            cancel_event: 可选取消信号，仅在两次尝试之间检查

        Returns:
            DispatchOutcome（所有错误都以结构化结果返回，不抛异常）
        """
        if explicit_credential:
            return await self.dispatcher.execute(descriptor, explicit_credential)

        preflight = self._preflight()
        if preflight is not None:
            return preflight

        max_attempts = self.pool.total_count
        last_error = ""
        last_outcome: DispatchOutcome | None = None
        attempts = 0

        for _ in range(max_attempts):
            if cancel_event is not None and cancel_event.is_set():
                logger.info("调度已取消: 已尝试 {} 次", attempts)
                return DispatchOutcome.failure(
                    REQUEST_CANCELLED,
                    ErrorClassification.FATAL,
                    FatalRequestError,
                    attempts=attempts,
                )

            credential = self.pool.next_working()
            if credential is None:
                logger.error("没有可用的凭证: 全部处于挂起状态")
                return DispatchOutcome.failure(
                    NO_WORKING_CREDENTIAL,
                    ErrorClassification.FATAL,
                    PoolExhaustedError,
                    attempts=attempts,
                )

            attempts += 1
            logger.debug("第 {}/{} 次尝试: key={}", attempts, max_attempts, credential.masked)
            outcome = await self.dispatcher.execute(descriptor, credential.secret)
            outcome.attempts = attempts

            if outcome.success:
                self.pool.report_success(credential)
                return outcome

            if outcome.is_credential_related:
                self.pool.report_failure(credential)
                last_error = outcome.error or ""
                last_outcome = outcome
                logger.warning(
                    "凭证 {} 请求失败（凭证相关），切换下一个: {}",
                    credential.masked,
                    last_error,
                )
                continue

            logger.error("上游致命错误，停止重试: key={} error={}", credential.masked, outcome.error)
            return outcome

        logger.error("所有凭证均不可用: 尝试 {} 次, 最后错误: {}", attempts, last_error)
        return DispatchOutcome.failure(
            f"{ALL_CREDENTIALS_EXHAUSTED}: {last_error}",
            ErrorClassification.FATAL,
            PoolExhaustedError,
            used_credential=last_outcome.used_credential if last_outcome else None,
            status_code=last_outcome.status_code if last_outcome else None,
            attempts=attempts,
        )

    async def open_stream(
        self,
        descriptor: RequestDescriptor,
        explicit_credential: str | None = None,
    ) -> DispatchOutcome:
        """
        打开流式请求（单凭证、无重试）

        池内凭证仍然记账：成功清零失败计数，凭证相关失败计入失败次数，
        但不会换下一个凭证再试。
        """
        if explicit_credential:
            return await self.dispatcher.open_stream(descriptor, explicit_credential)

        preflight = self._preflight()
        if preflight is not None:
            return preflight

        credential = self.pool.next_working()
        if credential is None:
            return DispatchOutcome.failure(
                NO_WORKING_CREDENTIAL,
                ErrorClassification.FATAL,
                PoolExhaustedError,
            )

        outcome = await self.dispatcher.open_stream(descriptor, credential.secret)
        if outcome.success:
            self.pool.report_success(credential)
        elif outcome.is_credential_related:
            self.pool.report_failure(credential)
            logger.warning("流式请求凭证失败（不切换凭证）: key={}", credential.masked)
        return outcome

    # ==================== 诊断 ====================

    def snapshot(self) -> list[CredentialSnapshot]:
        return self.pool.snapshot()

    def count_reachable(self) -> int:
        return self.pool.count_reachable()

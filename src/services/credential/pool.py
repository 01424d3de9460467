"""
凭证池 - 多个上游 API Key 的轮询与健康管理

状态机：
    ACTIVE --(连续失败达到阈值)--> SUSPENDED
    SUSPENDED --(冷却时间到期, 下一次 next_working)--> ACTIVE (failure_count 清零)
    任意状态 --(report_success)--> ACTIVE (failure_count 清零)

轮询只在当前 ACTIVE 的凭证之间进行，顺序与配置顺序一致；
恢复的凭证回到它在配置中的原始位置，而不是插到队首。

并发：所有可变字段（state / failure_count / last_transition_at / 游标）
都在同一把 threading.Lock 下修改。锁只在内存操作期间持有，
调用方在 await 网络请求之前必须已经释放（本类所有方法都是同步的）。
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from src.config.constants import CredentialPoolDefaults
from src.core.logger import logger
from src.utils.masking import mask_secret


class CredentialState(str, Enum):
    """凭证状态"""

    ACTIVE = "active"
    SUSPENDED = "suspended"


@dataclass(eq=False)
class Credential:
    """
    单个上游凭证

    eq=False: 同一个 secret 在配置中重复出现时视为两个独立条目，按对象身份区分。
    """

    secret: str = field(repr=False)
    position: int
    state: CredentialState = CredentialState.ACTIVE
    failure_count: int = 0
    last_transition_at: float = 0.0

    @property
    def masked(self) -> str:
        return mask_secret(self.secret)

    @property
    def is_active(self) -> bool:
        return self.state == CredentialState.ACTIVE

    def __repr__(self) -> str:
        return (
            f"Credential(masked={self.masked!r}, position={self.position}, "
            f"state={self.state.value}, failure_count={self.failure_count})"
        )


@dataclass(frozen=True)
class CredentialSnapshot:
    """只读诊断视图，不包含明文凭证"""

    masked_secret: str
    state: CredentialState
    failure_count: int

    @property
    def is_working(self) -> bool:
        return self.state == CredentialState.ACTIVE


def parse_credentials(config_string: str | None) -> list[str]:
    """按逗号拆分并去掉空白、空项"""
    if not config_string:
        return []
    return [part.strip() for part in config_string.split(",") if part.strip()]


class CredentialPool:
    """
    凭证池

    每个进程构建一次（见 src.main.create_app），通过依赖注入传给调度层。
    成员在构建后不可变，只有每个凭证的健康字段会变化。
    """

    def __init__(
        self,
        config_string: str | None,
        *,
        failure_threshold: int = CredentialPoolDefaults.FAILURE_THRESHOLD,
        cooldown_seconds: float = CredentialPoolDefaults.COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if cooldown_seconds < 0:
            raise ValueError("cooldown_seconds must be >= 0")

        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._cursor = 0
        self._credentials: tuple[Credential, ...] = tuple(
            Credential(secret=secret, position=index)
            for index, secret in enumerate(parse_credentials(config_string))
        )

        if self._credentials:
            logger.info(
                "凭证池已初始化: {} 个凭证, 失败阈值={}, 冷却={}s",
                len(self._credentials),
                failure_threshold,
                cooldown_seconds,
            )
        else:
            logger.info("凭证池为空: 仅接受调用方自带凭证的请求")

    def __len__(self) -> int:
        return len(self._credentials)

    @property
    def total_count(self) -> int:
        """配置的凭证总数（也是一次调度的最大尝试次数）"""
        return len(self._credentials)

    @property
    def has_credentials(self) -> bool:
        return bool(self._credentials)

    # ==================== 内部辅助（调用方需持有锁） ====================

    def _cooldown_elapsed(self, credential: Credential, now: float) -> bool:
        return (now - credential.last_transition_at) >= self.cooldown_seconds

    def _reactivate_expired(self, now: float) -> None:
        for credential in self._credentials:
            if credential.state == CredentialState.SUSPENDED and self._cooldown_elapsed(
                credential, now
            ):
                credential.state = CredentialState.ACTIVE
                credential.failure_count = 0
                credential.last_transition_at = now
                logger.info("凭证 {} 冷却结束，重新启用", credential.masked)

    # ==================== 核心方法 ====================

    def next_working(self) -> Credential | None:
        """
        轮询选取下一个可用凭证

        先恢复冷却到期的挂起凭证，再在 ACTIVE 凭证中按游标选取并推进游标。
        没有任何 ACTIVE 凭证时返回 None。
        """
        with self._lock:
            now = self._clock()
            self._reactivate_expired(now)

            active = [c for c in self._credentials if c.is_active]
            if not active:
                return None

            index = self._cursor % len(active)
            selected = active[index]
            self._cursor = index + 1
            selected.last_transition_at = now
            return selected

    def report_failure(self, credential: Credential) -> None:
        """记录一次凭证相关失败，达到阈值时挂起"""
        with self._lock:
            now = self._clock()
            credential.failure_count += 1
            credential.last_transition_at = now

            if (
                credential.failure_count >= self.failure_threshold
                and credential.state == CredentialState.ACTIVE
            ):
                credential.state = CredentialState.SUSPENDED
                logger.warning(
                    "凭证 {} 连续失败 {} 次，挂起 {}s",
                    credential.masked,
                    credential.failure_count,
                    self.cooldown_seconds,
                )
            else:
                logger.debug(
                    "凭证 {} 失败计数: {}/{}",
                    credential.masked,
                    credential.failure_count,
                    self.failure_threshold,
                )

    def report_success(self, credential: Credential) -> None:
        """记录一次成功：清零失败计数并确保 ACTIVE"""
        with self._lock:
            credential.failure_count = 0
            credential.state = CredentialState.ACTIVE
            credential.last_transition_at = self._clock()

    # ==================== 诊断视图 ====================

    def snapshot(self) -> list[CredentialSnapshot]:
        """按配置顺序返回每个凭证的脱敏状态"""
        with self._lock:
            return [
                CredentialSnapshot(
                    masked_secret=c.masked,
                    state=c.state,
                    failure_count=c.failure_count,
                )
                for c in self._credentials
            ]

    def count_reachable(self) -> int:
        """ACTIVE 或冷却已到期（下一次 next_working 会恢复）的凭证数量"""
        with self._lock:
            now = self._clock()
            return sum(
                1
                for c in self._credentials
                if c.is_active or self._cooldown_elapsed(c, now)
            )

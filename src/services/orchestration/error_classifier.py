"""
错误分类器 - 纯函数，无副作用

判定一次失败是否与凭证本身有关：
- 凭证相关：换下一个凭证重试可能成功，调用方应记录该凭证失败
- 致命：换凭证无济于事（请求错误、上游 5xx、超时、网络错误），立即停止

目前基于状态码 + 响应文本子串匹配。上游若换成带结构化错误码的 API，
只需替换 classify_failure 的实现，调度层无需改动。
"""

from __future__ import annotations

from src.services.orchestration.models import ErrorClassification

CREDENTIAL_ERROR_STATUS_CODES = frozenset({401, 403})

# 响应文本中出现任一片段（忽略大小写）即视为凭证相关
CREDENTIAL_ERROR_PATTERNS: tuple[str, ...] = (
    "api key",
    "unauthorized",
    "authentication",
    "invalid token",
    "quota exceeded",
    "rate limit",
)


def is_credential_error_text(text: str | None) -> bool:
    if not text:
        return False
    lowered = text.lower()
    return any(pattern in lowered for pattern in CREDENTIAL_ERROR_PATTERNS)


def classify_failure(status_code: int | None, response_text: str | None) -> ErrorClassification:
    """
    对上游非成功响应分类

    Args:
        status_code: 上游 HTTP 状态码（无响应时为 None）
        response_text: 上游响应体文本

    Returns:
        ErrorClassification
    """
    if status_code in CREDENTIAL_ERROR_STATUS_CODES:
        return ErrorClassification.CREDENTIAL_RELATED
    if is_credential_error_text(response_text):
        return ErrorClassification.CREDENTIAL_RELATED
    return ErrorClassification.FATAL


__all__ = [
    "CREDENTIAL_ERROR_PATTERNS",
    "CREDENTIAL_ERROR_STATUS_CODES",
    "classify_failure",
    "is_credential_error_text",
]

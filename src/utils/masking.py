"""
敏感信息脱敏工具

凭证在任何对外可见的位置（日志、状态接口、DispatchOutcome）只允许暴露固定长度前缀。
"""

from __future__ import annotations

import re

from src.config.constants import CredentialPoolDefaults

# URL 中需要脱敏的查询参数（正则模式）
_SENSITIVE_QUERY_PARAMS_PATTERN = re.compile(
    r"([?&])(key|api_key|apikey|token|secret|password|credential)=([^&]*)",
    re.IGNORECASE,
)

_SENSITIVE_TEXT_PARAMS_PATTERN = re.compile(
    r"([?&])(key|api_key|apikey|token|secret|password|credential)=([^&\s]*)",
    re.IGNORECASE,
)

_BEARER_TOKEN_PATTERN = re.compile(r"(\bBearer\s+)[^\s,;'\"]+", re.IGNORECASE)


def mask_secret(secret: str, prefix_length: int = CredentialPoolDefaults.MASK_PREFIX_LENGTH) -> str:
    """
    凭证脱敏：保留前 prefix_length 个字符并追加省略号

    短凭证最多露出一半，保证脱敏结果永远不包含完整凭证。

    >>> mask_secret("sk-1234567890")
    'sk-12345...'
    >>> mask_secret("abcdef")
    'abc...'
    """
    visible = min(prefix_length, len(secret) // 2)
    return f"{secret[:visible]}..."


def redact_url_for_log(url: str) -> str:
    """
    对 URL 中的敏感查询参数进行脱敏，用于日志记录

    将 ?key=xxx 替换为 ?key=***
    """
    return _SENSITIVE_QUERY_PARAMS_PATTERN.sub(r"\1\2=***", url)


def redact_sensitive_text(text: str) -> str:
    """
    日志文本脱敏：Bearer 令牌与 URL 敏感查询参数

    与 redact_url_for_log 不同，参数值在空白处截止，不会吞掉后面的日志内容。
    """
    text = _BEARER_TOKEN_PATTERN.sub(r"\1***", text)
    return _SENSITIVE_TEXT_PARAMS_PATTERN.sub(r"\1\2=***", text)


def redact_secret_in_text(text: str, secret: str) -> str:
    """把文本中出现的完整凭证替换为脱敏形式（上游错误有时会回显凭证）"""
    if not secret or secret not in text:
        return text
    return text.replace(secret, mask_secret(secret))

"""
网关异常定义

核心调度层从不向外抛出这些异常，而是把分类结果写进 DispatchOutcome；
路由层需要中断请求时再通过 DispatchOutcome.to_exception() 转换并抛出，
由 main.py 中注册的处理器统一映射为 {"error": {"message": ...}} 响应。
"""

from __future__ import annotations


class GatewayException(Exception):
    """网关异常基类"""

    status_code: int = 500

    def __init__(self, message: str, *, status_code: int | None = None, **details: object):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details


class InvalidRequestException(GatewayException):
    """客户端请求不合法（缺少参数等）"""

    status_code = 400


class ConfigurationError(GatewayException):
    """未配置任何服务端凭证，且调用方也未提供凭证"""


class RequestTimeoutError(GatewayException):
    """单次上游调用超过截止时间"""


class CredentialRelatedError(GatewayException):
    """上游拒绝了凭证本身（401/403、配额、限流等）"""


class FatalRequestError(GatewayException):
    """与凭证无关的失败：请求错误、上游 5xx、网络错误"""


class PoolExhaustedError(GatewayException):
    """所有凭证都已尝试（或已全部挂起）仍未成功"""


ERROR_TYPES: dict[str, type[GatewayException]] = {
    cls.__name__: cls
    for cls in (
        ConfigurationError,
        RequestTimeoutError,
        CredentialRelatedError,
        FatalRequestError,
        PoolExhaustedError,
        InvalidRequestException,
    )
}


__all__ = [
    "GatewayException",
    "InvalidRequestException",
    "ConfigurationError",
    "RequestTimeoutError",
    "CredentialRelatedError",
    "FatalRequestError",
    "PoolExhaustedError",
    "ERROR_TYPES",
]

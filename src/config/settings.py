"""
运行时配置

所有配置均来自环境变量，进程启动时读取一次：

    from src.config import config

    config.api_keys
    config.request_timeout_ms
"""

from __future__ import annotations

import os

from src.config.constants import CredentialPoolDefaults, DispatchDefaults, HTTPClientDefaults


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class Config:
    """应用配置（环境变量快照）"""

    def __init__(self) -> None:
        # 服务端凭证，逗号分隔多个
        self.api_keys: str = os.getenv("API_KEY", "")
        self.api_url: str = os.getenv("API_URL", "") or DispatchDefaults.API_URL
        self.model_name: str = os.getenv("MODEL_NAME", "") or DispatchDefaults.MODEL_NAME
        self.request_timeout_ms: int = _env_int("REQUEST_TIMEOUT_MS", DispatchDefaults.TIMEOUT_MS)

        # 凭证池
        self.key_failure_threshold: int = _env_int(
            "KEY_FAILURE_THRESHOLD", CredentialPoolDefaults.FAILURE_THRESHOLD
        )
        self.key_cooldown_seconds: float = _env_float(
            "KEY_COOLDOWN_SECONDS", CredentialPoolDefaults.COOLDOWN_SECONDS
        )

        # HTTP 客户端
        self.http_connect_timeout: float = _env_float(
            "HTTP_CONNECT_TIMEOUT", HTTPClientDefaults.CONNECT_TIMEOUT
        )
        self.http_read_timeout: float = _env_float(
            "HTTP_READ_TIMEOUT", HTTPClientDefaults.READ_TIMEOUT
        )
        self.http_write_timeout: float = _env_float(
            "HTTP_WRITE_TIMEOUT", HTTPClientDefaults.WRITE_TIMEOUT
        )
        self.http_pool_timeout: float = _env_float(
            "HTTP_POOL_TIMEOUT", HTTPClientDefaults.POOL_TIMEOUT
        )
        self.http_max_connections: int = _env_int(
            "HTTP_MAX_CONNECTIONS", HTTPClientDefaults.MAX_CONNECTIONS
        )
        self.http_keepalive_connections: int = _env_int(
            "HTTP_KEEPALIVE_CONNECTIONS", HTTPClientDefaults.KEEPALIVE_CONNECTIONS
        )
        self.http_keepalive_expiry: float = _env_float(
            "HTTP_KEEPALIVE_EXPIRY", HTTPClientDefaults.KEEPALIVE_EXPIRY
        )

        # CORS，逗号分隔；为空时允许所有来源
        self.cors_origins: list[str] = [
            origin.strip()
            for origin in os.getenv("CORS_ORIGINS", "").split(",")
            if origin.strip()
        ] or ["*"]


config = Config()

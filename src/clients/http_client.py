"""
全局HTTP客户端池管理
避免每次请求都创建新的AsyncClient,提高性能

- 默认客户端：全局复用单一客户端（Keep-alive 连接减少 TCP 握手开销）
- 应用关闭时由 lifespan 调用 close_http_clients() 统一释放
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

from src.config import config
from src.core.logger import logger

# 模块级锁，避免类属性延迟初始化的竞态条件
_default_client_lock = asyncio.Lock()


def _default_timeout() -> httpx.Timeout:
    return httpx.Timeout(
        connect=config.http_connect_timeout,
        read=config.http_read_timeout,
        write=config.http_write_timeout,
        pool=config.http_pool_timeout,
    )


def _default_limits() -> httpx.Limits:
    return httpx.Limits(
        max_connections=config.http_max_connections,
        max_keepalive_connections=config.http_keepalive_connections,
        keepalive_expiry=config.http_keepalive_expiry,
    )


class HTTPClientPool:
    """
    全局HTTP客户端池单例

    管理可重用的httpx.AsyncClient实例,避免频繁创建/销毁连接
    """

    _instance: HTTPClientPool | None = None
    _default_client: httpx.AsyncClient | None = None

    def __new__(cls) -> "HTTPClientPool":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @classmethod
    def _create_default_client(cls) -> httpx.AsyncClient:
        client = httpx.AsyncClient(
            http2=False,
            timeout=_default_timeout(),
            limits=_default_limits(),
            follow_redirects=True,
        )
        logger.info(
            f"全局HTTP客户端池已初始化: "
            f"max_connections={config.http_max_connections}, "
            f"keepalive={config.http_keepalive_connections}, "
            f"keepalive_expiry={config.http_keepalive_expiry}s"
        )
        return client

    @classmethod
    async def get_default_client_async(cls) -> httpx.AsyncClient:
        """
        获取默认的HTTP客户端（异步线程安全版本）

        用于上游调度请求。单次请求的总截止时间由调度层另行控制。
        """
        if cls._default_client is not None and not cls._default_client.is_closed:
            return cls._default_client

        async with _default_client_lock:
            # 双重检查，避免重复创建
            if cls._default_client is None or cls._default_client.is_closed:
                cls._default_client = cls._create_default_client()
        return cls._default_client

    @classmethod
    async def close_all(cls) -> None:
        """关闭所有HTTP客户端"""
        if cls._default_client is not None:
            await cls._default_client.aclose()
            cls._default_client = None
            logger.info("默认HTTP客户端已关闭")

    @classmethod
    def get_pool_stats(cls) -> dict[str, Any]:
        """获取连接池统计信息"""
        return {
            "default_client_active": cls._default_client is not None
            and not cls._default_client.is_closed,
            "max_connections": config.http_max_connections,
        }


async def close_http_clients() -> None:
    """关闭所有HTTP客户端的便捷函数"""
    await HTTPClientPool.close_all()

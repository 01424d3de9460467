"""
统一日志系统 - 基于 loguru

日志级别策略:
- DEBUG: 每次上游尝试、凭证轮换细节
- INFO:  凭证恢复、客户端池初始化、请求处理
- WARNING: 凭证挂起、上游返回凭证类错误
- ERROR: 致命错误、凭证全部耗尽

输出策略:
- 控制台: 开发环境=DEBUG, 生产环境=INFO (通过 LOG_LEVEL 控制)
- 文件: 始终保存 DEBUG 级别，保留14天，按大小轮转 (50MB)

所有 sink 共用 build_formatter：消息在输出前经过 redact_sensitive_text，
Bearer 令牌与 URL 中的 key/token 参数一律替换为 ***。
调用方仍应只记录 mask_secret 之后的凭证，这里只兜底上游错误文本等外来内容。

使用方式:
    from src.core.logger import logger

    logger.info("消息")
    logger.warning("凭证 {} 已挂起", masked)
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

from loguru import logger

from src.utils.masking import redact_sensitive_text

IS_DOCKER = (
    os.path.exists("/.dockerenv")
    or os.environ.get("DOCKER_CONTAINER", "false").lower() == "true"
)

LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG" if not IS_DOCKER else "INFO").upper()

# 测试环境通过 LOG_DISABLE_FILE=true 关闭文件日志
DISABLE_FILE_LOG = os.getenv("LOG_DISABLE_FILE", "false").lower() == "true"

LOG_DIR = Path(os.getenv("LOG_DIR", Path(__file__).resolve().parent.parent.parent / "logs"))

# {extra[safe_message]} 由 build_formatter 在输出前填充
CONSOLE_FORMAT_DEV = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[safe_message]}</cyan>"
)

CONSOLE_FORMAT_PROD = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[safe_message]}"

FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{name}:{function}:{line} | {extra[safe_message]}"
)


def build_formatter(template: str) -> Callable[[Any], str]:
    """
    构造 loguru 格式化函数

    loguru 在调用格式化函数前已经完成 {} 参数替换，
    所以这里拿到的 record["message"] 是最终文本。
    """

    def _format(record: Any) -> str:
        record["extra"]["safe_message"] = redact_sensitive_text(record["message"])
        return template + "\n{exception}"

    return _format


def setup_logging() -> None:
    """按环境变量重建全部 sink（模块导入时执行一次）"""
    logger.remove()

    logger.add(
        sys.stdout,
        format=build_formatter(CONSOLE_FORMAT_PROD if IS_DOCKER else CONSOLE_FORMAT_DEV),
        level=LOG_LEVEL,
        colorize=not IS_DOCKER,
        backtrace=not IS_DOCKER,
        diagnose=not IS_DOCKER,
    )

    if DISABLE_FILE_LOG:
        return

    LOG_DIR.mkdir(parents=True, exist_ok=True)

    # enqueue=False: gunicorn fork 后各 worker 独立写文件
    file_options: dict[str, Any] = {
        "format": build_formatter(FILE_FORMAT),
        "retention": "14 days",
        "compression": "gz",
        "enqueue": False,
        "encoding": "utf-8",
        "catch": True,
        "backtrace": not IS_DOCKER,
        "diagnose": not IS_DOCKER,
    }
    logger.add(LOG_DIR / "app.log", level="DEBUG", rotation="50 MB", **file_options)
    logger.add(LOG_DIR / "error.log", level="ERROR", rotation="20 MB", **file_options)


setup_logging()

# httpx 的 INFO 日志会打印完整请求 URL
for _name in ("httpx", "httpcore", "uvicorn.access"):
    logging.getLogger(_name).setLevel(logging.WARNING)

__all__ = ["logger", "build_formatter", "setup_logging"]

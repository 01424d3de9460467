"""
默认常量定义

环境变量未设置时使用这里的值。
"""


class CredentialPoolDefaults:
    """凭证池默认参数"""

    # 连续失败达到该次数后挂起凭证
    FAILURE_THRESHOLD = 3
    # 挂起后多久允许重新启用（秒）
    COOLDOWN_SECONDS = 60.0
    # 日志/状态展示时保留的明文前缀长度
    MASK_PREFIX_LENGTH = 8


class DispatchDefaults:
    """上游请求默认参数"""

    TIMEOUT_MS = 30_000
    API_URL = "https://generativelanguage.googleapis.com/v1beta/openai/chat/completions"
    MODEL_NAME = "gemini-2.5-flash-preview-05-20"


class HTTPClientDefaults:
    """全局 HTTP 客户端默认参数"""

    CONNECT_TIMEOUT = 10.0
    READ_TIMEOUT = 60.0
    WRITE_TIMEOUT = 60.0
    POOL_TIMEOUT = 10.0
    MAX_CONNECTIONS = 100
    KEEPALIVE_CONNECTIONS = 20
    KEEPALIVE_EXPIRY = 30.0

"""
错误消息处理工具函数
"""


def extract_error_message(error: Exception, status_code: int | None = None) -> str:
    """
    从异常中提取错误消息

    httpx 的部分异常（如连接被重置）str() 为空，此时回退到 repr()。

    Args:
        error: 异常对象
        status_code: 可选的 HTTP 状态码

    Returns:
        错误消息字符串
    """
    error_str = str(error) or repr(error)
    if status_code is not None:
        return f"HTTP {status_code}: {error_str}"
    return error_str


def format_http_error(status_code: int, body_text: str) -> str:
    """上游非 2xx 响应的统一错误消息格式"""
    return f"HTTP {status_code}: {body_text}"


def extract_client_error_message(error: Exception) -> str:
    """
    从异常中提取返回给客户端的错误消息

    优先使用 GatewayException.message，其余异常回退到字符串表示。
    """
    message = getattr(error, "message", None)
    if message and isinstance(message, str) and message.strip():
        return message

    return str(error) or repr(error)

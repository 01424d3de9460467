"""
请求处理工具函数
提供统一的HTTP请求信息提取功能
"""


from fastapi import Request


def get_client_ip(request: Request) -> str:
    """
    获取客户端真实IP地址

    按优先级检查：
    1. X-Real-IP 头（由最外层 Nginx 设置，最可靠）
    2. X-Forwarded-For 头的第一个 IP（原始客户端）
    3. 直接客户端IP
    """
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        ips = [ip.strip() for ip in forwarded_for.split(",") if ip.strip()]
        if ips:
            return ips[0]

    if request.client and request.client.host:
        return request.client.host

    return "unknown"


def extract_bearer_credential(request: Request) -> str | None:
    """
    提取调用方自带的上游凭证

    只识别 Authorization: Bearer <key>；缺失、非 Bearer 或空值均返回 None。
    """
    auth = request.headers.get("authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip() or None
    return None

"""
凭证池模块

- Credential: 单个上游凭证及其健康状态
- CredentialPool: 轮询选取、失败挂起、冷却后自动恢复
"""

from .pool import Credential, CredentialPool, CredentialSnapshot, CredentialState

__all__ = [
    "Credential",
    "CredentialPool",
    "CredentialSnapshot",
    "CredentialState",
]

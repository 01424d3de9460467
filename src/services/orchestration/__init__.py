"""
Orchestration 模块

提供请求编排相关的组件：
- RequestDispatcher: 请求分发器，用一个凭证执行单次上游调用并分类结果
- classify_failure: 错误分类器（纯逻辑，无副作用）
- FailoverOrchestrator: 故障转移编排，负责凭证选取、重试与凭证池记账
"""

from .error_classifier import classify_failure
from .failover import FailoverOrchestrator
from .models import DispatchOutcome, ErrorClassification, RequestDescriptor, UpstreamStream
from .request_dispatcher import RequestDispatcher

__all__ = [
    "DispatchOutcome",
    "ErrorClassification",
    "FailoverOrchestrator",
    "RequestDescriptor",
    "RequestDispatcher",
    "UpstreamStream",
    "classify_failure",
]

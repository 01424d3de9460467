"""
路由依赖

凭证池与编排器在 create_app() 中构建一次并挂在 app.state 上，
路由通过 Depends 取用，而不是依赖模块级单例。
"""

from fastapi import Request

from src.config import Config
from src.services.orchestration import FailoverOrchestrator


def get_orchestrator(request: Request) -> FailoverOrchestrator:
    return request.app.state.orchestrator


def get_settings(request: Request) -> Config:
    return request.app.state.settings

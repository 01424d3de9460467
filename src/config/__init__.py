"""
配置模块

- settings: 运行时配置（环境变量）
- constants: 各子系统默认常量
"""

from .settings import Config, config

__all__ = ["Config", "config"]

"""公共 API 路由"""

from .analyze import router as analyze_router
from .key_status import router as key_status_router

__all__ = ["analyze_router", "key_status_router"]

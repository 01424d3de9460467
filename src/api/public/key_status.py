"""
凭证状态 API

供前端判断"服务端是否有可用凭证"，以及运维查看各凭证的健康状态。
"""

from fastapi import APIRouter, Depends

from src.api.dependencies import get_orchestrator
from src.models.credential import KeyStatusData, KeyStatusEntry, KeyStatusResponse
from src.services.orchestration import FailoverOrchestrator

router = APIRouter(prefix="/api/key-status", tags=["Key Status"])


@router.get("", response_model=KeyStatusResponse)
async def get_key_status(
    orchestrator: FailoverOrchestrator = Depends(get_orchestrator),
) -> KeyStatusResponse:
    """
    获取服务端凭证状态

    **返回字段**
    - totalKeys: 配置的凭证总数
    - workingKeys: 当前可达的凭证数量
    - keys: 每个凭证的脱敏前缀、是否可用、失败次数
    - hasServerKeys: 服务端是否配置了凭证
    """
    snapshot = orchestrator.snapshot()
    return KeyStatusResponse(
        success=True,
        data=KeyStatusData(
            total_keys=len(snapshot),
            working_keys=orchestrator.count_reachable(),
            keys=[
                KeyStatusEntry(
                    key=item.masked_secret,
                    is_working=item.is_working,
                    failure_count=item.failure_count,
                )
                for item in snapshot
            ],
            has_server_keys=orchestrator.pool.has_credentials,
        ),
    )

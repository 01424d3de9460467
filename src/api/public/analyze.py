"""
文本分析代理 API

把前端拼好的提示词转发给上游生成式 API，支持多凭证自动切换。
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from src.api.dependencies import get_orchestrator, get_settings
from src.config import Config
from src.core.exceptions import InvalidRequestException
from src.core.logger import logger
from src.models.analyze import AnalyzeRequest, build_chat_payload
from src.services.orchestration import FailoverOrchestrator, RequestDescriptor, UpstreamStream
from src.utils.request_utils import extract_bearer_credential, get_client_ip

router = APIRouter(prefix="/api/analyze", tags=["Analyze"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


@router.post("")
async def analyze(
    body: AnalyzeRequest,
    request: Request,
    orchestrator: FailoverOrchestrator = Depends(get_orchestrator),
    settings: Config = Depends(get_settings),
):
    """
    转发分析请求

    **请求体**
    - prompt: 提示词（必填）
    - model: 模型名称，默认 MODEL_NAME
    - apiUrl: 上游地址，默认 API_URL
    - stream: 是否流式返回

    请求头携带 `Authorization: Bearer <key>` 时使用调用方的凭证，
    不经过服务端凭证池，也不做故障转移。
    """
    if not body.prompt:
        raise InvalidRequestException("missing required parameter: prompt")

    explicit_credential = extract_bearer_credential(request)
    descriptor = RequestDescriptor(
        url=body.api_url or settings.api_url,
        method="POST",
        body=build_chat_payload(body.prompt, body.model or settings.model_name, body.stream),
        timeout_ms=settings.request_timeout_ms,
    )

    logger.info(
        "分析请求: ip={} stream={} own_key={}",
        get_client_ip(request),
        body.stream,
        explicit_credential is not None,
    )

    if body.stream:
        outcome = await orchestrator.open_stream(descriptor, explicit_credential)
        if not outcome.success:
            logger.error("流式请求失败: {}", outcome.error)
            raise outcome.to_exception(status_code=outcome.status_code or 500)

        stream: UpstreamStream = outcome.payload
        return StreamingResponse(
            stream.iter_bytes(),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
            background=BackgroundTask(stream.aclose),
        )

    outcome = await orchestrator.dispatch(descriptor, explicit_credential)
    if not outcome.success:
        logger.error("上游 API 错误: {}", outcome.error)
        raise outcome.to_exception(status_code=500)

    return outcome.payload

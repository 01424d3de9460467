"""
分析接口的请求模型
"""

from pydantic import BaseModel, ConfigDict, Field


class AnalyzeRequest(BaseModel):
    """POST /api/analyze 请求体"""

    prompt: str | None = Field(None, description="发送给模型的完整提示词")
    model: str | None = Field(None, description="模型名称，为空时使用 MODEL_NAME")
    api_url: str | None = Field(None, alias="apiUrl", description="自定义上游地址，为空时使用 API_URL")
    stream: bool = Field(False, description="是否以 SSE 流式返回")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


def build_chat_payload(prompt: str, model: str, stream: bool) -> dict:
    """构造 OpenAI 兼容的 chat/completions 请求体"""
    return {
        "model": model,
        "reasoning_effort": "none",
        "messages": [{"role": "user", "content": prompt}],
        "stream": stream,
    }

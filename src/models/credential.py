"""
凭证状态相关的API模型

字段以 camelCase 输出，与前端约定一致。明文凭证永远不会出现在这些模型中。
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class KeyStatusEntry(_CamelModel):
    """单个凭证的脱敏状态"""

    key: str = Field(..., description="脱敏后的凭证前缀")
    is_working: bool = Field(..., description="是否处于可用状态")
    failure_count: int = Field(0, description="连续失败次数")


class KeyStatusData(_CamelModel):
    total_keys: int = Field(..., description="配置的凭证总数")
    working_keys: int = Field(..., description="当前可达的凭证数量（含冷却已到期的）")
    keys: list[KeyStatusEntry] = Field(default_factory=list)
    has_server_keys: bool = Field(..., description="服务端是否配置了凭证")


class KeyStatusResponse(_CamelModel):
    success: bool = True
    data: KeyStatusData

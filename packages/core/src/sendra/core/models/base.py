"""实体基类

存储与接口层使用 camelCase 字段名（eventTypes、runOnce、createdAt），
Python 侧属性使用 snake_case，通过 pydantic alias 互通。
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# 联系人 data 字段允许的值类型
DataValue = str | list[str] | int | float | bool | None


class BaseEntity(BaseModel):
    """所有持久化实体的公共字段"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(description="唯一标识，ULID 格式，时间有序")
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")
    embedded: dict[str, list[Any]] | None = Field(
        default=None,
        alias="_embed",
        exclude=True,
        description="按需嵌入的关联实体，不落盘",
    )

    def to_document(self) -> dict[str, Any]:
        """序列化为存储文档（camelCase，JSON 兼容）"""
        return self.model_dump(mode="json", by_alias=True)


class ProjectEntity(BaseEntity):
    """归属于某个 Project 的实体"""

    project: str = Field(description="所属 Project ID")

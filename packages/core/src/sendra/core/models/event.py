"""Event Domain Model

事件 append-only：写入后不可修改，仅在项目级联清理时删除。
既记录联系人行为，也作为规则触发的审计记录（relation 指向 Action）。
"""

from typing import Any

from pydantic import Field

from .base import ProjectEntity
from .enums import RelationType


class Event(ProjectEntity):
    """Event 数据模型"""

    event_type: str = Field(min_length=1, description="事件类型")
    contact: str = Field(description="关联 Contact ID")
    relation: str | None = Field(default=None, description="触发该事件的 Action/Campaign ID")
    relation_type: RelationType | None = Field(default=None, description="关联类型")
    email: str | None = Field(default=None, description="关联 Email ID")
    data: dict[str, Any] | None = Field(default=None, description="事件附带数据")

"""Action Domain Model（自动化规则）

events 为触发所需的事件类型全集，notevents 为排除集合。
delay 以分钟存储，入队时换算为秒。
"""

from pydantic import Field

from .base import ProjectEntity


class Action(ProjectEntity):
    """Action 数据模型"""

    name: str = Field(min_length=1, description="规则名称")
    run_once: bool = Field(default=False, description="每个联系人最多触发一次")
    delay: int = Field(default=0, ge=0, description="发送延迟（分钟）")
    template: str = Field(description="关联 Template ID")
    events: list[str] = Field(min_length=1, description="必需事件类型集合")
    notevents: list[str] = Field(default_factory=list, description="排除事件类型集合")

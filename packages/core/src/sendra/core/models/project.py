"""Project Domain Model

eventTypes 记录项目迄今观察到的自定义事件类型，只增不减。
"""

from pydantic import Field

from .base import BaseEntity


class Project(BaseEntity):
    """Project 数据模型"""

    name: str = Field(min_length=1, description="项目名称")
    url: str = Field(default="", description="项目站点地址")
    email: str | None = Field(default=None, description="默认发件地址")
    event_types: list[str] = Field(
        default_factory=list,
        description="已观察到的自定义事件类型（不含内置类型）",
    )

"""Contact Domain Model"""

from pydantic import Field

from .base import DataValue, ProjectEntity


class Contact(ProjectEntity):
    """Contact 数据模型"""

    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+$", description="联系人邮箱")
    subscribed: bool = Field(default=True, description="是否订阅营销邮件")
    data: dict[str, DataValue] = Field(
        default_factory=dict,
        description="自由格式的联系人属性",
    )

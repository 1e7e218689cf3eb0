"""Email Domain Model -- 已发送邮件记录"""

from pydantic import Field

from .base import ProjectEntity
from .enums import EmailStatus, RelationType


class Email(ProjectEntity):
    """Email 数据模型

    source 指向产生这封邮件的 Action 或 Campaign。
    """

    contact: str = Field(description="收件联系人 ID")
    message_id: str = Field(min_length=1, description="投递服务返回的消息 ID")
    subject: str = Field(default="", description="邮件主题")
    source: str | None = Field(default=None, description="来源 Action/Campaign ID")
    source_type: RelationType | None = Field(default=None, description="来源类型")
    status: EmailStatus = Field(default=EmailStatus.SENT, description="投递状态")

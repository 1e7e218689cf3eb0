"""Template Domain Model"""

from pydantic import Field

from .base import ProjectEntity
from .enums import TemplateType


class Template(ProjectEntity):
    """Template 数据模型

    模板渲染不在本包范围内，body 仅按原样保存。
    """

    subject: str = Field(min_length=1, max_length=70, description="邮件主题")
    body: str = Field(min_length=1, description="模板正文")
    template_type: TemplateType = Field(
        default=TemplateType.MARKETING,
        description="MARKETING 受退订约束，TRANSACTIONAL 不受约束",
    )

"""TemplateStore -- Template 实体存储"""

from ..models.template import Template
from .base import EntityStore


class TemplateStore(EntityStore[Template]):
    """Template 存储，支持嵌入引用它的 Action"""

    entity_name = "TEMPLATE"
    model = Template
    supported_embeds = ("actions",)
    embed_key = "template"

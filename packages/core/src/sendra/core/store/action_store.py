"""ActionStore -- Action（自动化规则）实体存储"""

from ..models.action import Action
from .base import EntityStore
from .indexes import LOCAL_INDEXES, IndexBinding


class ActionStore(EntityStore[Action]):
    """Action 存储

    template 投影到 ATTR_1，用于 Template 反查关联规则。
    """

    entity_name = "ACTION"
    model = Action
    index_bindings = (
        IndexBinding(index=LOCAL_INDEXES["ATTR_1"], field="template", key="template"),
    )
    supported_embeds = ("emails", "events")
    embed_key = "action"

    async def list_by_event_type(self, event_type: str) -> list[Action]:
        """所有 events 包含 event_type 的规则（全分区扫描后过滤）"""
        actions = await self.list_all()
        return [action for action in actions if event_type in action.events]

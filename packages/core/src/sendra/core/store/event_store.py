"""EventStore -- Event 实体存储

事件 append-only：只创建不修改，仅在项目级联清理时删除。
"""

from ..models.event import Event
from .base import EntityStore
from .indexes import LOCAL_INDEXES, IndexBinding


class EventStore(EntityStore[Event]):
    """Event 存储"""

    entity_name = "EVENT"
    model = Event
    index_bindings = (
        IndexBinding(index=LOCAL_INDEXES["ATTR_1"], field="relation", key="relation"),
        IndexBinding(index=LOCAL_INDEXES["ATTR_2"], field="contact", key="contact"),
        IndexBinding(index=LOCAL_INDEXES["ATTR_3"], field="event_type", key="eventType"),
    )

    async def get_history(self, contact_id: str) -> list[Event]:
        """联系人的完整事件历史（按创建时间正序）"""
        return await self.find_all_by("contact", contact_id)

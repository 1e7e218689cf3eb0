"""EmailStore -- 已发送邮件记录存储

messageId 同时投影到本地索引和全局索引 BY_MESSAGE_ID，
投递回执只携带 messageId，需要跨项目反查。
"""

from ..models.email import Email
from .base import EntityStore
from .indexes import GLOBAL_INDEXES, LOCAL_INDEXES, IndexBinding


class EmailStore(EntityStore[Email]):
    """Email 存储"""

    entity_name = "EMAIL"
    model = Email
    index_bindings = (
        IndexBinding(index=LOCAL_INDEXES["ATTR_1"], field="source", key="source"),
        IndexBinding(index=LOCAL_INDEXES["ATTR_2"], field="contact", key="contact"),
        IndexBinding(index=LOCAL_INDEXES["ATTR_3"], field="message_id", key="messageId"),
        IndexBinding(index=GLOBAL_INDEXES["BY_MESSAGE_ID"], field="message_id"),
    )

    async def get_by_message_id(self, message_id: str) -> Email | None:
        """跨所有项目按 messageId 查找邮件记录"""
        page = await self._table.query_global(
            GLOBAL_INDEXES["BY_MESSAGE_ID"],
            message_id,
            f"{self.entity_name}#",
            "begins_with",
            1,
            None,
        )
        return self._validate(page.items[0]) if page.items else None

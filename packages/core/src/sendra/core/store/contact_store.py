"""ContactStore -- Contact 实体存储

email 同时投影到本地索引 ATTR_1 和全局索引 BY_EMAIL，
后者用于跨项目按邮箱反查联系人。
"""

from ..models.contact import Contact
from .base import EntityStore
from .indexes import GLOBAL_INDEXES, LOCAL_INDEXES, IndexBinding


class ContactStore(EntityStore[Contact]):
    """Contact 存储"""

    entity_name = "CONTACT"
    model = Contact
    index_bindings = (
        IndexBinding(index=LOCAL_INDEXES["ATTR_1"], field="email", key="email"),
        IndexBinding(index=GLOBAL_INDEXES["BY_EMAIL"], field="email"),
    )
    supported_embeds = ("emails", "events")
    embed_key = "contact"

    async def get_by_email(self, email: str) -> Contact | None:
        """项目内按邮箱查找联系人"""
        result = await self.find_by("email", email, limit=1)
        return result.items[0] if result.items else None

    async def get_by_email_from_all_projects(self, email: str) -> list[Contact]:
        """跨所有项目按邮箱查找联系人"""
        page = await self._table.query_global(
            GLOBAL_INDEXES["BY_EMAIL"],
            email,
            f"{self.entity_name}#",
            "begins_with",
            None,
            None,
        )
        return [self._validate(doc) for doc in page.items]

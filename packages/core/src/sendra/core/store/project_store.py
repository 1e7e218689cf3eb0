"""ProjectStore -- Project 实体存储

Project 位于全局 PROJECT 分区，不声明索引，不支持嵌入。
"""

from datetime import UTC, datetime

import structlog

from ..config import StoreConfig
from ..models.project import Project
from ..models.task import BatchDeleteRelatedPayload, BatchDeleteRelatedTask
from .base import EntityStore
from .protocols import TaskDispatcher
from .table import SqliteItemTable

log = structlog.get_logger()


class ProjectStore(EntityStore[Project]):
    """Project 存储"""

    entity_name = "PROJECT"
    model = Project

    def __init__(
        self,
        table: SqliteItemTable,
        config: StoreConfig | None = None,
        dispatcher: TaskDispatcher | None = None,
    ) -> None:
        super().__init__(table, None, config=config)
        self._dispatcher = dispatcher

    async def register_event_type(self, project_id: str, event_type: str) -> bool:
        """原子地把事件类型并入 project.eventTypes

        并发登记不同类型不会互相覆盖，重复登记为空操作。

        Returns:
            True 如果新增了类型，False 如果已存在或 Project 不存在
        """
        added = await self._table.add_to_string_set(
            self.type,
            project_id,
            "eventTypes",
            event_type,
            datetime.now(UTC).isoformat(),
        )
        if added:
            log.info("event_type_registered", project_id=project_id, event_type=event_type)
        return added

    async def delete(self, item_id: str) -> None:
        """删除 Project，并提交关联数据的级联清理任务"""
        await super().delete(item_id)
        if self._dispatcher is None:
            return
        await self._dispatcher.add_task(
            BatchDeleteRelatedTask(payload=BatchDeleteRelatedPayload(type="PROJECT", id=item_id))
        )

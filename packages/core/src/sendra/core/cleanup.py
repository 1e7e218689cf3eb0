"""关联数据清理 -- 执行 batchDeleteRelated 任务

Project 删除后，其分区下的 Action/Contact/Email/Event/Template 全部清除。
USER 与 EVENT 类型的关联数据（成员关系、事件定义）不在本库维护，只记录日志。
"""

import structlog

from .models.task import BatchDeleteRelatedTask
from .store import StoreGroup

log = structlog.get_logger()


async def purge_project(store_group: StoreGroup, project_id: str) -> dict[str, int]:
    """删除项目分区下的全部实体

    Returns:
        每个分区删除的条目数
    """
    # 共享单一连接，逐分区顺序执行，避免交错提交
    results: dict[str, int] = {}
    for store in store_group.project_scoped(project_id):
        items = await store.list_all()
        await store.batch_delete([item.id for item in items])
        log.info("project_partition_purged", project_id=project_id, type=store.type, items=len(items))
        results[store.type] = len(items)
    return results


async def handle_batch_delete_related(
    store_group: StoreGroup,
    task: BatchDeleteRelatedTask,
    message_id: str | None = None,
) -> None:
    """处理一条 batchDeleteRelated 任务（至少一次投递，重复执行无副作用）"""
    payload = task.payload
    bound_log = log.bind(message_id=message_id, type=payload.type, id=payload.id)
    bound_log.info("batch_delete_related_started")

    if payload.type == "PROJECT":
        await purge_project(store_group, payload.id)
        return

    bound_log.info("batch_delete_related_nothing_to_delete", project_id=payload.project)

"""ProjectStore 测试

测试内容：
1. register_event_type 原子并集（并发不丢失）
2. 删除 Project 提交 batchDeleteRelated 任务
"""

import asyncio
from unittest.mock import AsyncMock

from sendra.core.models import BatchDeleteRelatedTask
from sendra.core.store import ProjectStore


class TestRegisterEventType:
    async def test_register_once(self, store_group, project):
        projects = store_group.projects()

        assert await projects.register_event_type(project.id, "purchase") is True
        assert await projects.register_event_type(project.id, "purchase") is False

        stored = await projects.get(project.id)
        assert stored.event_types == ["purchase"]
        assert stored.updated_at > project.updated_at

    async def test_concurrent_registrations_keep_all_types(self, store_group, project):
        """并发登记不同类型，最终集合包含全部类型"""
        projects = store_group.projects()
        types = [f"type-{i}" for i in range(10)]

        await asyncio.gather(*(projects.register_event_type(project.id, t) for t in types))

        stored = await projects.get(project.id)
        assert sorted(stored.event_types) == sorted(types)

    async def test_missing_project(self, store_group):
        assert await store_group.projects().register_event_type("missing", "purchase") is False

    async def test_other_fields_untouched(self, store_group, project):
        projects = store_group.projects()
        await projects.register_event_type(project.id, "purchase")

        stored = await projects.get(project.id)
        assert stored.name == project.name
        assert stored.url == project.url


class TestDelete:
    async def test_delete_enqueues_cleanup_task(self, store_group, project):
        dispatcher = AsyncMock()
        projects = ProjectStore(store_group.table, config=store_group.config, dispatcher=dispatcher)

        await projects.delete(project.id)

        assert await projects.get(project.id) is None
        task = dispatcher.add_task.await_args.args[0]
        assert isinstance(task, BatchDeleteRelatedTask)
        assert task.payload.type == "PROJECT"
        assert task.payload.id == project.id

    async def test_delete_through_store_group_uses_task_queue(self, store_group, project):
        await store_group.projects().delete(project.id)

        status = await store_group.task_queue.get_queue_status()
        assert status.tasks == 1

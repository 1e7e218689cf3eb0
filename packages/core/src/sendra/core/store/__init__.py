"""Sendra Core Store -- SQLite 持久化实现

提供工厂函数创建共享数据库连接的 Store 实例组。
实体 Store 按项目分区，由 StoreGroup 的工厂方法按需构造。
"""

from pathlib import Path

import aiosqlite

from ..config import StoreConfig, load_store_config
from ..queue import SqliteTaskQueue
from .action_store import ActionStore
from .base import EntityStore, QueryResult, StopFn
from .contact_store import ContactStore
from .email_store import EmailStore
from .event_store import EventStore
from .project_store import ProjectStore
from .sqlite_init import init_db
from .table import SqliteItemTable
from .template_store import TemplateStore


class StoreGroup:
    """Store 实例组 -- 共享同一个数据库连接与任务队列"""

    def __init__(
        self,
        conn: aiosqlite.Connection,
        config: StoreConfig | None = None,
    ) -> None:
        self.conn = conn
        self.config = config or load_store_config()
        self.table = SqliteItemTable(conn)
        self.task_queue = SqliteTaskQueue(conn)

    def projects(self) -> ProjectStore:
        return ProjectStore(self.table, config=self.config, dispatcher=self.task_queue)

    def contacts(self, project_id: str | None = None) -> ContactStore:
        """project_id 为空时只用于跨项目查询"""
        return ContactStore(self.table, project_id, config=self.config)

    def actions(self, project_id: str) -> ActionStore:
        return ActionStore(self.table, project_id, config=self.config)

    def events(self, project_id: str) -> EventStore:
        return EventStore(self.table, project_id, config=self.config)

    def templates(self, project_id: str) -> TemplateStore:
        return TemplateStore(self.table, project_id, config=self.config)

    def emails(self, project_id: str | None = None) -> EmailStore:
        """project_id 为空时只用于跨项目查询"""
        return EmailStore(self.table, project_id, config=self.config)

    def project_scoped(self, project_id: str) -> list[EntityStore]:
        """项目分区下的全部实体 Store（级联清理使用）"""
        return [
            self.actions(project_id),
            self.contacts(project_id),
            self.emails(project_id),
            self.events(project_id),
            self.templates(project_id),
        ]


async def create_store_group(
    db_path: str,
    config: StoreConfig | None = None,
) -> StoreGroup:
    """创建 Store 实例组

    Args:
        db_path: SQLite 数据库文件路径
        config: 存储配置，默认从环境变量加载

    Returns:
        StoreGroup 实例
    """
    # 确保数据库目录存在
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row
    await init_db(conn)

    return StoreGroup(conn=conn, config=config)


__all__ = [
    "StoreGroup",
    "create_store_group",
    "EntityStore",
    "QueryResult",
    "StopFn",
    "SqliteItemTable",
    "ProjectStore",
    "ContactStore",
    "ActionStore",
    "EventStore",
    "TemplateStore",
    "EmailStore",
    "init_db",
]

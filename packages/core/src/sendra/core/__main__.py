"""CLI 入口模块 -- python -m sendra.core <command>

支持的命令：
  init-db                 初始化数据库（建表 + 索引）
  release-delayed         把到期的延迟任务转入即时队列
  queue-status            输出即时队列近似状态
  purge-project <id>      删除项目分区下的全部实体
"""

import asyncio
import sys

from .config import get_db_path

_USAGE = """用法: python -m sendra.core <command>
命令:
  init-db                 初始化数据库（建表 + 索引）
  release-delayed         把到期的延迟任务转入即时队列
  queue-status            输出即时队列近似状态
  purge-project <id>      删除项目分区下的全部实体"""


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        print(_USAGE)
        sys.exit(1)

    command = sys.argv[1]

    if command == "init-db":
        asyncio.run(init_database())
    elif command == "release-delayed":
        asyncio.run(release_delayed())
    elif command == "queue-status":
        asyncio.run(queue_status())
    elif command == "purge-project":
        if len(sys.argv) < 3:
            print("用法: python -m sendra.core purge-project <project_id>")
            sys.exit(1)
        asyncio.run(purge(sys.argv[2]))
    else:
        print(f"未知命令: {command}")
        print("可用命令: init-db, release-delayed, queue-status, purge-project")
        sys.exit(1)


async def init_database() -> None:
    """创建数据库文件并初始化 schema"""
    from .store import create_store_group

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")
    store_group = await create_store_group(db_path)
    await store_group.conn.close()
    print("初始化完成")


async def release_delayed() -> None:
    """执行一次延迟任务释放"""
    from .store import create_store_group

    store_group = await create_store_group(get_db_path())
    try:
        message_ids = await store_group.task_queue.release_due_executions()
        print(f"释放完成，入队 {len(message_ids)} 条任务")
    finally:
        await store_group.conn.close()


async def queue_status() -> None:
    """输出队列状态（JSON）"""
    from .store import create_store_group

    store_group = await create_store_group(get_db_path())
    try:
        status = await store_group.task_queue.get_queue_status()
        print(status.model_dump_json(by_alias=True, indent=2))
    finally:
        await store_group.conn.close()


async def purge(project_id: str) -> None:
    """立即执行项目级联清理（不经过任务队列）"""
    from .cleanup import purge_project
    from .store import create_store_group

    store_group = await create_store_group(get_db_path())
    try:
        results = await purge_project(store_group, project_id)
        for partition, count in results.items():
            print(f"{partition}: 删除 {count} 条")
    finally:
        await store_group.conn.close()


if __name__ == "__main__":
    main()

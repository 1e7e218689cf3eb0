"""任务队列 SQLite 实现

add_task 按 delaySeconds 路由：
- 超过 DELAYED_TASK_THRESHOLD_SECONDS：写入 delayed_executions，名称唯一，
  到期后由 release_due_executions 转入即时队列
- 其余：直接写入 task_queue，delaySeconds 之后可见

消费侧 receive/delete 提供至少一次投递：处理中的消息在可见性超时后重新出现。
"""

import json
import time

import aiosqlite
import structlog
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from ulid import ULID

from ..config import DELAYED_TASK_THRESHOLD_SECONDS, QUEUE_VISIBILITY_TIMEOUT_SECONDS
from ..models.task import BatchDeleteRelatedTask, SendEmailTask, dump_task, load_task

log = structlog.get_logger()


class QueueStatus(BaseModel):
    """队列近似状态"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    tasks: int = Field(description="当前可见的消息数")
    delayed_tasks: int = Field(description="尚未到达可见时间的新消息数")
    not_visible_tasks: int = Field(description="已被领取、处理中的消息数")
    pending_executions: int = Field(default=0, description="等待中的延迟执行数")


class ReceivedMessage(BaseModel):
    """一条被领取的消息"""

    message_id: str
    task: SendEmailTask | BatchDeleteRelatedTask
    receive_count: int


class SqliteTaskQueue:
    """TaskDispatcher 的 SQLite 实现"""

    def __init__(
        self,
        conn: aiosqlite.Connection,
        delay_threshold_seconds: int = DELAYED_TASK_THRESHOLD_SECONDS,
        visibility_timeout_seconds: int = QUEUE_VISIBILITY_TIMEOUT_SECONDS,
    ) -> None:
        self._conn = conn
        self._delay_threshold = delay_threshold_seconds
        self._visibility_timeout = visibility_timeout_seconds

    async def add_task(
        self,
        task: SendEmailTask | BatchDeleteRelatedTask,
        now: float | None = None,
    ) -> str:
        """提交任务

        Returns:
            延迟执行名（delayed-task-<type>-<ulid>）或队列消息 ID
        """
        now = time.time() if now is None else now
        delay = task.delay_seconds or 0

        if delay > self._delay_threshold:
            name = f"delayed-task-{task.type}-{ULID()}"
            execution_input = json.dumps({"delaySeconds": delay, "task": dump_task(task)})
            try:
                await self._conn.execute(
                    """
                    INSERT INTO delayed_executions (name, input, started_at, fire_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (name, execution_input, now, now + delay),
                )
                await self._conn.commit()
            except Exception:
                await self._conn.rollback()
                raise
            log.info("task_delayed", task_type=task.type, execution=name, delay_seconds=delay)
            return name

        message_id = await self._send(dump_task(task), now, now + delay)
        log.info("task_enqueued", task_type=task.type, message_id=message_id, delay_seconds=delay)
        return message_id

    async def get_queue_status(self, now: float | None = None) -> QueueStatus:
        """即时队列的近似计数"""
        now = time.time() if now is None else now
        cursor = await self._conn.execute(
            """
            SELECT
                COALESCE(SUM(CASE WHEN visible_at <= ? THEN 1 ELSE 0 END), 0),
                COALESCE(SUM(CASE WHEN visible_at > ? AND in_flight = 0 THEN 1 ELSE 0 END), 0),
                COALESCE(SUM(CASE WHEN visible_at > ? AND in_flight = 1 THEN 1 ELSE 0 END), 0)
            FROM task_queue
            """,
            (now, now, now),
        )
        row = await cursor.fetchone()
        cursor = await self._conn.execute(
            "SELECT COUNT(*) FROM delayed_executions WHERE status = 'RUNNING'"
        )
        pending = await cursor.fetchone()
        return QueueStatus(
            tasks=row[0],
            delayed_tasks=row[1],
            not_visible_tasks=row[2],
            pending_executions=pending[0],
        )

    async def receive(
        self,
        max_messages: int = 10,
        visibility_timeout: int | None = None,
        now: float | None = None,
    ) -> list[ReceivedMessage]:
        """领取可见消息，并在可见性超时内对其他消费者隐藏"""
        now = time.time() if now is None else now
        timeout = self._visibility_timeout if visibility_timeout is None else visibility_timeout
        try:
            cursor = await self._conn.execute(
                """
                SELECT message_id, body, receive_count FROM task_queue
                WHERE visible_at <= ?
                ORDER BY visible_at, message_id
                LIMIT ?
                """,
                (now, max_messages),
            )
            rows = await cursor.fetchall()
            for row in rows:
                await self._conn.execute(
                    """
                    UPDATE task_queue
                    SET visible_at = ?, in_flight = 1, receive_count = receive_count + 1
                    WHERE message_id = ?
                    """,
                    (now + timeout, row[0]),
                )
            await self._conn.commit()
        except Exception:
            await self._conn.rollback()
            raise

        return [
            ReceivedMessage(message_id=row[0], task=load_task(row[1]), receive_count=row[2] + 1)
            for row in rows
        ]

    async def delete(self, message_id: str) -> None:
        """确认处理完成，删除消息"""
        try:
            await self._conn.execute(
                "DELETE FROM task_queue WHERE message_id = ?",
                (message_id,),
            )
            await self._conn.commit()
        except Exception:
            await self._conn.rollback()
            raise

    async def release_due_executions(self, now: float | None = None) -> list[str]:
        """把到期的延迟执行转入即时队列

        Returns:
            新入队的消息 ID
        """
        now = time.time() if now is None else now
        cursor = await self._conn.execute(
            """
            SELECT name, input FROM delayed_executions
            WHERE status = 'RUNNING' AND fire_at <= ?
            ORDER BY fire_at, name
            """,
            (now,),
        )
        rows = await cursor.fetchall()

        message_ids: list[str] = []
        for row in rows:
            body = json.loads(row[1])["task"]
            message_id = str(ULID())
            try:
                await self._conn.execute(
                    """
                    INSERT INTO task_queue (message_id, body, sent_at, visible_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (message_id, body, now, now),
                )
                await self._conn.execute(
                    "UPDATE delayed_executions SET status = 'SUCCEEDED' WHERE name = ?",
                    (row[0],),
                )
                await self._conn.commit()
            except Exception:
                await self._conn.rollback()
                raise
            log.info("delayed_task_released", execution=row[0], message_id=message_id)
            message_ids.append(message_id)
        return message_ids

    async def _send(self, body: str, sent_at: float, visible_at: float) -> str:
        message_id = str(ULID())
        try:
            await self._conn.execute(
                """
                INSERT INTO task_queue (message_id, body, sent_at, visible_at)
                VALUES (?, ?, ?, ?)
                """,
                (message_id, body, sent_at, visible_at),
            )
            await self._conn.commit()
        except Exception:
            await self._conn.rollback()
            raise
        return message_id

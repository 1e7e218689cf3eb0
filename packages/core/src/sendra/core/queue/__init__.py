"""Sendra Core Queue -- 任务分发（即时队列 + 延迟执行设施）"""

from .task_queue import QueueStatus, ReceivedMessage, SqliteTaskQueue

__all__ = [
    "SqliteTaskQueue",
    "QueueStatus",
    "ReceivedMessage",
]

"""协作方 Protocol 接口定义

定义任务分发器与指标记录器的抽象接口，
使用 Python Protocol 实现结构化子类型（duck typing）。
"""

from typing import Protocol

from ..models.task import BatchDeleteRelatedTask, SendEmailTask


class TaskDispatcher(Protocol):
    """任务分发接口

    delaySeconds 超过阈值的任务进入延迟执行设施，其余直接入队。
    """

    async def add_task(self, task: SendEmailTask | BatchDeleteRelatedTask) -> str:
        """提交任务，返回消息 ID 或延迟执行名"""
        ...


class MetricsRecorder(Protocol):
    """计数指标记录接口（每次 trigger 调用一个实例）"""

    def add_metric(self, name: str, value: int) -> None:
        """记录一个计数指标"""
        ...

    def flush(self) -> None:
        """输出本次调用累积的指标"""
        ...

"""Task Domain Model -- 异步执行的工作单元

按 type 区分的联合类型；投递语义为至少一次，消费者需自行保证幂等。
"""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator
from pydantic.alias_generators import to_camel


class _TaskModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SendEmailPayload(_TaskModel):
    """sendEmail 任务 payload"""

    email: str | None = Field(default=None, description="已有 Email ID")
    action: str | None = Field(default=None, description="来源 Action ID")
    campaign: str | None = Field(default=None, description="来源 Campaign ID")
    contact: str = Field(description="收件 Contact ID")
    project: str = Field(description="Project ID")


class BatchDeleteRelatedPayload(_TaskModel):
    """batchDeleteRelated 任务 payload

    PROJECT/USER 只需 id；EVENT 额外携带所属 project。
    """

    type: Literal["PROJECT", "USER", "EVENT"] = Field(
        default="PROJECT",
        description="被删除对象类型",
    )
    id: str = Field(description="被删除对象 ID")
    project: str | None = Field(default=None, description="EVENT 所属 Project ID")

    @model_validator(mode="after")
    def _check_event_project(self) -> "BatchDeleteRelatedPayload":
        if self.type == "EVENT" and self.project is None:
            raise ValueError("EVENT 类型需要 project")
        return self


class SendEmailTask(_TaskModel):
    """发送邮件任务"""

    type: Literal["sendEmail"] = "sendEmail"
    delay_seconds: int | None = Field(default=None, ge=0, description="延迟秒数")
    payload: SendEmailPayload


class BatchDeleteRelatedTask(_TaskModel):
    """级联删除关联数据任务"""

    type: Literal["batchDeleteRelated"] = "batchDeleteRelated"
    delay_seconds: int | None = Field(default=None, ge=0, description="延迟秒数")
    payload: BatchDeleteRelatedPayload


Task = Annotated[SendEmailTask | BatchDeleteRelatedTask, Field(discriminator="type")]

TaskAdapter: TypeAdapter[Task] = TypeAdapter(Task)


def dump_task(task: SendEmailTask | BatchDeleteRelatedTask) -> str:
    """序列化任务为队列消息体"""
    return task.model_dump_json(by_alias=True, exclude_none=True)


def load_task(body: str) -> SendEmailTask | BatchDeleteRelatedTask:
    """从队列消息体解析任务"""
    return TaskAdapter.validate_json(body)

"""Sendra Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .action import Action
from .base import BaseEntity, DataValue, ProjectEntity
from .contact import Contact
from .email import Email
from .enums import (
    BUILTIN_EVENT_TYPES,
    BuiltinEventType,
    EmailStatus,
    RelationType,
    TaskType,
    TemplateType,
    is_builtin_event_type,
)
from .event import Event
from .project import Project
from .task import (
    BatchDeleteRelatedPayload,
    BatchDeleteRelatedTask,
    SendEmailPayload,
    SendEmailTask,
    Task,
    TaskAdapter,
    dump_task,
    load_task,
)
from .template import Template

__all__ = [
    # 枚举
    "TemplateType",
    "RelationType",
    "EmailStatus",
    "TaskType",
    "BuiltinEventType",
    "BUILTIN_EVENT_TYPES",
    "is_builtin_event_type",
    # 实体
    "BaseEntity",
    "ProjectEntity",
    "DataValue",
    "Project",
    "Contact",
    "Action",
    "Event",
    "Template",
    "Email",
    # Task
    "Task",
    "TaskAdapter",
    "SendEmailTask",
    "SendEmailPayload",
    "BatchDeleteRelatedTask",
    "BatchDeleteRelatedPayload",
    "dump_task",
    "load_task",
]

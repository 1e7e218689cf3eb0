"""枚举定义

包含模板类型、事件关联类型、邮件状态、任务类型枚举，
以及内置（开箱即用）事件类型集合。
"""

from enum import StrEnum


class TemplateType(StrEnum):
    """模板发送类型"""

    MARKETING = "MARKETING"
    TRANSACTIONAL = "TRANSACTIONAL"


class RelationType(StrEnum):
    """事件关联对象类型"""

    ACTION = "ACTION"
    CAMPAIGN = "CAMPAIGN"


class EmailStatus(StrEnum):
    """邮件投递状态"""

    SENT = "SENT"
    DELIVERED = "DELIVERED"
    OPENED = "OPENED"
    BOUNCED = "BOUNCED"
    COMPLAINT = "COMPLAINT"


class TaskType(StrEnum):
    """任务类型"""

    SEND_EMAIL = "sendEmail"
    BATCH_DELETE_RELATED = "batchDeleteRelated"


class BuiltinEventType(StrEnum):
    """内置事件类型 -- 不登记到 project.eventTypes"""

    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    EMAIL_SENT = "email.sent"
    EMAIL_DELIVERED = "email.delivered"
    EMAIL_OPENED = "email.opened"
    EMAIL_CLICKED = "email.clicked"
    EMAIL_BOUNCED = "email.bounced"
    EMAIL_COMPLAINED = "email.complained"


BUILTIN_EVENT_TYPES: frozenset[str] = frozenset(e.value for e in BuiltinEventType)


def is_builtin_event_type(event_type: str) -> bool:
    """判断事件类型是否为内置类型"""
    return event_type in BUILTIN_EVENT_TYPES

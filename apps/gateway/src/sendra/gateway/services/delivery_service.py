"""DeliveryService -- 投递回执处理

投递服务的通知已在路由层转换为与服务商无关的 (message_id, kind)。
处理流程：
1. 通过全局索引按 messageId 找到 Email 记录
2. 更新投递状态
3. 记录 email.* 内置事件
4. 退信/投诉时将联系人退订
5. 调用规则引擎 trigger
"""

from enum import StrEnum

import structlog
from sendra.core.exceptions import NotFoundError
from sendra.core.models import BuiltinEventType, EmailStatus, Event
from sendra.core.services import ActionsService
from sendra.core.store import StoreGroup

log = structlog.get_logger()


class DeliveryKind(StrEnum):
    """投递通知类型"""

    DELIVERY = "delivery"
    OPEN = "open"
    CLICK = "click"
    BOUNCE = "bounce"
    COMPLAINT = "complaint"


# 通知类型 -> (新状态, 事件类型)；状态为 None 表示不变
_DELIVERY_MAPPING: dict[DeliveryKind, tuple[EmailStatus | None, BuiltinEventType]] = {
    DeliveryKind.DELIVERY: (EmailStatus.DELIVERED, BuiltinEventType.EMAIL_DELIVERED),
    DeliveryKind.OPEN: (EmailStatus.OPENED, BuiltinEventType.EMAIL_OPENED),
    DeliveryKind.CLICK: (None, BuiltinEventType.EMAIL_CLICKED),
    DeliveryKind.BOUNCE: (EmailStatus.BOUNCED, BuiltinEventType.EMAIL_BOUNCED),
    DeliveryKind.COMPLAINT: (EmailStatus.COMPLAINT, BuiltinEventType.EMAIL_COMPLAINED),
}

_UNSUBSCRIBING_KINDS = frozenset({DeliveryKind.BOUNCE, DeliveryKind.COMPLAINT})


class DeliveryService:
    """投递回执业务服务"""

    def __init__(self, store_group: StoreGroup, actions_service: ActionsService) -> None:
        self._stores = store_group
        self._actions = actions_service

    async def handle(self, message_id: str, kind: DeliveryKind) -> Event:
        """处理一条投递通知

        Returns:
            记录的 email.* 事件

        Raises:
            NotFoundError: messageId 对应的 Email / Contact / Project 不存在
        """
        email = await self._stores.emails().get_by_message_id(message_id)
        if email is None:
            raise NotFoundError("EMAIL", message_id)

        project_id = email.project
        project = await self._stores.projects().get(project_id)
        if project is None:
            raise NotFoundError("PROJECT", project_id)
        contacts = self._stores.contacts(project_id)
        contact = await contacts.get(email.contact)
        if contact is None:
            raise NotFoundError("CONTACT", email.contact)

        status, event_type = _DELIVERY_MAPPING[kind]
        if status is not None and email.status != status:
            email = await self._stores.emails(project_id).put(
                email.model_copy(update={"status": status})
            )

        if kind in _UNSUBSCRIBING_KINDS and contact.subscribed:
            contact = await contacts.put(contact.model_copy(update={"subscribed": False}))
            log.info("contact_unsubscribed", project_id=project_id, contact_id=contact.id, reason=kind.value)

        event = await self._stores.events(project_id).create(
            {
                "event_type": event_type.value,
                "contact": contact.id,
                "email": email.id,
            }
        )
        await self._actions.trigger(event_type.value, contact, project)

        log.info(
            "delivery_notification_handled",
            project_id=project_id,
            message_id=message_id,
            kind=kind.value,
            email_id=email.id,
        )
        return event

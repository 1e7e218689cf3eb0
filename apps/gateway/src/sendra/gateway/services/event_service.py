"""EventService -- 自定义事件追踪

实现 track 接口的业务流程：
1. 校验 Project 存在
2. 按邮箱查找或创建 Contact，合并 data、同步订阅状态
3. 订阅状态变化时记录 subscribe/unsubscribe 内置事件并触发规则
4. 写入自定义事件
5. 调用规则引擎 trigger
"""

from typing import Any

import structlog
from sendra.core.exceptions import NotFoundError
from sendra.core.models import BuiltinEventType, Contact, Event, Project
from sendra.core.services import ActionsService
from sendra.core.store import StoreGroup

log = structlog.get_logger()


class EventService:
    """事件追踪业务服务"""

    def __init__(self, store_group: StoreGroup, actions_service: ActionsService) -> None:
        self._stores = store_group
        self._actions = actions_service

    async def track(
        self,
        project_id: str,
        email: str,
        event_type: str,
        subscribed: bool | None = None,
        data: dict[str, Any] | None = None,
        transient_data: dict[str, Any] | None = None,
    ) -> tuple[Contact, Event]:
        """追踪一次联系人事件

        Args:
            project_id: 项目 ID
            email: 联系人邮箱（不存在时自动创建联系人）
            event_type: 已规范化的事件类型
            subscribed: 非 None 时同步联系人订阅状态
            data: 合并进联系人 data 的属性
            transient_data: 只写入事件、不落到联系人上的属性

        Returns:
            (contact, event)

        Raises:
            NotFoundError: Project 不存在
        """
        project = await self._stores.projects().get(project_id)
        if project is None:
            raise NotFoundError("PROJECT", project_id)

        contact, subscription_changed = await self._upsert_contact(
            project_id, email, subscribed, data
        )

        # 订阅状态变化本身也是一次事件
        if subscription_changed:
            builtin = (
                BuiltinEventType.SUBSCRIBE if contact.subscribed else BuiltinEventType.UNSUBSCRIBE
            )
            await self._record_and_trigger(builtin.value, contact, project)

        event = await self._record_and_trigger(
            event_type,
            contact,
            project,
            data={**contact.data, **(transient_data or {})},
        )

        log.info(
            "event_tracked",
            project_id=project_id,
            event_type=event_type,
            contact_id=contact.id,
        )
        return contact, event

    async def _upsert_contact(
        self,
        project_id: str,
        email: str,
        subscribed: bool | None,
        data: dict[str, Any] | None,
    ) -> tuple[Contact, bool]:
        contacts = self._stores.contacts(project_id)
        contact = await contacts.get_by_email(email)

        if contact is None:
            contact = await contacts.create(
                {
                    "email": email,
                    "subscribed": True if subscribed is None else subscribed,
                    "data": data or {},
                }
            )
            log.info("contact_created", project_id=project_id, contact_id=contact.id)
            return contact, False

        subscription_changed = subscribed is not None and contact.subscribed != subscribed
        if not subscription_changed and not data:
            return contact, False

        updated = contact.model_copy(
            update={
                "subscribed": contact.subscribed if subscribed is None else subscribed,
                "data": {**contact.data, **(data or {})},
            }
        )
        return await contacts.put(updated), subscription_changed

    async def _record_and_trigger(
        self,
        event_type: str,
        contact: Contact,
        project: Project,
        data: dict[str, Any] | None = None,
    ) -> Event:
        event = await self._stores.events(project.id).create(
            {
                "event_type": event_type,
                "contact": contact.id,
                "data": data,
            }
        )
        await self._actions.trigger(event_type, contact, project)
        return event

"""请求级服务装配

StoreGroup 与 ActionsService 在 lifespan 中创建并挂在 app.state 上；
路由通过 Depends 拿到按请求组装好的业务服务。
"""

from fastapi import Depends, Request
from sendra.core.services import ActionsService
from sendra.core.store import StoreGroup

from .services.delivery_service import DeliveryService
from .services.event_service import EventService


def get_store_group(request: Request) -> StoreGroup:
    return request.app.state.store_group


def get_actions_service(request: Request) -> ActionsService:
    return request.app.state.actions_service


def get_event_service(
    store_group: StoreGroup = Depends(get_store_group),
    actions_service: ActionsService = Depends(get_actions_service),
) -> EventService:
    """/track 使用的事件写入服务"""
    return EventService(store_group, actions_service)


def get_delivery_service(
    store_group: StoreGroup = Depends(get_store_group),
    actions_service: ActionsService = Depends(get_actions_service),
) -> DeliveryService:
    """投递回执使用的 email.* 事件转换服务"""
    return DeliveryService(store_group, actions_service)

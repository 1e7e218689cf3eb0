"""投递回执路由

POST /webhooks/delivery: 接收与服务商无关的投递通知
（delivery / open / click / bounce / complaint），转换为 email.* 事件。
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..deps import get_delivery_service
from ..services.delivery_service import DeliveryKind, DeliveryService

router = APIRouter()


class DeliveryNotification(BaseModel):
    """投递通知请求体"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    message_id: str = Field(min_length=1, description="投递服务返回的消息 ID")
    event: DeliveryKind = Field(description="通知类型")


class DeliveryResponse(BaseModel):
    """投递通知处理结果"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    email: str
    event_type: str
    event: str


@router.post(
    "/webhooks/delivery",
    response_model=DeliveryResponse,
    response_model_by_alias=True,
)
async def delivery_webhook(
    body: DeliveryNotification,
    service: DeliveryService = Depends(get_delivery_service),
):
    """处理投递通知

    - messageId 未知返回 404
    """
    event = await service.handle(body.message_id, body.event)
    return DeliveryResponse(
        success=True,
        email=event.email or "",
        event_type=event.event_type,
        event=event.id,
    )

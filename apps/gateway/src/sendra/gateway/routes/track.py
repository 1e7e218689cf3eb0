"""事件追踪路由

POST /projects/{project_id}/track: 记录联系人自定义事件并触发自动化规则。
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from sendra.core.models import DataValue

from ..deps import get_event_service
from ..services.event_service import EventService

router = APIRouter()


class TrackRequest(BaseModel):
    """事件追踪请求体"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+$", description="联系人邮箱")
    event: str = Field(min_length=1, description="事件名，规范化为小写、空格替换为 -")
    subscribed: bool | None = Field(default=None, description="同步联系人订阅状态")
    data: dict[str, DataValue] | None = Field(default=None, description="联系人属性")
    transient_data: dict[str, DataValue] | None = Field(
        default=None,
        description="只写入事件的临时属性",
    )

    @field_validator("event")
    @classmethod
    def normalize_event(cls, value: str) -> str:
        return value.lower().replace(" ", "-")


class TrackResponse(BaseModel):
    """事件追踪响应"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    contact: str
    event_type: str
    event: str
    timestamp: datetime


@router.post(
    "/projects/{project_id}/track",
    response_model=TrackResponse,
    response_model_by_alias=True,
)
async def track_event(
    project_id: str,
    body: TrackRequest,
    service: EventService = Depends(get_event_service),
):
    """追踪事件

    - Project 不存在返回 404
    """
    contact, event = await service.track(
        project_id,
        email=body.email,
        event_type=body.event,
        subscribed=body.subscribed,
        data=body.data,
        transient_data=body.transient_data,
    )
    return TrackResponse(
        success=True,
        contact=contact.id,
        event_type=event.event_type,
        event=event.id,
        timestamp=datetime.now(UTC),
    )

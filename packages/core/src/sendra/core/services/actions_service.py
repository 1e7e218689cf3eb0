"""ActionsService -- 自动化规则引擎

对每个新观察到的 (事件类型, 联系人, 项目) 三元组：
1. 登记自定义事件类型（原子集合并，与规则评估解耦）
2. 加载 events 包含该类型的候选规则
3. 加载联系人完整事件历史
4. 对每条规则按固定顺序过闸：
   RunOnce -> 排除事件 -> 完整性 -> 审计写入 -> 模板 -> 订阅状态 -> 入队

规则不匹配只计数不抛异常；存储与队列错误向上传播，中止剩余规则的评估。
"""

from collections.abc import Callable
from enum import StrEnum

import structlog

from ..exceptions import ConditionFailedError
from ..models import (
    Action,
    Contact,
    Event,
    Project,
    RelationType,
    SendEmailPayload,
    SendEmailTask,
    TemplateType,
    is_builtin_event_type,
)
from ..store import StoreGroup
from ..store.protocols import MetricsRecorder, TaskDispatcher
from .metrics import MetricsLogger

log = structlog.get_logger()

ACTIONS_EVALUATED = "ActionsEvaluated"
ACTIONS_TRIGGERED = "ActionsTriggered"


class SkipReason(StrEnum):
    """规则被跳过的原因（同时作为计数指标名）"""

    RUN_ONCE = "RunOnce"
    NOT_EVENTS = "NotEvents"
    INCOMPLETE_TRIGGERS = "IncompleteTriggers"
    UNSUBSCRIBED = "Unsubscribed"
    NO_TEMPLATE = "NoTemplate"


def _is_trigger_of(event: Event, action: Action) -> bool:
    return event.relation == action.id and event.relation_type == RelationType.ACTION


def check_completeness(action: Action, history: list[Event]) -> bool:
    """完整性闸门

    只看类型属于 action.events 的事件（包括其他规则写入的审计事件）；
    规则曾对该联系人触发过时，只统计最近一次触发之后的事件。
    窗口内出现的类型集合必须与 action.events 完全相等。
    """
    previous = [e.created_at for e in history if _is_trigger_of(e, action)]
    since = max(previous) if previous else None

    required = set(action.events)
    seen = {
        e.event_type
        for e in history
        if e.event_type in required
        and (since is None or e.created_at > since)
    }
    return sorted(seen) == sorted(required)


class ActionsService:
    """自动化规则引擎"""

    def __init__(
        self,
        store_group: StoreGroup,
        dispatcher: TaskDispatcher | None = None,
        metrics_factory: Callable[[], MetricsRecorder] = MetricsLogger,
    ) -> None:
        self._stores = store_group
        self._dispatcher = dispatcher or store_group.task_queue
        self._metrics_factory = metrics_factory

    async def trigger(self, event_type: str, contact: Contact, project: Project) -> None:
        """评估项目内所有相关规则，对通过的规则入队 sendEmail 任务

        调用方需先把触发事件写入联系人历史。
        自定义事件类型在评估规则之前登记，即使没有规则通过完整性闸门也会登记。

        Args:
            event_type: 新观察到的事件类型
            contact: 联系人
            project: 所属项目（eventTypes 会被就地更新）
        """
        metrics = self._metrics_factory()
        counters = {ACTIONS_EVALUATED: 0, ACTIONS_TRIGGERED: 0}
        counters.update({reason.value: 0 for reason in SkipReason})
        bound_log = log.bind(project_id=project.id, contact_id=contact.id, event_type=event_type)

        try:
            # 1. 事件类型登记（每次调用一次，独立于规则评估）
            await self._register_event_type(event_type, project)

            # 2. 候选规则 + 联系人历史
            actions = await self._stores.actions(project.id).list_by_event_type(event_type)
            history = await self._stores.events(project.id).get_history(contact.id)

            # 3. 逐条过闸
            for action in actions:
                counters[ACTIONS_EVALUATED] += 1
                reason = await self._evaluate(action, event_type, contact, project, history)
                if reason is None:
                    counters[ACTIONS_TRIGGERED] += 1
                else:
                    counters[reason.value] += 1
                    bound_log.debug("action_skipped", action_id=action.id, reason=reason.value)
        finally:
            for name, value in counters.items():
                metrics.add_metric(name, value)
            metrics.flush()

    async def _register_event_type(self, event_type: str, project: Project) -> None:
        if is_builtin_event_type(event_type) or event_type in project.event_types:
            return
        await self._stores.projects().register_event_type(project.id, event_type)
        project.event_types.append(event_type)

    async def _evaluate(
        self,
        action: Action,
        event_type: str,
        contact: Contact,
        project: Project,
        history: list[Event],
    ) -> SkipReason | None:
        """单条规则过闸，返回跳过原因；None 表示已入队"""
        # a. RunOnce
        if action.run_once and any(_is_trigger_of(e, action) for e in history):
            return SkipReason.RUN_ONCE

        # b. 排除事件：全历史，无时间窗口
        if action.notevents and any(e.event_type in action.notevents for e in history):
            return SkipReason.NOT_EVENTS

        # c. 完整性
        if not check_completeness(action, history):
            return SkipReason.INCOMPLETE_TRIGGERS

        # d. 审计写入（先于模板与订阅闸门）
        fields = {
            "event_type": event_type,
            "contact": contact.id,
            "relation": action.id,
            "relation_type": RelationType.ACTION,
        }
        events = self._stores.events(project.id)
        if action.run_once:
            # 以 (action, contact) 为幂等键条件创建，并发触发只有一个成功
            try:
                await events.create(fields, idempotency_key=f"{action.id}#{contact.id}")
            except ConditionFailedError:
                return SkipReason.RUN_ONCE
        else:
            await events.create(fields)

        # e. 模板
        template = await self._stores.templates(project.id).get(action.template)
        if template is None:
            log.error(
                "template_not_found",
                project_id=project.id,
                action_id=action.id,
                template_id=action.template,
            )
            return SkipReason.NO_TEMPLATE

        # f. 订阅状态：仅约束营销模板
        if not contact.subscribed and template.template_type == TemplateType.MARKETING:
            return SkipReason.UNSUBSCRIBED

        # g. 入队
        task = SendEmailTask(
            delay_seconds=action.delay * 60,
            payload=SendEmailPayload(action=action.id, contact=contact.id, project=project.id),
        )
        task_id = await self._dispatcher.add_task(task)
        log.info(
            "action_triggered",
            project_id=project.id,
            action_id=action.id,
            contact_id=contact.id,
            task_id=task_id,
        )
        return None

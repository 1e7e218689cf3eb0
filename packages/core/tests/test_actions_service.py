"""自动化规则引擎测试

测试内容：
1. 完整性闸门：窗口内类型集合与必需集合精确相等
2. 订阅闸门：营销模板受约束，事务模板不受约束
3. RunOnce：顺序触发与并发条件写入
4. 排除事件：全历史生效
5. 模板缺失、延迟换算、事件类型登记、计数指标
"""

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
import structlog
from sendra.core.models import Action, Contact, Event, Project, RelationType, SendEmailTask
from sendra.core.services import ActionsService, MetricsLogger, SkipReason
from sendra.core.services import metrics as metrics_module
from sendra.core.services.actions_service import check_completeness
from sendra.core.store import StoreGroup


class RecordingMetrics:
    """记录每次 trigger 的指标输出"""

    def __init__(self) -> None:
        self.metrics: dict[str, int] = {}
        self.flushed = False

    def add_metric(self, name: str, value: int) -> None:
        self.metrics[name] = self.metrics.get(name, 0) + value

    def flush(self) -> None:
        self.flushed = True


@pytest_asyncio.fixture
async def dispatcher() -> AsyncMock:
    mock = AsyncMock()
    mock.add_task.return_value = "message-1"
    return mock


@pytest_asyncio.fixture
async def recorded() -> list[RecordingMetrics]:
    return []


@pytest_asyncio.fixture
async def service(store_group: StoreGroup, dispatcher: AsyncMock, recorded) -> ActionsService:
    def factory() -> RecordingMetrics:
        metrics = RecordingMetrics()
        recorded.append(metrics)
        return metrics

    return ActionsService(store_group, dispatcher=dispatcher, metrics_factory=factory)


async def _make_contact(store_group: StoreGroup, project: Project, subscribed: bool = True) -> Contact:
    return await store_group.contacts(project.id).create(
        {"email": "user@example.com", "subscribed": subscribed}
    )


async def _make_action(
    store_group: StoreGroup,
    project: Project,
    events: list[str],
    notevents: list[str] | None = None,
    run_once: bool = False,
    template_type: str | None = "TRANSACTIONAL",
    delay: int = 0,
) -> Action:
    template_id = "missing-template"
    if template_type is not None:
        template = await store_group.templates(project.id).create(
            {"subject": "欢迎", "body": "<p>hi</p>", "template_type": template_type}
        )
        template_id = template.id
    return await store_group.actions(project.id).create(
        {
            "name": "欢迎邮件",
            "events": events,
            "notevents": notevents or [],
            "run_once": run_once,
            "template": template_id,
            "delay": delay,
        }
    )


async def _record(store_group: StoreGroup, project: Project, contact: Contact, event_type: str) -> None:
    await store_group.events(project.id).create({"event_type": event_type, "contact": contact.id})


def _sent_tasks(dispatcher: AsyncMock) -> list[SendEmailTask]:
    return [call.args[0] for call in dispatcher.add_task.await_args_list]


class TestCompleteness:
    """完整性闸门"""

    async def test_single_event_transactional_unsubscribed_triggers(
        self, store_group, project, service, dispatcher
    ):
        """事务模板 + 已退订联系人：仍然触发，delaySeconds=0"""
        contact = await _make_contact(store_group, project, subscribed=False)
        action = await _make_action(store_group, project, ["signup"], template_type="TRANSACTIONAL")
        await _record(store_group, project, contact, "signup")

        await service.trigger("signup", contact, project)

        tasks = _sent_tasks(dispatcher)
        assert len(tasks) == 1
        assert tasks[0].type == "sendEmail"
        assert tasks[0].delay_seconds == 0
        assert tasks[0].payload.action == action.id
        assert tasks[0].payload.contact == contact.id
        assert tasks[0].payload.project == project.id

    async def test_subset_then_complete(self, store_group, project, service, dispatcher):
        """必需集合 [a, b]：只有 a 不触发，补齐 b 后触发"""
        contact = await _make_contact(store_group, project)
        await _make_action(store_group, project, ["a", "b"])

        await _record(store_group, project, contact, "a")
        await service.trigger("a", contact, project)
        assert dispatcher.add_task.await_count == 0

        await _record(store_group, project, contact, "b")
        await service.trigger("b", contact, project)
        assert dispatcher.add_task.await_count == 1

    async def test_unrelated_types_filtered_before_comparison(self, project):
        """窗口先按 action.events 过滤，无关类型不参与集合比较"""
        now = project.created_at
        action = Action(
            id="action-1",
            project=project.id,
            name="r",
            template="t",
            events=["a", "b"],
            created_at=now,
            updated_at=now,
        )

        def event(event_type: str) -> Event:
            return Event(
                id=f"event-{event_type}",
                project=project.id,
                event_type=event_type,
                contact="contact-1",
                created_at=now,
                updated_at=now,
            )

        assert check_completeness(action, [event("a")]) is False
        assert check_completeness(action, [event("a"), event("b")]) is True
        assert check_completeness(action, [event("a"), event("b"), event("c")]) is True

    async def test_repeatable_action_needs_new_events(
        self, store_group, project, service, dispatcher, recorded
    ):
        """非 runOnce 规则：上次触发后没有新事件时不再触发"""
        contact = await _make_contact(store_group, project)
        await _make_action(store_group, project, ["a"])
        await _record(store_group, project, contact, "a")

        await service.trigger("a", contact, project)
        await service.trigger("a", contact, project)
        assert dispatcher.add_task.await_count == 1
        assert recorded[-1].metrics[SkipReason.INCOMPLETE_TRIGGERS.value] == 1

        await _record(store_group, project, contact, "a")
        await service.trigger("a", contact, project)
        assert dispatcher.add_task.await_count == 2

    async def test_audit_events_of_other_rules_fill_window(
        self, store_group, project, service, dispatcher
    ):
        """其他规则写入的同类型审计事件同样计入窗口"""
        contact = await _make_contact(store_group, project)
        action = await _make_action(store_group, project, ["a", "b"])
        await _record(store_group, project, contact, "a")
        await _record(store_group, project, contact, "b")
        await service.trigger("b", contact, project)
        assert dispatcher.add_task.await_count == 1

        # 另一条规则随后对同一联系人写入 eventType=b 的审计事件
        await store_group.events(project.id).create(
            {
                "event_type": "b",
                "contact": contact.id,
                "relation": "other-action",
                "relation_type": "ACTION",
            }
        )
        await _record(store_group, project, contact, "a")
        await service.trigger("a", contact, project)

        assert dispatcher.add_task.await_count == 2
        audits = await store_group.events(project.id).find_all_by("relation", action.id)
        assert len(audits) == 2



class TestSubscription:
    """订阅闸门"""

    async def test_marketing_template_unsubscribed_skipped(
        self, store_group, project, service, dispatcher, recorded
    ):
        """营销模板 + 已退订：不入队，但审计事件已写入"""
        contact = await _make_contact(store_group, project, subscribed=False)
        action = await _make_action(store_group, project, ["signup"], template_type="MARKETING")
        await _record(store_group, project, contact, "signup")

        await service.trigger("signup", contact, project)

        assert dispatcher.add_task.await_count == 0
        assert recorded[-1].metrics[SkipReason.UNSUBSCRIBED.value] == 1
        audits = await store_group.events(project.id).find_all_by("relation", action.id)
        assert len(audits) == 1


class TestRunOnce:
    """RunOnce 规则"""

    async def test_second_trigger_skipped(self, store_group, project, service, dispatcher, recorded):
        """第一次触发 1 个任务 + 1 条审计事件，第二次不再入队"""
        contact = await _make_contact(store_group, project)
        action = await _make_action(store_group, project, ["a"], run_once=True)
        await _record(store_group, project, contact, "a")

        await service.trigger("a", contact, project)
        audits = await store_group.events(project.id).find_all_by("relation", action.id)
        assert len(audits) == 1
        assert audits[0].relation_type == RelationType.ACTION
        assert audits[0].contact == contact.id

        await _record(store_group, project, contact, "a")
        await service.trigger("a", contact, project)

        assert dispatcher.add_task.await_count == 1
        assert recorded[-1].metrics[SkipReason.RUN_ONCE.value] == 1

    async def test_conditional_audit_write_closes_race(self, store_group, project, service, dispatcher):
        """历史读取之后另一个调用已写入审计事件：条件写入失败，按 RunOnce 跳过"""
        contact = await _make_contact(store_group, project)
        action = await _make_action(store_group, project, ["a"], run_once=True)
        await _record(store_group, project, contact, "a")
        history = await store_group.events(project.id).get_history(contact.id)

        # 并发的另一次触发抢先写入
        await store_group.events(project.id).create(
            {
                "event_type": "a",
                "contact": contact.id,
                "relation": action.id,
                "relation_type": "ACTION",
            },
            idempotency_key=f"{action.id}#{contact.id}",
        )

        reason = await service._evaluate(action, "a", contact, project, history)

        assert reason == SkipReason.RUN_ONCE
        assert dispatcher.add_task.await_count == 0


class TestExclusion:
    """排除事件"""

    @pytest.mark.parametrize("order", [("a", "x"), ("x", "a")])
    async def test_notevent_anywhere_in_history_blocks(
        self, store_group, project, service, dispatcher, recorded, order
    ):
        """历史中出现 notevents 类型，无论先后都不触发"""
        contact = await _make_contact(store_group, project)
        await _make_action(store_group, project, ["a"], notevents=["x"])
        for event_type in order:
            await _record(store_group, project, contact, event_type)

        await service.trigger("a", contact, project)

        assert dispatcher.add_task.await_count == 0
        assert recorded[-1].metrics[SkipReason.NOT_EVENTS.value] == 1

    async def test_notevent_before_previous_trigger_blocks(
        self, store_group, project, service, dispatcher, recorded
    ):
        """x 早于上次触发的审计事件，仍然阻止可重复规则再次触发"""
        contact = await _make_contact(store_group, project)
        action = await _make_action(store_group, project, ["a"])
        await _record(store_group, project, contact, "x")
        await _record(store_group, project, contact, "a")
        await service.trigger("a", contact, project)
        assert dispatcher.add_task.await_count == 1

        # 规则随后被编辑，加入排除事件 x
        await store_group.actions(project.id).put(action.model_copy(update={"notevents": ["x"]}))
        await _record(store_group, project, contact, "a")
        await service.trigger("a", contact, project)

        assert dispatcher.add_task.await_count == 1
        assert recorded[-1].metrics[SkipReason.NOT_EVENTS.value] == 1



class TestOtherGates:
    """模板、延迟、事件类型登记与指标"""

    async def test_missing_template_never_triggers(self, store_group, project, service, dispatcher, recorded):
        contact = await _make_contact(store_group, project)
        await _make_action(store_group, project, ["a"], template_type=None)
        await _record(store_group, project, contact, "a")

        await service.trigger("a", contact, project)

        assert dispatcher.add_task.await_count == 0
        assert recorded[-1].metrics[SkipReason.NO_TEMPLATE.value] == 1

    async def test_delay_minutes_converted_to_seconds(self, store_group, project, service, dispatcher):
        contact = await _make_contact(store_group, project)
        await _make_action(store_group, project, ["a"], delay=20)
        await _record(store_group, project, contact, "a")

        await service.trigger("a", contact, project)

        assert _sent_tasks(dispatcher)[0].delay_seconds == 1200

    async def test_event_type_registered_once(self, store_group, project, service):
        """自定义事件类型登记到 project.eventTypes，内置类型不登记"""
        contact = await _make_contact(store_group, project)

        await service.trigger("purchase", contact, project)
        await service.trigger("purchase", contact, project)
        await service.trigger("email.opened", contact, project)

        stored = await store_group.projects().get(project.id)
        assert stored.event_types == ["purchase"]
        assert project.event_types == ["purchase"]

    async def test_counters_emitted(self, store_group, project, service, recorded):
        """每次调用所有计数都会输出（包括 0）"""
        contact = await _make_contact(store_group, project)
        await _make_action(store_group, project, ["a"])
        await _make_action(store_group, project, ["other"])
        await _record(store_group, project, contact, "a")

        await service.trigger("a", contact, project)

        metrics = recorded[-1]
        assert metrics.flushed
        assert metrics.metrics == {
            "ActionsEvaluated": 1,
            "ActionsTriggered": 1,
            "RunOnce": 0,
            "NotEvents": 0,
            "IncompleteTriggers": 0,
            "Unsubscribed": 0,
            "NoTemplate": 0,
        }

    async def test_dispatcher_error_propagates(self, store_group, project, service, dispatcher, recorded):
        """队列错误中止评估并向上传播，指标仍然输出"""
        contact = await _make_contact(store_group, project)
        await _make_action(store_group, project, ["a"])
        await _record(store_group, project, contact, "a")
        dispatcher.add_task.side_effect = RuntimeError("queue unavailable")

        with pytest.raises(RuntimeError, match="queue unavailable"):
            await service.trigger("a", contact, project)

        assert recorded[-1].flushed
        assert recorded[-1].metrics["ActionsTriggered"] == 0


class TestMetricsLogger:
    def test_flush_logs_and_resets(self, monkeypatch):
        metrics = MetricsLogger()
        metrics.add_metric("ActionsEvaluated", 1)
        metrics.add_metric("ActionsEvaluated", 2)

        with structlog.testing.capture_logs() as logs:
            # 模块级 logger 可能已缓存，换成在捕获配置下新建的 logger
            monkeypatch.setattr(metrics_module, "log", structlog.get_logger())
            metrics.flush()

        assert logs[0]["event"] == "metrics_flushed"
        assert logs[0]["ActionsEvaluated"] == 3
        assert metrics.metrics == {}

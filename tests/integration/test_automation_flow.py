"""自动化链路端到端集成测试

track -> 规则触发 -> sendEmail 入队 -> 模拟发送方记录 Email
-> 投递回执 -> email.* 事件触发后续规则
"""

from httpx import AsyncClient
from sendra.core.models import RelationType, SendEmailTask


async def _setup_rules(store_group, project_id: str):
    welcome = await store_group.templates(project_id).create(
        {"subject": "欢迎", "body": "<p>welcome</p>", "template_type": "TRANSACTIONAL"}
    )
    follow_up = await store_group.templates(project_id).create(
        {"subject": "看看新功能", "body": "<p>news</p>", "template_type": "MARKETING"}
    )
    welcome_action = await store_group.actions(project_id).create(
        {"name": "欢迎", "template": welcome.id, "events": ["signup"], "run_once": True}
    )
    follow_up_action = await store_group.actions(project_id).create(
        {"name": "打开后跟进", "template": follow_up.id, "events": ["email.opened"], "delay": 10}
    )
    return welcome_action, follow_up_action


async def _deliver(store_group, task: SendEmailTask, message_id: str):
    """模拟发送方：为 sendEmail 任务记录 Email"""
    payload = task.payload
    return await store_group.emails(payload.project).create(
        {
            "contact": payload.contact,
            "message_id": message_id,
            "subject": "欢迎",
            "source": payload.action,
            "source_type": RelationType.ACTION,
        }
    )


class TestAutomationFlow:
    async def test_signup_to_follow_up(self, client: AsyncClient, integration_app):
        store_group = integration_app.state.store_group
        queue = store_group.task_queue
        project = await store_group.projects().create({"name": "集成测试项目"})
        welcome_action, follow_up_action = await _setup_rules(store_group, project.id)

        # 1. 注册事件 -> 欢迎规则入队
        resp = await client.post(
            f"/projects/{project.id}/track",
            json={"email": "alice@example.com", "event": "signup"},
        )
        assert resp.status_code == 200
        contact_id = resp.json()["contact"]

        [message] = await queue.receive()
        assert message.task.payload.action == welcome_action.id
        assert message.task.payload.contact == contact_id

        # 2. 发送方记录邮件并确认消息
        email = await _deliver(store_group, message.task, "provider-msg-1")
        await queue.delete(message.message_id)

        # 3. 重复注册不再触发 runOnce 规则
        await client.post(
            f"/projects/{project.id}/track",
            json={"email": "alice@example.com", "event": "signup"},
        )
        assert await queue.receive() == []

        # 4. 打开回执 -> 跟进规则入队（延迟 600 秒，低于阈值直接入队）
        resp = await client.post(
            "/webhooks/delivery",
            json={"messageId": "provider-msg-1", "event": "open"},
        )
        assert resp.status_code == 200
        assert resp.json()["email"] == email.id

        status = await queue.get_queue_status()
        assert status.delayed_tasks == 1
        assert status.pending_executions == 0

        # 5. 规则评估留下审计事件
        welcome_audits = await store_group.events(project.id).find_all_by("relation", welcome_action.id)
        follow_up_audits = await store_group.events(project.id).find_all_by(
            "relation", follow_up_action.id
        )
        assert len(welcome_audits) == 1
        assert len(follow_up_audits) == 1

        # 6. 自定义事件类型已登记
        stored = await store_group.projects().get(project.id)
        assert stored.event_types == ["signup"]

    async def test_bounce_blocks_marketing_follow_up(self, client: AsyncClient, integration_app):
        """退信后联系人退订，营销规则不再发送"""
        store_group = integration_app.state.store_group
        queue = store_group.task_queue
        project = await store_group.projects().create({"name": "集成测试项目"})
        marketing = await store_group.templates(project.id).create(
            {"subject": "促销", "body": "<p>sale</p>", "template_type": "MARKETING"}
        )
        await store_group.actions(project.id).create(
            {"name": "退信后挽回", "template": marketing.id, "events": ["email.bounced"]}
        )
        resp = await client.post(
            f"/projects/{project.id}/track",
            json={"email": "bob@example.com", "event": "visit"},
        )
        contact_id = resp.json()["contact"]
        await store_group.emails(project.id).create({"contact": contact_id, "message_id": "m-bounce"})

        await client.post("/webhooks/delivery", json={"messageId": "m-bounce", "event": "bounce"})

        assert await queue.receive() == []
        contact = await store_group.contacts(project.id).get(contact_id)
        assert contact.subscribed is False

"""关联嵌入 -- 按需为实体补充关联集合

每个条目对每个请求的关联各发起一次 find_all_by（N+1），
条目之间用 asyncio.gather 并发执行。结果挂在 entity.embedded 上。
"""

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any, Literal

from ..config import StoreConfig
from .base import E, StopFn
from .table import SqliteItemTable

EmbedLimit = Literal["standard", "extended", "all"]

_EMBED_LIMITS: dict[str, tuple[int, timedelta]] = {
    "standard": (250, timedelta(days=30)),
    "extended": (1000, timedelta(days=365)),
}

# 来自 action/campaign 的反查：Email 通过 source，Event 通过 relation
_SOURCE_KEYS = ("action", "campaign")


def get_embed_limit_function(limit: str, now: datetime | None = None) -> StopFn | None:
    """构造嵌入截断函数：超过条数上限或早于时间窗口即停止

    Returns:
        stop 函数；limit 为 all 时返回 None（不截断）
    """
    if limit == "all":
        return None
    if limit not in _EMBED_LIMITS:
        raise ValueError(f"未知嵌入限制: {limit}")

    max_items, max_age = _EMBED_LIMITS[limit]
    cutoff = (now or datetime.now(UTC)) - max_age

    def stop(item: Any, index: int) -> bool:
        return index >= max_items or item.created_at < cutoff

    return stop


def _relation_key(relation: str, key: str) -> str:
    if key not in _SOURCE_KEYS:
        return key
    if relation == "emails":
        return "source"
    if relation == "events":
        return "relation"
    return key


async def embed_relations(
    table: SqliteItemTable,
    items: list[E],
    key: str,
    relations: list[str],
    limit: str,
    config: StoreConfig,
) -> list[E]:
    """为每个条目嵌入请求的关联

    关联查询按最新优先返回，配合时间窗口截断。

    Args:
        table: 共享的 items 表
        items: 待嵌入的实体（需有 project 字段）
        key: 关联 Store 反查本实体使用的查询键
        relations: 关联名，例如 ["emails", "events"]
        limit: standard | extended | all
        config: 存储配置
    """
    # 局部导入，避免与各实体 Store 模块循环依赖
    from .action_store import ActionStore
    from .email_store import EmailStore
    from .event_store import EventStore

    store_classes = {
        "actions": ActionStore,
        "emails": EmailStore,
        "events": EventStore,
    }
    stop = get_embed_limit_function(limit)

    async def embed_one(item: E) -> E:
        project_id = item.project  # type: ignore[attr-defined]
        embedded: dict[str, list[Any]] = {}
        for relation in relations:
            store = store_classes[relation](table, project_id, config=config)
            embedded[relation] = await store.find_all_by(
                _relation_key(relation, key),
                item.id,
                stop=stop,
                descending=True,
            )
        return item.model_copy(update={"embedded": embedded})

    return list(await asyncio.gather(*(embed_one(item) for item in items)))

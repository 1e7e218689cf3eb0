"""通用实体存储 -- 按实体类型（分区）划分的索引化存储

每个实体 Store 子类在类定义时声明：
- entity_name: 分区前缀，例如 ACTION（实际分区为 ACTION#<project>）
- model: 实体 pydantic 模型
- index_bindings: 查询键到索引列的静态映射
- supported_embeds: 支持按需嵌入的关联名

查询结果游标不透明，只由 table 模块编解码。
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any, ClassVar, Generic, TypeVar

import pydantic
import structlog
from pydantic import BaseModel
from ulid import ULID

from ..config import StoreConfig, load_store_config
from ..exceptions import (
    BatchRetryExhaustedError,
    NotFoundError,
    UnsupportedEmbedError,
    UnsupportedIndexError,
    ValidationError,
)
from ..models.base import BaseEntity
from .indexes import Comparator, IndexBinding, validate_bindings
from .table import ItemRecord, Page, SqliteItemTable

log = structlog.get_logger()

E = TypeVar("E", bound=BaseEntity)

# stop(item, index) 为 True 时丢弃该条及之后所有条目，并停止翻页
StopFn = Callable[[Any, int], bool]

# 由存储层生成、调用方不可直接写入的字段
_SYSTEM_FIELDS = ("id", "created_at", "createdAt", "updated_at", "updatedAt", "_embed", "embedded")


class QueryResult(BaseModel, Generic[E]):
    """一页查询结果"""

    items: list[E]
    cursor: str | None = None
    has_more: bool = False
    count: int = 0


class EntityStore(Generic[E]):
    """实体存储基类"""

    entity_name: ClassVar[str]
    model: ClassVar[type[BaseEntity]]
    index_bindings: ClassVar[tuple[IndexBinding, ...]] = ()
    supported_embeds: ClassVar[tuple[str, ...]] = ()
    # 嵌入时，关联 Store 用来反查本实体的查询键
    embed_key: ClassVar[str | None] = None

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if "model" in cls.__dict__:
            validate_bindings(
                cls.entity_name,
                cls.index_bindings,
                set(cls.model.model_fields),
            )

    def __init__(
        self,
        table: SqliteItemTable,
        project_id: str | None = None,
        config: StoreConfig | None = None,
    ) -> None:
        self._table = table
        self.project_id = project_id
        self.config = config or load_store_config()
        self.type = self.entity_name if project_id is None else f"{self.entity_name}#{project_id}"

    # ------------------------------------------------------------------
    # 单条操作
    # ------------------------------------------------------------------

    async def create(
        self,
        fields: dict[str, Any],
        idempotency_key: str | None = None,
    ) -> E:
        """创建实体：生成 ULID 与时间戳，计算索引投影后写入

        Args:
            fields: 实体字段（snake_case 或 camelCase 均可）
            idempotency_key: 非空时为条件创建，同一分区内重复键写入失败

        Raises:
            ValidationError: 字段不符合 schema
            ConditionFailedError: idempotency_key 已存在
        """
        now = datetime.now(UTC)
        data = {k: v for k, v in fields.items() if k not in _SYSTEM_FIELDS}
        data.update(id=str(ULID()), created_at=now, updated_at=now)
        if self.project_id is not None:
            data["project"] = self.project_id

        entity = self._validate(data)
        await self._table.insert_item(self._to_record(entity, idempotency_key))
        log.debug("entity_created", type=self.type, id=entity.id)
        return entity

    async def get(self, item_id: str) -> E | None:
        """点查，不存在返回 None"""
        doc = await self._table.get_item(self.type, item_id)
        if doc is None:
            return None
        return self._validate(doc)

    async def put(self, entity: E) -> E:
        """整体替换已存在的实体，刷新 updatedAt

        Raises:
            ValidationError: 实体不符合 schema
            NotFoundError: id 不存在
        """
        data = entity.model_dump(by_alias=True)
        data["updatedAt"] = datetime.now(UTC)
        updated = self._validate(data)
        replaced = await self._table.replace_item(self._to_record(updated))
        if not replaced:
            raise NotFoundError(self.entity_name, entity.id)
        return updated

    async def delete(self, item_id: str) -> None:
        """点删（幂等）"""
        await self._table.delete_item(self.type, item_id)

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    async def find_by(
        self,
        key: str,
        value: str | None = None,
        comparator: Comparator = "=",
        cursor: str | None = None,
        limit: int | None = None,
        descending: bool = False,
    ) -> QueryResult[E]:
        """按声明的查询键查询一页

        value 为 None 时返回分区内所有带该索引属性的条目。

        Raises:
            UnsupportedIndexError: key 未在 index_bindings 中声明
            ValueError: 全局索引缺少 value，或 comparator 不是 "="
        """
        binding = self._binding_for(key)
        if binding.index.kind == "local":
            page = await self._table.query_local(
                self.type,
                binding.index,
                value,
                comparator,
                limit,
                cursor,
                descending=descending,
            )
        else:
            # 全局索引只支持哈希列等值匹配，范围条件固定为本分区的 type
            if value is None:
                raise ValueError(f"global index {key!r} requires a value")
            if comparator != "=":
                raise ValueError(f"global index {key!r} only supports '=', got {comparator!r}")
            page = await self._table.query_global(
                binding.index,
                value,
                self.type,
                "=",
                limit,
                cursor,
            )
        return self._to_result(page)

    async def find_all_by(
        self,
        key: str,
        value: str | None = None,
        comparator: Comparator = "=",
        stop: StopFn | None = None,
        descending: bool = False,
    ) -> list[E]:
        """逐页 find_by 直到结束或 stop 命中"""

        async def fetch(cursor: str | None) -> QueryResult[E]:
            return await self.find_by(
                key,
                value,
                comparator,
                cursor=cursor,
                limit=self.config.list_page_size,
                descending=descending,
            )

        return await self._collect(fetch, stop)

    async def list_all(self, stop: StopFn | None = None) -> list[E]:
        """逐页 list 直到结束或 stop 命中"""

        async def fetch(cursor: str | None) -> QueryResult[E]:
            return await self.list(cursor=cursor, limit=self.config.list_page_size)

        return await self._collect(fetch, stop)

    async def _collect(
        self,
        fetch: Callable[[str | None], Awaitable[QueryResult[E]]],
        stop: StopFn | None,
    ) -> list[E]:
        items: list[E] = []
        cursor: str | None = None
        while True:
            result = await fetch(cursor)
            for item in result.items:
                if stop is not None and stop(item, len(items)):
                    return items
                items.append(item)
            if not result.has_more:
                return items
            cursor = result.cursor

    # ------------------------------------------------------------------
    # 批量操作
    # ------------------------------------------------------------------

    async def batch_get(self, ids: list[str]) -> list[E]:
        """批量读取：按分块大小切分，未处理的 id 重新提交直到解决

        不存在的 id 被忽略，重复 id 只返回一次。

        Raises:
            BatchRetryExhaustedError: 连续多轮无进展
        """
        items: list[E] = []

        async def get_chunk(chunk: list[str]) -> list[str]:
            docs, unprocessed = await self._table.batch_get_items(self.type, chunk)
            items.extend(self._validate(doc) for doc in docs)
            return unprocessed

        await self._run_batches("batch_get", ids, get_chunk)
        return items

    async def batch_delete(self, ids: list[str]) -> None:
        """批量删除，重试语义同 batch_get

        Raises:
            BatchRetryExhaustedError: 连续多轮无进展
        """

        async def delete_chunk(chunk: list[str]) -> list[str]:
            return await self._table.batch_delete_items(self.type, chunk)

        await self._run_batches("batch_delete", ids, delete_chunk)

    async def _run_batches(
        self,
        operation: str,
        ids: list[str],
        run_chunk: Callable[[list[str]], Awaitable[list[str]]],
    ) -> None:
        unique_ids = list(dict.fromkeys(ids))
        size = self.config.batch_chunk_size
        for start in range(0, len(unique_ids), size):
            pending = unique_ids[start : start + size]
            stalled = 0
            while pending:
                unprocessed = await run_chunk(pending)
                if not unprocessed:
                    break
                if len(unprocessed) < len(pending):
                    stalled = 0
                else:
                    stalled += 1
                    if stalled >= self.config.batch_max_stalled_attempts:
                        log.error(
                            "batch_retry_exhausted",
                            type=self.type,
                            operation=operation,
                            unprocessed=len(unprocessed),
                        )
                        raise BatchRetryExhaustedError(operation, unprocessed)
                    await asyncio.sleep(self.config.batch_retry_backoff_ms * stalled / 1000)
                log.warning(
                    "batch_retry_unprocessed",
                    type=self.type,
                    operation=operation,
                    unprocessed=len(unprocessed),
                    stalled=stalled,
                )
                pending = unprocessed

    # ------------------------------------------------------------------
    # 嵌入
    # ------------------------------------------------------------------

    async def embed(
        self,
        items: list[E],
        relations: list[str] | None = None,
        limit: str = "standard",
    ) -> list[E]:
        """按需嵌入关联实体

        Raises:
            UnsupportedEmbedError: 请求了未声明的关联
        """
        if not relations:
            return items
        unsupported = [r for r in relations if r not in self.supported_embeds]
        if unsupported or self.embed_key is None:
            raise UnsupportedEmbedError(self.entity_name, list(self.supported_embeds))

        from .embed import embed_relations

        return await embed_relations(
            self._table,
            items,
            key=self.embed_key,
            relations=relations,
            limit=limit,
            config=self.config,
        )

    # ------------------------------------------------------------------
    # 内部工具
    # ------------------------------------------------------------------

    def _binding_for(self, key: str) -> IndexBinding:
        for binding in self.index_bindings:
            if binding.key == key:
                return binding
        raise UnsupportedIndexError(self.entity_name, key)

    def _validate(self, data: dict[str, Any]) -> E:
        try:
            return self.model.model_validate(data)  # type: ignore[return-value]
        except pydantic.ValidationError as e:
            raise ValidationError(
                self.entity_name,
                e.errors(include_url=False, include_context=False),
            ) from e

    def _to_record(self, entity: E, idempotency_key: str | None = None) -> ItemRecord:
        projections: dict[str, str | None] = {}
        for binding in self.index_bindings:
            value = getattr(entity, binding.field)
            projections[binding.index.column] = None if value is None else str(value)
        return ItemRecord(
            type=self.type,
            id=entity.id,
            created_at=entity.created_at.isoformat(),
            updated_at=entity.updated_at.isoformat(),
            data=entity.to_document(),
            projections=projections,
            idempotency_key=idempotency_key,
        )

    def _to_result(self, page: Page) -> QueryResult[E]:
        items = [self._validate(doc) for doc in page.items]
        return QueryResult(
            items=items,
            cursor=page.cursor,
            has_more=page.has_more,
            count=len(items),
        )

    # list 会遮蔽类体内的内置 list，放在类末尾定义
    async def list(
        self,
        cursor: str | None = None,
        limit: int | None = None,
    ) -> QueryResult[E]:
        """分区内无索引的一页"""
        page = await self._table.scan(self.type, limit, cursor)
        return self._to_result(page)

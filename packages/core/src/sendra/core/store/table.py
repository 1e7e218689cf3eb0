"""实体表 SQLite 实现 -- 单表多分区的键值存储

所有实体共用 items 表，(type, id) 为主键。提供：
- 单条写入（条件创建 / 条件替换 / 删除）
- 本地索引查询、全局索引查询、分区扫描，均为游标分页
- 批量读取/删除：单次调用最多处理 batch_capacity 个键，其余作为未处理键返回

游标是上一页最后一条的键，编码为不透明字符串；只有本模块负责编解码。
"""

import base64
import binascii
import json
from typing import Any

import aiosqlite
import structlog
from pydantic import BaseModel, Field

from ..config import MAX_BATCH_SIZE
from ..exceptions import ConditionFailedError, InvalidCursorError
from .indexes import PROJECTION_COLUMNS, Comparator, IndexInfo

log = structlog.get_logger()

_COMPARATOR_SQL: dict[str, str] = {
    "=": "=",
    "<": "<",
    ">": ">",
    "<=": "<=",
    ">=": ">=",
}


class ItemRecord(BaseModel):
    """一条待写入的实体记录"""

    type: str
    id: str
    created_at: str
    updated_at: str
    data: dict[str, Any]
    projections: dict[str, str | None] = Field(default_factory=dict)
    idempotency_key: str | None = None


class Page(BaseModel):
    """一页查询结果"""

    items: list[dict[str, Any]]
    cursor: str | None = None

    @property
    def has_more(self) -> bool:
        return self.cursor is not None


def encode_cursor(key: dict[str, Any]) -> str:
    """编码最后求值键为不透明游标"""
    raw = json.dumps(key, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_cursor(cursor: str) -> dict[str, Any]:
    """解码游标

    Raises:
        InvalidCursorError: 游标不是本存储生成的
    """
    try:
        key = json.loads(base64.urlsafe_b64decode(cursor.encode("ascii")))
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise InvalidCursorError(f"无法解析分页游标: {cursor!r}") from e
    if not isinstance(key, dict):
        raise InvalidCursorError(f"无法解析分页游标: {cursor!r}")
    return key


def _range_condition(column: str, comparator: Comparator) -> str:
    if comparator == "begins_with":
        return f"substr({column}, 1, length(?)) = ?"
    return f"{column} {_COMPARATOR_SQL[comparator]} ?"


def _range_params(comparator: Comparator, value: str) -> list[str]:
    if comparator == "begins_with":
        return [value, value]
    return [value]


class SqliteItemTable:
    """items 表的 SQLite 实现"""

    def __init__(
        self,
        conn: aiosqlite.Connection,
        batch_capacity: int = MAX_BATCH_SIZE,
    ) -> None:
        self._conn = conn
        self._batch_capacity = batch_capacity

    @property
    def conn(self) -> aiosqlite.Connection:
        return self._conn

    # ------------------------------------------------------------------
    # 单条操作
    # ------------------------------------------------------------------

    async def insert_item(self, record: ItemRecord) -> None:
        """条件创建：(type, id) 或 (type, idempotency_key) 已存在时失败

        Raises:
            ConditionFailedError: 主键或幂等键冲突
        """
        columns = ["type", "id", "created_at", "updated_at", "data", "idempotency_key"]
        values: list[Any] = [
            record.type,
            record.id,
            record.created_at,
            record.updated_at,
            json.dumps(record.data, ensure_ascii=False),
            record.idempotency_key,
        ]
        for column, value in self._checked_projections(record).items():
            columns.append(column)
            values.append(value)

        placeholders = ", ".join("?" for _ in columns)
        try:
            await self._conn.execute(
                f"INSERT INTO items ({', '.join(columns)}) VALUES ({placeholders})",
                values,
            )
            await self._conn.commit()
        except aiosqlite.IntegrityError as e:
            await self._conn.rollback()
            raise ConditionFailedError(
                f"{record.type} 条件创建失败: {record.idempotency_key or record.id}"
            ) from e
        except Exception:
            await self._conn.rollback()
            raise

    async def replace_item(self, record: ItemRecord) -> bool:
        """条件替换：仅当 (type, id) 已存在时整体替换

        Returns:
            True 如果替换成功，False 如果记录不存在
        """
        assignments = ["created_at = ?", "updated_at = ?", "data = ?"]
        values: list[Any] = [
            record.created_at,
            record.updated_at,
            json.dumps(record.data, ensure_ascii=False),
        ]
        for column in PROJECTION_COLUMNS:
            assignments.append(f"{column} = ?")
            values.append(record.projections.get(column))
        values.extend([record.type, record.id])

        try:
            cursor = await self._conn.execute(
                f"UPDATE items SET {', '.join(assignments)} WHERE type = ? AND id = ?",
                values,
            )
            await self._conn.commit()
        except Exception:
            await self._conn.rollback()
            raise
        return cursor.rowcount > 0

    async def get_item(self, type_: str, item_id: str) -> dict[str, Any] | None:
        """点查"""
        cursor = await self._conn.execute(
            "SELECT data FROM items WHERE type = ? AND id = ?",
            (type_, item_id),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return json.loads(row[0])

    async def delete_item(self, type_: str, item_id: str) -> None:
        """点删（幂等）"""
        try:
            await self._conn.execute(
                "DELETE FROM items WHERE type = ? AND id = ?",
                (type_, item_id),
            )
            await self._conn.commit()
        except Exception:
            await self._conn.rollback()
            raise

    async def add_to_string_set(
        self,
        type_: str,
        item_id: str,
        attribute: str,
        value: str,
        updated_at: str,
    ) -> bool:
        """原子集合并：attribute 数组中不存在 value 时追加

        单条 UPDATE 语句内完成读-判断-写，并发调用不会丢失更新。

        Returns:
            True 如果追加了新值，False 如果值已存在或记录不存在
        """
        array_path = f"$.{attribute}"
        try:
            cursor = await self._conn.execute(
                """
                UPDATE items
                SET data = json_set(json_insert(data, ?, ?), '$.updatedAt', ?),
                    updated_at = ?
                WHERE type = ? AND id = ?
                  AND NOT EXISTS (
                      SELECT 1 FROM json_each(items.data, ?) WHERE json_each.value = ?
                  )
                """,
                (
                    f"{array_path}[#]",
                    value,
                    updated_at,
                    updated_at,
                    type_,
                    item_id,
                    array_path,
                    value,
                ),
            )
            await self._conn.commit()
        except Exception:
            await self._conn.rollback()
            raise
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # 分页查询
    # ------------------------------------------------------------------

    async def query_local(
        self,
        type_: str,
        index: IndexInfo,
        value: str | None,
        comparator: Comparator,
        limit: int | None,
        cursor: str | None,
        descending: bool = False,
    ) -> Page:
        """本地索引查询：限定在 type_ 分区内，按 (索引值, id) 排序

        descending=True 时倒序返回（id 为 ULID，同一索引值下即最新优先）。
        """
        column = self._checked_column(index)
        where = ["type = ?", f"{column} IS NOT NULL"]
        params: list[Any] = [type_]
        if value is not None:
            where.append(_range_condition(column, comparator))
            params.extend(_range_params(comparator, value))
        if cursor is not None:
            start = decode_cursor(cursor)
            op = "<" if descending else ">"
            where.append(f"({column} {op} ? OR ({column} = ? AND id {op} ?))")
            params.extend([start.get("range"), start.get("range"), start.get("id")])

        direction = "DESC" if descending else "ASC"
        return await self._fetch_page(
            select=f"SELECT data, {column}, id FROM items",
            where=where,
            params=params,
            order_by=f"{column} {direction}, id {direction}",
            limit=limit,
            key_of=lambda row: {"range": row[1], "id": row[2]},
        )

    async def query_global(
        self,
        index: IndexInfo,
        hash_value: str,
        type_value: str | None,
        comparator: Comparator,
        limit: int | None,
        cursor: str | None,
    ) -> Page:
        """全局索引查询：哈希列等值匹配，范围条件作用于 type 列，可跨分区"""
        column = self._checked_column(index)
        where = [f"{column} = ?"]
        params: list[Any] = [hash_value]
        if type_value is not None:
            where.append(_range_condition("type", comparator))
            params.extend(_range_params(comparator, type_value))
        if cursor is not None:
            start = decode_cursor(cursor)
            where.append("(type > ? OR (type = ? AND id > ?))")
            params.extend([start.get("type"), start.get("type"), start.get("id")])

        return await self._fetch_page(
            select="SELECT data, type, id FROM items",
            where=where,
            params=params,
            order_by="type, id",
            limit=limit,
            key_of=lambda row: {"type": row[1], "id": row[2]},
        )

    async def scan(
        self,
        type_: str,
        limit: int | None,
        cursor: str | None,
    ) -> Page:
        """分区扫描（无索引），按 id 排序"""
        where = ["type = ?"]
        params: list[Any] = [type_]
        if cursor is not None:
            start = decode_cursor(cursor)
            where.append("id > ?")
            params.append(start.get("id"))

        return await self._fetch_page(
            select="SELECT data, id FROM items",
            where=where,
            params=params,
            order_by="id",
            limit=limit,
            key_of=lambda row: {"id": row[1]},
        )

    async def _fetch_page(
        self,
        select: str,
        where: list[str],
        params: list[Any],
        order_by: str,
        limit: int | None,
        key_of,
    ) -> Page:
        sql = f"{select} WHERE {' AND '.join(where)} ORDER BY {order_by}"
        if limit is not None:
            # 多取一条以判断是否还有下一页
            sql += " LIMIT ?"
            params = [*params, limit + 1]

        log.debug("executing_query", sql=sql, params=params)
        cursor = await self._conn.execute(sql, params)
        rows = list(await cursor.fetchall())

        next_cursor = None
        if limit is not None and len(rows) > limit:
            rows = rows[:limit]
            next_cursor = encode_cursor(key_of(rows[-1]))

        return Page(items=[json.loads(row[0]) for row in rows], cursor=next_cursor)

    # ------------------------------------------------------------------
    # 批量操作
    # ------------------------------------------------------------------

    async def batch_get_items(
        self,
        type_: str,
        ids: list[str],
    ) -> tuple[list[dict[str, Any]], list[str]]:
        """批量读取

        Returns:
            (已读取文档, 未处理 id)；不存在的 id 既不返回也不算未处理
        """
        processed, unprocessed = ids[: self._batch_capacity], ids[self._batch_capacity :]
        if not processed:
            return [], unprocessed

        placeholders = ", ".join("?" for _ in processed)
        cursor = await self._conn.execute(
            f"SELECT data FROM items WHERE type = ? AND id IN ({placeholders})",
            (type_, *processed),
        )
        rows = await cursor.fetchall()
        return [json.loads(row[0]) for row in rows], unprocessed

    async def batch_delete_items(self, type_: str, ids: list[str]) -> list[str]:
        """批量删除

        Returns:
            未处理 id
        """
        processed, unprocessed = ids[: self._batch_capacity], ids[self._batch_capacity :]
        if not processed:
            return unprocessed

        placeholders = ", ".join("?" for _ in processed)
        try:
            await self._conn.execute(
                f"DELETE FROM items WHERE type = ? AND id IN ({placeholders})",
                (type_, *processed),
            )
            await self._conn.commit()
        except Exception:
            await self._conn.rollback()
            raise
        return unprocessed

    @staticmethod
    def _checked_column(index: IndexInfo) -> str:
        if index.column not in PROJECTION_COLUMNS:
            raise ValueError(f"未知索引列: {index.column}")
        return index.column

    @staticmethod
    def _checked_projections(record: ItemRecord) -> dict[str, str | None]:
        unknown = set(record.projections) - set(PROJECTION_COLUMNS)
        if unknown:
            raise ValueError(f"未知投影列: {sorted(unknown)}")
        return record.projections

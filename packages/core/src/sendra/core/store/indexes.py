"""索引定义

本地索引（local）：隐式限定在与基础查询相同的分区内，不会跨实体类型。
全局索引（global）：以哈希列为键、type 为范围键，跨越所有分区。

每个实体 Store 在类定义时声明固定的 IndexBinding 集合，
索引投影列由主字段单向派生，不允许直接编辑。
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict

Comparator = Literal["=", "<", ">", "<=", ">=", "begins_with"]

COMPARATORS: frozenset[str] = frozenset({"=", "<", ">", "<=", ">=", "begins_with"})


class IndexInfo(BaseModel):
    """索引描述

    local: column 为范围键列，哈希键固定为 type
    global: column 为哈希键列，范围键固定为 type
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["local", "global"]
    name: str
    column: str


LOCAL_INDEXES: dict[str, IndexInfo] = {
    "ATTR_1": IndexInfo(kind="local", name="ATTR_1", column="i_attr1"),
    "ATTR_2": IndexInfo(kind="local", name="ATTR_2", column="i_attr2"),
    "ATTR_3": IndexInfo(kind="local", name="ATTR_3", column="i_attr3"),
    "ATTR_4": IndexInfo(kind="local", name="ATTR_4", column="i_attr4"),
}

GLOBAL_INDEXES: dict[str, IndexInfo] = {
    "BY_EMAIL": IndexInfo(kind="global", name="BY_EMAIL", column="g_email"),
    "BY_MESSAGE_ID": IndexInfo(kind="global", name="BY_MESSAGE_ID", column="g_message_id"),
}

# 允许出现在 SQL 中的投影列（列名不能参数化，必须白名单校验）
PROJECTION_COLUMNS: tuple[str, ...] = tuple(
    index.column for index in (*LOCAL_INDEXES.values(), *GLOBAL_INDEXES.values())
)


class IndexBinding(BaseModel):
    """实体字段到索引的绑定

    key 为 find_by 使用的查询键；为 None 时仅维护投影列、不开放查询。
    """

    model_config = ConfigDict(frozen=True)

    index: IndexInfo
    field: str
    key: str | None = None


def validate_bindings(
    entity_name: str,
    bindings: tuple[IndexBinding, ...],
    model_fields: set[str],
) -> None:
    """校验索引声明：列不重复、查询键不重复、字段存在

    Raises:
        TypeError: 声明不合法（在类创建时暴露）
    """
    columns: set[str] = set()
    keys: set[str] = set()
    for binding in bindings:
        if binding.index.column in columns:
            raise TypeError(f"{entity_name}: 索引 {binding.index.name} 重复绑定")
        columns.add(binding.index.column)
        if binding.key is not None:
            if binding.key in keys:
                raise TypeError(f"{entity_name}: 查询键 {binding.key} 重复")
            keys.add(binding.key)
        if binding.field not in model_fields:
            raise TypeError(f"{entity_name}: 字段 {binding.field} 不存在")

"""实体存储异常体系

规则不匹配从不抛异常；只有存储层错误向上传播。
"""


class StoreError(Exception):
    """存储层基础异常"""


class ValidationError(StoreError):
    """实体不符合 schema（create/put 时）"""

    def __init__(self, entity_type: str, errors: list[dict] | None = None) -> None:
        """
        Args:
            entity_type: 实体类型名，例如 ACTION
            errors: pydantic 校验错误明细
        """
        self.entity_type = entity_type
        self.errors = errors or []
        first = self.errors[0]["msg"] if self.errors else "schema 不匹配"
        super().__init__(f"{entity_type} 校验失败: {first}")


class ConditionFailedError(StoreError):
    """条件写入失败（记录已存在或不存在）"""


class NotFoundError(ConditionFailedError):
    """put 的目标 id 不存在"""

    def __init__(self, entity_type: str, item_id: str) -> None:
        super().__init__(f"{entity_type} 不存在: {item_id}")
        self.entity_type = entity_type
        self.item_id = item_id


class UnsupportedIndexError(StoreError):
    """查询了未声明的索引键（编程错误）"""

    def __init__(self, entity_type: str, key: str) -> None:
        super().__init__(f"{entity_type} 未实现索引: {key}")
        self.entity_type = entity_type
        self.key = key


class UnsupportedEmbedError(StoreError):
    """请求了不支持的关联嵌入（编程错误）"""

    def __init__(self, entity_type: str, supported: list[str]) -> None:
        supported_text = ", ".join(supported) if supported else "无"
        super().__init__(f"{entity_type} 仅支持嵌入: {supported_text}")
        self.entity_type = entity_type
        self.supported = supported


class InvalidCursorError(StoreError):
    """分页游标无法解析（游标只能由存储层生成）"""


class BatchRetryExhaustedError(StoreError):
    """批量操作在重试上限内仍有未处理条目"""

    def __init__(self, operation: str, unprocessed: list[str]) -> None:
        super().__init__(
            f"{operation} 重试耗尽，仍有 {len(unprocessed)} 条未处理"
        )
        self.operation = operation
        self.unprocessed = unprocessed

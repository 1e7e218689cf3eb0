"""配置模块 -- 可通过环境变量覆盖

包含数据库路径、分页大小、批量重试参数以及延迟任务阈值等可配置项。
"""

import os
from pathlib import Path

import structlog
from pydantic import BaseModel, Field

log = structlog.get_logger()


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("SENDRA_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "SENDRA_DB_PATH",
        str(_get_base_dir() / "sqlite" / "sendra.db"),
    )


# 超过此延迟（秒）的任务交给延迟执行设施，否则直接入队
DELAYED_TASK_THRESHOLD_SECONDS: int = 900

# 单次批量读写的最大条目数
MAX_BATCH_SIZE: int = 100

# 即时队列消息默认可见性超时（秒）
QUEUE_VISIBILITY_TIMEOUT_SECONDS: int = int(
    os.environ.get("SENDRA_QUEUE_VISIBILITY_TIMEOUT_S", "900")
)


class StoreConfig(BaseModel):
    """实体存储配置 -- 从环境变量加载

    环境变量:
        SENDRA_LIST_PAGE_SIZE: list_all 每页条数（默认 100）
        SENDRA_BATCH_CHUNK_SIZE: batch_get/batch_delete 分块大小（默认 100）
        SENDRA_BATCH_MAX_STALLED_ATTEMPTS: 连续无进展重试上限（默认 8）
        SENDRA_BATCH_RETRY_BACKOFF_MS: 重试退避基数（毫秒，默认 50）
    """

    list_page_size: int = Field(default=100, ge=1, description="list_all 分页大小")
    batch_chunk_size: int = Field(
        default=MAX_BATCH_SIZE,
        ge=1,
        le=MAX_BATCH_SIZE,
        description="批量操作分块大小",
    )
    batch_max_stalled_attempts: int = Field(
        default=8,
        ge=1,
        description="批量操作连续无进展的最大重试轮数",
    )
    batch_retry_backoff_ms: int = Field(
        default=50,
        ge=0,
        description="批量重试退避基数（毫秒）",
    )


_INT_ENV_VARS: dict[str, str] = {
    "SENDRA_LIST_PAGE_SIZE": "list_page_size",
    "SENDRA_BATCH_CHUNK_SIZE": "batch_chunk_size",
    "SENDRA_BATCH_MAX_STALLED_ATTEMPTS": "batch_max_stalled_attempts",
    "SENDRA_BATCH_RETRY_BACKOFF_MS": "batch_retry_backoff_ms",
}


def load_store_config() -> StoreConfig:
    """从环境变量加载存储配置

    非法数值记录告警并回退默认值，不阻塞启动。

    Returns:
        StoreConfig 实例
    """
    kwargs: dict = {}

    for env_var, field_name in _INT_ENV_VARS.items():
        val = os.environ.get(env_var)
        if not val:
            continue
        try:
            kwargs[field_name] = int(val)
        except ValueError:
            log.warning(
                "invalid_store_config",
                env_var=env_var,
                value=val,
                fallback=StoreConfig.model_fields[field_name].default,
            )

    return StoreConfig(**kwargs)

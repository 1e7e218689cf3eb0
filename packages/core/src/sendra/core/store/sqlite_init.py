"""SQLite 数据库初始化

PRAGMA 配置 + 实体表/任务队列表 DDL + 索引创建。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# items 表：所有实体共用一张表，(type, id) 为主键，type 即分区。
# i_attr1..i_attr4 为分区内的本地范围索引列，g_* 为跨分区的全局索引哈希列。
_ITEMS_DDL = """
CREATE TABLE IF NOT EXISTS items (
    type            TEXT NOT NULL,
    id              TEXT NOT NULL,
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL,
    data            TEXT NOT NULL DEFAULT '{}',
    i_attr1         TEXT,
    i_attr2         TEXT,
    i_attr3         TEXT,
    i_attr4         TEXT,
    g_email         TEXT,
    g_message_id    TEXT,
    idempotency_key TEXT,

    PRIMARY KEY (type, id)
);
"""

_ITEMS_INDEXES = [
    # 本地索引：分区内按索引值排序（稀疏，仅包含有值的条目）
    "CREATE INDEX IF NOT EXISTS idx_items_attr1 ON items(type, i_attr1, id) WHERE i_attr1 IS NOT NULL;",
    "CREATE INDEX IF NOT EXISTS idx_items_attr2 ON items(type, i_attr2, id) WHERE i_attr2 IS NOT NULL;",
    "CREATE INDEX IF NOT EXISTS idx_items_attr3 ON items(type, i_attr3, id) WHERE i_attr3 IS NOT NULL;",
    "CREATE INDEX IF NOT EXISTS idx_items_attr4 ON items(type, i_attr4, id) WHERE i_attr4 IS NOT NULL;",
    # 全局索引：跨分区，哈希键 + type 范围键
    "CREATE INDEX IF NOT EXISTS idx_items_by_email ON items(g_email, type, id) WHERE g_email IS NOT NULL;",
    (
        "CREATE INDEX IF NOT EXISTS idx_items_by_message_id "
        "ON items(g_message_id, type, id) WHERE g_message_id IS NOT NULL;"
    ),
    # 条件创建的幂等键，分区内唯一（仅对非 NULL 值生效）
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_items_idempotency_key "
        "ON items(type, idempotency_key) WHERE idempotency_key IS NOT NULL;"
    ),
]

# task_queue 表：即时队列。visible_at 之前消息不可见（延迟或处理中）
_TASK_QUEUE_DDL = """
CREATE TABLE IF NOT EXISTS task_queue (
    message_id      TEXT PRIMARY KEY,
    body            TEXT NOT NULL,
    sent_at         REAL NOT NULL,
    visible_at      REAL NOT NULL,
    receive_count   INTEGER NOT NULL DEFAULT 0,
    in_flight       INTEGER NOT NULL DEFAULT 0
);
"""

# delayed_executions 表：延迟执行设施。到期后由 release 操作转入 task_queue
_DELAYED_EXECUTIONS_DDL = """
CREATE TABLE IF NOT EXISTS delayed_executions (
    name        TEXT PRIMARY KEY,
    input       TEXT NOT NULL,
    started_at  REAL NOT NULL,
    fire_at     REAL NOT NULL,
    status      TEXT NOT NULL DEFAULT 'RUNNING'
);
"""

_QUEUE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_task_queue_visible_at ON task_queue(visible_at);",
    "CREATE INDEX IF NOT EXISTS idx_delayed_executions_due ON delayed_executions(status, fire_at);",
]


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    # 设置 PRAGMA
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    # 创建表
    await conn.execute(_ITEMS_DDL)
    await conn.execute(_TASK_QUEUE_DDL)
    await conn.execute(_DELAYED_EXECUTIONS_DDL)

    # 创建索引
    for idx_sql in _ITEMS_INDEXES + _QUEUE_INDEXES:
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效

    Returns:
        True 如果 WAL 模式已启用
    """
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"

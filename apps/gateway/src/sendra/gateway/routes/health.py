"""健康检查路由

GET /health: Liveness 检查，永远返回 200。
GET /ready: Readiness 检查，包含 SQLite 连通性、WAL 模式与任务队列状态。
"""

import structlog
from fastapi import APIRouter, Request
from sendra.core.store.sqlite_init import verify_wal_mode
from starlette.responses import JSONResponse

log = structlog.get_logger()

router = APIRouter()


@router.get("/health")
async def health():
    """Liveness 检查 -- 永远返回 200"""
    return {"status": "ok"}


@router.get("/ready")
async def ready(request: Request):
    """Readiness 检查 -- 验证核心依赖可用性

    检查项：
    1. sqlite: 数据库连通性
    2. wal_mode: WAL 模式是否生效
    3. task_queue: 即时队列近似状态
    """
    checks = {}
    all_ok = True

    # 1. SQLite 连通性检查
    try:
        store_group = request.app.state.store_group
        cursor = await store_group.conn.execute("SELECT 1")
        await cursor.fetchone()
        checks["sqlite"] = "ok"
    except Exception as e:
        log.warning("readiness_check_failed", check="sqlite", error=str(e))
        checks["sqlite"] = f"error: {str(e)}"
        all_ok = False

    # 2. WAL 模式（内存数据库不支持 WAL，只提示不判失败）
    if all_ok:
        wal = await verify_wal_mode(store_group.conn)
        checks["wal_mode"] = "ok" if wal else "disabled"

    # 3. 任务队列状态
    if all_ok:
        try:
            status = await store_group.task_queue.get_queue_status()
            checks["task_queue"] = status.model_dump(by_alias=True)
        except Exception as e:
            log.warning("readiness_check_failed", check="task_queue", error=str(e))
            checks["task_queue"] = f"error: {str(e)}"
            all_ok = False

    status_code = 200 if all_ok else 503
    status_text = "ready" if all_ok else "not_ready"

    return JSONResponse(
        status_code=status_code,
        content={
            "status": status_text,
            "checks": checks,
        },
    )

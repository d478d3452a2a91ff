"""健康检查路由

GET /health: Liveness 检查，永远返回 200。
GET /ready: Readiness 检查，包含 SQLite 连通性、WAL 模式、通知分发 worker、磁盘空间。
"""

import shutil

import structlog
from fastapi import APIRouter, Request
from starlette.responses import JSONResponse
from trainops.core.store import verify_wal_mode

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
    1. sqlite: 主连接与通知连接的连通性
    2. wal_mode: 是否运行在 WAL 模式
    3. notification_mailbox: 待投递通知数量
    4. disk_space_mb: 磁盘剩余空间
    """
    checks = {}
    all_ok = True

    # 1. SQLite 连通性检查
    try:
        store_group = request.app.state.store_group
        for conn in (store_group.conn, store_group.notification_conn):
            cursor = await conn.execute("SELECT 1")
            await cursor.fetchone()
        checks["sqlite"] = "ok"
    except Exception as e:
        log.warning("readiness_sqlite_failed", error=str(e))
        checks["sqlite"] = f"error: {str(e)}"
        all_ok = False

    # 2. WAL 模式（内存库不支持 WAL，只报告不判失败）
    try:
        wal = await verify_wal_mode(request.app.state.store_group.conn)
        checks["wal_mode"] = "ok" if wal else "disabled"
    except Exception as e:
        checks["wal_mode"] = f"error: {str(e)}"

    # 3. 通知邮箱积压
    dispatcher = getattr(request.app.state, "notification_dispatcher", None)
    checks["notification_mailbox"] = dispatcher.pending if dispatcher is not None else 0

    # 4. 磁盘空间检查
    try:
        disk_usage = shutil.disk_usage("/")
        checks["disk_space_mb"] = disk_usage.free // (1024 * 1024)
    except OSError:
        checks["disk_space_mb"] = 0
        all_ok = False

    status_code = 200 if all_ok else 503
    status_text = "ready" if all_ok else "not_ready"

    return JSONResponse(
        status_code=status_code,
        content={"status": status_text, "checks": checks},
    )

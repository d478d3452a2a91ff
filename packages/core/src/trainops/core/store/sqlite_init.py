"""SQLite 数据库初始化

PRAGMA 配置 + tasks / stage_history / notifications 三张表 DDL + 索引创建。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# tasks 表 DDL
_TASKS_DDL = """
CREATE TABLE IF NOT EXISTS tasks (
    id                          INTEGER PRIMARY KEY AUTOINCREMENT,
    project_name                TEXT NOT NULL,
    project_type                TEXT NOT NULL,
    priority                    INTEGER NOT NULL DEFAULT 2,
    start_time                  TEXT,
    end_time                    TEXT,
    remark                      TEXT,
    responsible_person_id       INTEGER NOT NULL,
    consultant_id               INTEGER,
    market_manager_id           INTEGER,
    executor_id                 INTEGER,
    current_stage               TEXT NOT NULL DEFAULT 'customer_inquiry',
    is_completed                INTEGER NOT NULL DEFAULT 0,
    is_archived                 INTEGER NOT NULL DEFAULT 0,
    version                     INTEGER NOT NULL DEFAULT 0,
    proposal_upload_time        TEXT,
    customer_approval_time      TEXT,
    teacher_confirm_time        TEXT,
    approval_time               TEXT,
    contract_sign_time          TEXT,
    project_completion_time     TEXT,
    completion_time             TEXT,
    payment_time                TEXT,
    archive_time                TEXT,
    proposal_comment            TEXT,
    customer_approval_comment   TEXT,
    teacher_confirm_comment     TEXT,
    approval_comment            TEXT,
    contract_sign_comment       TEXT,
    project_completion_comment  TEXT,
    payment_comment             TEXT,
    proposal_attachment_ids     TEXT NOT NULL DEFAULT '[]',
    teacher_info                TEXT,
    payment_amount              TEXT,
    create_time                 TEXT NOT NULL,
    update_time                 TEXT NOT NULL
);
"""

_TASKS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_current_stage ON tasks(current_stage);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_is_archived ON tasks(is_archived);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_create_time ON tasks(create_time DESC);",
]

# stage_history 表 DDL（只追加）
_STAGE_HISTORY_DDL = """
CREATE TABLE IF NOT EXISTS stage_history (
    entry_id       TEXT PRIMARY KEY,
    task_id        INTEGER NOT NULL,
    seq            INTEGER NOT NULL,
    stage          TEXT NOT NULL,
    ts             TEXT NOT NULL,
    operator_id    INTEGER NOT NULL,
    operator_name  TEXT NOT NULL,
    action         TEXT NOT NULL,
    comment        TEXT,
    payload        TEXT,

    FOREIGN KEY (task_id) REFERENCES tasks(id)
);
"""

_STAGE_HISTORY_INDEXES = [
    # 同一事项内 seq 唯一：并发写入者第二个提交必然失败
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_stage_history_task_seq "
    "ON stage_history(task_id, seq);",
]

# notifications 表 DDL
_NOTIFICATIONS_DDL = """
CREATE TABLE IF NOT EXISTS notifications (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id       INTEGER NOT NULL,
    title         TEXT NOT NULL,
    content       TEXT NOT NULL,
    type          TEXT NOT NULL DEFAULT 'info',
    read_status   INTEGER NOT NULL DEFAULT 0,
    related_id    INTEGER,
    related_type  TEXT NOT NULL DEFAULT 'project_task',
    create_time   TEXT NOT NULL,
    read_time     TEXT
);
"""

_NOTIFICATIONS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_notifications_user "
    "ON notifications(user_id, read_status);",
]


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    conn.row_factory = aiosqlite.Row

    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    await conn.execute(_TASKS_DDL)
    await conn.execute(_STAGE_HISTORY_DDL)
    await conn.execute(_NOTIFICATIONS_DDL)

    for idx_sql in _TASKS_INDEXES + _STAGE_HISTORY_INDEXES + _NOTIFICATIONS_INDEXES:
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效"""
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"

"""配置常量模块 -- 可通过环境变量覆盖

包含数据库路径、通知邮箱容量、SSE 心跳间隔、超级管理员角色编码等可配置项。
"""

import os
from pathlib import Path


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("TRAINOPS_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "TRAINOPS_DB_PATH",
        str(_get_base_dir() / "sqlite" / "trainops.db"),
    )


def get_notification_queue_maxsize() -> int:
    """通知邮箱容量（满时丢弃新消息并记录日志）"""
    return int(os.environ.get("TRAINOPS_NOTIFICATION_QUEUE_MAXSIZE", "1000"))


def get_super_admin_role() -> str:
    """超级管理员角色编码（"我的项目"对其返回全部事项）"""
    return os.environ.get("TRAINOPS_SUPER_ADMIN_ROLE", "super_admin")


# SSE 心跳间隔（秒）
SSE_HEARTBEAT_INTERVAL: int = int(
    os.environ.get("TRAINOPS_SSE_HEARTBEAT_INTERVAL", "15")
)

# 统计接口回看的月份数
STATISTICS_MONTHS: int = 12

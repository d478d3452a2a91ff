"""CLI 入口模块 -- python -m trainops.core <command>

支持的命令：
  init-db           创建数据库表结构
  check-invariants  巡检全部项目事项的不变量
"""

import asyncio
import sys

from .config import get_db_path


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        print("用法: python -m trainops.core <command>")
        print("命令:")
        print("  init-db           创建数据库表结构")
        print("  check-invariants  巡检全部项目事项的不变量")
        sys.exit(1)

    command = sys.argv[1]

    if command == "init-db":
        asyncio.run(init_database())
    elif command == "check-invariants":
        violation_count = asyncio.run(check_invariants())
        sys.exit(1 if violation_count else 0)
    else:
        print(f"未知命令: {command}")
        print("可用命令: init-db, check-invariants")
        sys.exit(1)


async def init_database() -> None:
    """创建数据库（表结构已存在时不做改动）"""
    from .store import create_store_group

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")

    store_group = await create_store_group(db_path)
    await store_group.close()
    print("初始化完成")


async def check_invariants() -> int:
    """执行不变量巡检，返回违规条数"""
    from .audit import audit_all
    from .store import create_store_group

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")

    store_group = await create_store_group(db_path)
    try:
        violations = await audit_all(store_group.task_store, store_group.history_store)
    finally:
        await store_group.close()

    for violation in violations:
        print(f"[task {violation.task_id}] {violation.rule}: {violation.detail}")
    print(f"巡检完成，发现 {len(violations)} 处违规")
    return len(violations)


if __name__ == "__main__":
    main()

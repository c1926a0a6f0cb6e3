"""CLI 入口模块 -- python -m ferry.core <command>

支持的命令：
  sweep  立即执行一次保留清理
  stats  输出活跃消息、回收站条目、blob 数量
"""

import asyncio
import sys

from .config import get_blobs_dir, get_messages_path, get_retention_path


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        print("用法: python -m ferry.core <command>")
        print("命令:")
        print("  sweep  立即执行一次保留清理")
        print("  stats  输出存储统计")
        sys.exit(1)

    command = sys.argv[1]

    if command == "sweep":
        asyncio.run(run_sweep())
    elif command == "stats":
        asyncio.run(show_stats())
    else:
        print(f"未知命令: {command}")
        print("可用命令: sweep, stats")
        sys.exit(1)


async def _open_stores():
    from .store import create_store_group

    messages_path = get_messages_path()
    retention_path = get_retention_path()
    blobs_dir = get_blobs_dir()

    print(f"消息日志: {messages_path}")
    print(f"保留记录: {retention_path}")
    print(f"Blob 目录: {blobs_dir}")

    return await create_store_group(messages_path, retention_path, blobs_dir)


async def run_sweep() -> None:
    """执行一次保留清理"""
    from .retention import RetentionManager

    stores = await _open_stores()
    print("开始保留清理...")
    report = await RetentionManager(stores).sweep()
    print(
        f"清理完成：移入回收站 {report.binned} 条，清除 {report.purged} 条，"
        f"回收孤儿 blob {report.orphans_reclaimed} 个，"
        f"记录错误 {report.record_errors} 个，blob 错误 {report.blob_errors} 个"
    )


async def show_stats() -> None:
    """输出存储统计"""
    stores = await _open_stores()
    blob_ids = await stores.blob_store.list_ids()
    print(f"活跃消息: {len(stores.message_log)}")
    print(f"回收站条目: {len(stores.retention_store.bin_entries())}")
    print(f"Blob 文件: {len(blob_ids)}")


if __name__ == "__main__":
    main()

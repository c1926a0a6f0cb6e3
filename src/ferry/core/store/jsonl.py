"""JSONL 文件操作 -- 追加写、原子重写、按行读取

所有函数均为同步阻塞 I/O，由调用方通过 asyncio.to_thread 调度。
追加写失败时截断回写入前的长度，保证不会留下半行记录。
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any

import structlog

log = structlog.get_logger()

# 文件指纹：(inode, size)，文件不存在时为 None
Fingerprint = tuple[int, int, int] | None


def _fingerprint_of(st: os.stat_result) -> Fingerprint:
    return st.st_ino, st.st_size, st.st_mtime_ns


def file_fingerprint(path: Path) -> Fingerprint:
    """获取文件指纹，用于检测其他写入方的修改"""
    try:
        st = os.stat(path)
    except FileNotFoundError:
        return None
    return _fingerprint_of(st)


def read_jsonl(path: Path) -> tuple[list[dict[str, Any]], Fingerprint]:
    """读取 JSONL 文件，跳过无法解析的行

    Returns:
        (记录列表, 读取时的文件指纹) 元组；文件不存在时返回 ([], None)
    """
    try:
        with open(path, "rb") as f:
            st = os.fstat(f.fileno())
            raw = f.read()
    except FileNotFoundError:
        return [], None

    records: list[dict[str, Any]] = []
    for lineno, line in enumerate(raw.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError:
            log.warning("jsonl_line_skipped", path=str(path), lineno=lineno)
            continue
        if isinstance(record, dict):
            records.append(record)
        else:
            log.warning("jsonl_line_skipped", path=str(path), lineno=lineno)
    return records, _fingerprint_of(st)


def append_jsonl(path: Path, lines: list[str]) -> Fingerprint:
    """追加若干行并 fsync

    写入失败时截断回原长度后重新抛出异常。

    Returns:
        写入后的文件指纹
    """
    payload = "".join(f"{line}\n" for line in lines).encode("utf-8")
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o644)
    try:
        start = os.fstat(fd).st_size
        try:
            view = memoryview(payload)
            while view:
                written = os.write(fd, view)
                view = view[written:]
            os.fsync(fd)
        except OSError:
            os.ftruncate(fd, start)
            raise
        st = os.fstat(fd)
        return _fingerprint_of(st)
    finally:
        os.close(fd)


def write_jsonl_atomic(path: Path, lines: list[str]) -> Fingerprint:
    """原子重写整个文件：临时文件 + fsync + rename

    Returns:
        写入后的文件指纹
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            for line in lines:
                f.write(line.encode("utf-8"))
                f.write(b"\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    _fsync_dir(path.parent)
    return file_fingerprint(path)


def _fsync_dir(directory: Path) -> None:
    """目录 fsync，确保 rename 落盘（部分平台不支持，忽略）"""
    try:
        dir_fd = os.open(directory, os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(dir_fd)
    except OSError:
        pass
    finally:
        os.close(dir_fd)

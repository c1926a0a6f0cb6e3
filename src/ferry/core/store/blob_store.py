"""BlobStore 文件系统实现

blob 以服务端生成的 ULID 命名，与客户端提供的文件名完全解耦（防止路径穿越和重名）。
写入经临时文件 + rename，半写入的 blob 不可见。
所有 I/O 在线程中执行并受超时约束，超时以 StorageError 上抛。
"""

import asyncio
import os
import tempfile
from datetime import datetime
from pathlib import Path

import structlog
from ulid import ULID

from ..config import BLOB_IO_TIMEOUT_S
from ..exceptions import NotFoundError, StorageError

log = structlog.get_logger()


def parse_blob_id(blob_id: str) -> ULID:
    """校验 blob id 格式，非法 id 视为不存在

    Raises:
        NotFoundError: id 不是合法 ULID
    """
    try:
        return ULID.from_str(blob_id)
    except (ValueError, TypeError) as e:
        raise NotFoundError("Blob", blob_id) from e


def blob_created_at(blob_id: str) -> datetime:
    """从 ULID 中解析 blob 的创建时间"""
    return parse_blob_id(blob_id).datetime


class FileBlobStore:
    """BlobStore 的文件系统实现"""

    def __init__(self, blobs_dir: Path, io_timeout_s: float = BLOB_IO_TIMEOUT_S) -> None:
        self._blobs_dir = blobs_dir
        self._io_timeout_s = io_timeout_s

    @property
    def blobs_dir(self) -> Path:
        return self._blobs_dir

    async def put(self, content: bytes, original_filename: str = "") -> str:
        """存储 blob，返回新生成的 blob id

        original_filename 仅用于日志，不参与存储路径。
        """
        blob_id = str(ULID())
        path = self._blobs_dir / blob_id
        await self._run(_write_atomic, path, content)
        await log.ainfo(
            "blob_stored",
            blob_id=blob_id,
            size=len(content),
            original_filename=original_filename,
        )
        return blob_id

    async def get(self, blob_id: str) -> bytes:
        """读取 blob 内容

        Raises:
            NotFoundError: blob 不存在或已清除
            StorageError: 读取失败或超时
        """
        path = self._path(blob_id)
        try:
            return await self._run(path.read_bytes)
        except FileNotFoundError as e:
            raise NotFoundError("Blob", blob_id) from e

    async def exists(self, blob_id: str) -> bool:
        try:
            path = self._path(blob_id)
        except NotFoundError:
            return False
        return await self._run(path.is_file)

    async def delete(self, blob_id: str) -> bool:
        """删除 blob，幂等

        Returns:
            True 如果本次调用实际删除了文件，已不存在时返回 False
        """
        try:
            path = self._path(blob_id)
        except NotFoundError:
            return False
        try:
            await self._run(path.unlink)
        except FileNotFoundError:
            return False
        await log.ainfo("blob_deleted", blob_id=blob_id)
        return True

    async def list_ids(self) -> list[str]:
        """列出所有合法命名的 blob id（忽略临时文件）"""
        names = await self._run(_list_names, self._blobs_dir)
        ids = []
        for name in names:
            try:
                parse_blob_id(name)
            except NotFoundError:
                continue
            ids.append(name)
        return ids

    def _path(self, blob_id: str) -> Path:
        parse_blob_id(blob_id)
        return self._blobs_dir / blob_id

    async def _run(self, func, *args):
        """在线程中执行阻塞 I/O，超时或系统错误转换为 StorageError"""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(func, *args),
                timeout=self._io_timeout_s,
            )
        except TimeoutError as e:
            raise StorageError(
                f"Blob I/O timed out after {self._io_timeout_s}s"
            ) from e
        except FileNotFoundError:
            raise
        except OSError as e:
            raise StorageError(f"Blob I/O failed: {e}") from e


def _write_atomic(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".", suffix=".part")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _list_names(directory: Path) -> list[str]:
    if not directory.exists():
        return []
    return [p.name for p in directory.iterdir() if p.is_file()]

"""保留管理 -- 周期性清理：Active -> RecycleBin -> Purged

清理与请求路径解耦，由独立的后台任务按间隔运行。
记录流转在 write_lock 内完成，与普通追加保持同一个全局顺序；
blob 在记录删除之后再删除，文件读取先解析所属记录，因此外部观察者看不到"半清除"状态。
单条记录的失败只记录日志，不阻塞其他记录的流转。
"""

import asyncio
import time
from collections.abc import Callable
from datetime import datetime, timedelta

import structlog

from .config import ACTIVE_DAYS, ORPHAN_GRACE_S, RECYCLE_BIN_DAYS
from .exceptions import FerryError, NotFoundError
from .models.enums import RetentionState
from .models.message import StoredMessage, ensure_utc
from .models.retention import (
    RetentionPolicy,
    RetentionRecord,
    SweepReport,
    derive_state,
    scheduled_bin_entry,
)
from .store import StoreGroup
from .store.blob_store import blob_created_at
from .store.transaction import move_to_recycle_bin, purge_records, restore_record

log = structlog.get_logger()


def default_policy() -> RetentionPolicy:
    return RetentionPolicy(active_days=ACTIVE_DAYS, recycle_bin_days=RECYCLE_BIN_DAYS)


class RetentionManager:
    """保留策略执行器"""

    def __init__(
        self,
        stores: StoreGroup,
        policy: RetentionPolicy | None = None,
        clock: Callable[[], datetime] | None = None,
        orphan_grace_s: float = ORPHAN_GRACE_S,
    ) -> None:
        self._stores = stores
        self._policy = policy or default_policy()
        self._clock = clock or stores.clock
        self._orphan_grace = timedelta(seconds=orphan_grace_s)

    @property
    def policy(self) -> RetentionPolicy:
        return self._policy

    def state_of(self, message_id: str) -> RetentionState:
        """查询消息当前所处的保留状态（不在日志和回收站中即为 Purged）"""
        record = self._stores.retention_store.get(message_id)
        if record is not None and record.state == RetentionState.RECYCLE_BIN:
            return RetentionState.RECYCLE_BIN
        if self._stores.message_log.get(message_id) is not None:
            return RetentionState.ACTIVE
        return RetentionState.PURGED

    def recycle_bin(self) -> list[RetentionRecord]:
        return self._stores.retention_store.bin_entries()

    async def sweep(self, now: datetime | None = None) -> SweepReport:
        """执行一次完整清理

        Args:
            now: 评估时间点（默认当前时钟）

        Returns:
            SweepReport 统计
        """
        start_time = time.monotonic()
        now = ensure_utc(now) if now else self._clock()
        report = SweepReport()

        await log.ainfo("retention_sweep_started", now=now.isoformat())

        async with self._stores.write_lock:
            await self._stores.refresh_locked()
            report.binned = await self._bin_aged(now, report)
            purged_blobs = await self._purge_expired(now, report)
            await self._stores.retention_store.prune_holds(
                {m.id for m in self._stores.message_log.list_all()}
            )

        # 记录已不可见，blob 删除不再需要持有写锁
        for blob_id in purged_blobs:
            await self._delete_blob(blob_id, report)

        report.orphans_reclaimed = await self._reclaim_orphans(now, report)
        report.duration_ms = int((time.monotonic() - start_time) * 1000)

        await log.ainfo("retention_sweep_completed", **report.model_dump())
        return report

    async def purge(self, message_ids: list[str]) -> int:
        """立即清除指定的回收站条目，不在回收站中的 id 为 no-op

        Returns:
            实际清除的条目数
        """
        report = SweepReport()
        async with self._stores.write_lock:
            await self._stores.refresh_locked()
            binned = self._stores.retention_store.binned_ids()
            targets = [mid for mid in dict.fromkeys(message_ids) if mid in binned]
            blob_ids = await purge_records(self._stores, targets)
        purged = len(targets)
        for blob_id in blob_ids:
            await self._delete_blob(blob_id, report)
        if purged:
            await log.ainfo("retention_purged", count=purged)
        return purged

    async def restore(self, message_id: str) -> StoredMessage:
        """RecycleBin -> Active

        Raises:
            NotFoundError: 消息不在回收站中
        """
        async with self._stores.write_lock:
            await self._stores.refresh_locked()
            message = await restore_record(self._stores, message_id, self._clock())
        await log.ainfo("retention_restored", message_id=message_id)
        return message

    async def run_periodic(self, interval_s: float, stop_event: asyncio.Event) -> None:
        """后台循环：每隔 interval_s 执行一次清理，直到 stop_event 被设置"""
        await log.ainfo("retention_task_started", interval_s=interval_s)
        while not stop_event.is_set():
            try:
                await self.sweep()
            except Exception as e:
                # 单次清理失败不终止后台任务，下个周期重试
                await log.aerror(
                    "retention_sweep_failed",
                    error_type=type(e).__name__,
                    error=str(e),
                )
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval_s)
            except TimeoutError:
                continue
        await log.ainfo("retention_task_stopped")

    # ------------------------------------------------------------------
    # 内部实现
    # ------------------------------------------------------------------

    async def _bin_aged(self, now: datetime, report: SweepReport) -> int:
        candidates: list[tuple[StoredMessage, datetime]] = []
        for message in self._stores.message_log.list_all():
            try:
                hold = self._stores.retention_store.hold_for(message.id)
                state = derive_state(message, hold, now, self._policy)
            except Exception as e:
                report.record_errors += 1
                await log.aerror(
                    "retention_record_failed",
                    message_id=message.id,
                    phase="evaluate",
                    error=str(e),
                )
                continue
            if state == RetentionState.RECYCLE_BIN:
                candidates.append(
                    (message, scheduled_bin_entry(message, hold, now, self._policy))
                )

        if not candidates:
            return 0
        try:
            return await move_to_recycle_bin(self._stores, candidates)
        except FerryError as e:
            await log.awarning(
                "retention_batch_failed",
                phase="recycle_bin",
                count=len(candidates),
                error=str(e),
            )

        # 批量失败时逐条重试，隔离出问题的记录
        moved = 0
        for message, binned_at in candidates:
            try:
                moved += await move_to_recycle_bin(self._stores, [(message, binned_at)])
            except FerryError as e:
                report.record_errors += 1
                await log.aerror(
                    "retention_record_failed",
                    message_id=message.id,
                    phase="recycle_bin",
                    error=str(e),
                )
        return moved

    async def _purge_expired(self, now: datetime, report: SweepReport) -> list[str]:
        expired: list[str] = []
        for record in self._stores.retention_store.bin_entries():
            try:
                state = derive_state(record.message, record, now, self._policy)
            except Exception as e:
                report.record_errors += 1
                await log.aerror(
                    "retention_record_failed",
                    message_id=record.message_id,
                    phase="evaluate",
                    error=str(e),
                )
                continue
            if state == RetentionState.PURGED:
                expired.append(record.message_id)

        if not expired:
            return []
        try:
            blob_ids = await purge_records(self._stores, expired)
            report.purged = len(expired)
            return blob_ids
        except FerryError as e:
            await log.awarning(
                "retention_batch_failed",
                phase="purge",
                count=len(expired),
                error=str(e),
            )

        blob_ids = []
        for message_id in expired:
            try:
                blob_ids.extend(await purge_records(self._stores, [message_id]))
                report.purged += 1
            except FerryError as e:
                report.record_errors += 1
                await log.aerror(
                    "retention_record_failed",
                    message_id=message_id,
                    phase="purge",
                    error=str(e),
                )
        return blob_ids

    async def _delete_blob(self, blob_id: str, report: SweepReport) -> None:
        """blob 删除失败只记录日志，记录清除不受影响"""
        try:
            await self._stores.blob_store.delete(blob_id)
        except FerryError as e:
            report.blob_errors += 1
            await log.awarning("retention_blob_delete_failed", blob_id=blob_id, error=str(e))

    async def _reclaim_orphans(self, now: datetime, report: SweepReport) -> int:
        """回收未被任何记录引用、且超过宽限期的 blob"""
        try:
            blob_ids = await self._stores.blob_store.list_ids()
        except FerryError as e:
            await log.awarning("retention_orphan_scan_failed", error=str(e))
            return 0

        reclaimed = 0
        for blob_id in blob_ids:
            if self._stores.find_blob_owner(blob_id) is not None:
                continue
            try:
                if now - blob_created_at(blob_id) < self._orphan_grace:
                    continue
            except NotFoundError:
                continue
            before = report.blob_errors
            await self._delete_blob(blob_id, report)
            if report.blob_errors == before:
                reclaimed += 1
        if reclaimed:
            await log.ainfo("retention_orphans_reclaimed", count=reclaimed)
        return reclaimed


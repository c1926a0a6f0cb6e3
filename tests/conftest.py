"""全局 pytest 配置 -- 可控时钟 + 临时数据目录 + StoreGroup fixture"""

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import pytest_asyncio
from ferry.core.store import StoreGroup, create_store_group


class FakeClock:
    """可手动推进的时钟（测试注入 StoreGroup / RetentionManager）"""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    """从真实当前时间开始的可控时钟（blob 的 ULID 时间与之对齐）"""
    return FakeClock(datetime.now(UTC).replace(microsecond=0))


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """临时数据目录"""
    path = tmp_path / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


@pytest_asyncio.fixture
async def store_group(data_dir: Path, clock: FakeClock) -> StoreGroup:
    """已加载的 StoreGroup（使用可控时钟）"""
    return await create_store_group(
        data_dir / "messages.jsonl",
        data_dir / "retention.jsonl",
        data_dir / "blobs",
        clock=clock,
    )

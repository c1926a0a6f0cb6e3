"""Ferry Client -- HTTP API 封装 + 自适应轮询同步"""

from .api import FerryApi
from .backoff import PollBackoff
from .poller import SyncPoller

__all__ = ["FerryApi", "PollBackoff", "SyncPoller"]

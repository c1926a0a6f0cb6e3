"""消息路由

GET  /api/messages:              全部活跃消息（按时间正序）
POST /api/messages:              发送文本消息，新建返回 201，幂等键命中返回 200
GET  /api/messages/poll?since=:  since 之后的新消息 + 下一次轮询使用的游标
"""

from fastapi import APIRouter, Depends, Query
from ferry.core.sync import SyncService, parse_cursor
from pydantic import BaseModel, ConfigDict, Field
from starlette.responses import JSONResponse

from ..deps import get_store_group, get_sync_service
from ..services.ingest_service import IngestService

router = APIRouter()


class SendMessageRequest(BaseModel):
    """文本消息请求体"""

    model_config = ConfigDict(populate_by_name=True)

    content: str = Field(description="消息文本")
    sender: str = Field(description="发送设备标签")
    type: str = Field(default="text", description="消息类型，仅支持 text")
    idempotency_key: str | None = Field(
        default=None,
        alias="idempotencyKey",
        description="幂等键，客户端重试时携带",
    )


@router.get("/api/messages")
async def list_messages(sync: SyncService = Depends(get_sync_service)):
    """全量历史，客户端首次加载使用"""
    return [m.to_wire() for m in sync.history()]


@router.post("/api/messages")
async def send_message(body: SendMessageRequest, store_group=Depends(get_store_group)):
    """追加文本消息

    - 新消息返回 201 Created
    - idempotency_key 已存在返回 200 OK（已有消息）
    """
    service = IngestService(store_group)
    message, created = await service.post_text(
        content=body.content,
        sender=body.sender,
        message_type=body.type,
        idempotency_key=body.idempotency_key,
    )
    return JSONResponse(status_code=201 if created else 200, content=message.to_wire())


@router.get("/api/messages/poll")
async def poll_messages(
    since: str | None = Query(default=None, description="上一次响应返回的游标"),
    sync: SyncService = Depends(get_sync_service),
):
    """增量轮询，服务端不保存任何订阅状态"""
    result = sync.poll(parse_cursor(since))
    return result.to_wire()

"""文件下载路由

GET /api/files/{blob_id}: 返回 blob 原始字节，Content-Type 取自所属消息。
先解析所属消息再读取 blob：记录已清除的 blob 即使文件尚未删除也返回 404。
"""

from urllib.parse import quote

from fastapi import APIRouter, Depends
from ferry.core.exceptions import NotFoundError
from ferry.core.models import MessageType
from starlette.responses import Response

from ..deps import get_store_group

router = APIRouter()


def content_disposition(message_type: MessageType, filename: str) -> str:
    """图片内联展示，其他文件按附件下载；文件名按 RFC 5987 编码"""
    disposition = "inline" if message_type == MessageType.IMAGE else "attachment"
    return f"{disposition}; filename*=UTF-8''{quote(filename, safe='')}"


@router.get("/api/files/{blob_id}")
async def get_file(blob_id: str, store_group=Depends(get_store_group)):
    owner = store_group.find_blob_owner(blob_id)
    if owner is None:
        raise NotFoundError("Blob", blob_id)

    content = await store_group.blob_store.get(blob_id)
    return Response(
        content=content,
        media_type=owner.mime_type or "application/octet-stream",
        headers={
            "Content-Disposition": content_disposition(
                owner.type, owner.filename or blob_id
            ),
            "X-Content-Type-Options": "nosniff",
        },
    )

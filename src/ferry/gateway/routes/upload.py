"""上传路由

POST /api/upload: multipart {file, sender, idempotency_key?}
image/* 存为 image 消息，其余存为 file 消息。
"""

from fastapi import APIRouter, Depends, File, Form, UploadFile
from starlette.responses import JSONResponse

from ..deps import get_store_group
from ..services.ingest_service import IngestService

router = APIRouter()


@router.post("/api/upload")
async def upload_file(
    file: UploadFile = File(description="上传的文件"),
    sender: str | None = Form(default=None, description="发送设备标签"),
    idempotency_key: str | None = Form(default=None, description="幂等键"),
    store_group=Depends(get_store_group),
):
    """存储文件并追加引用它的消息

    - 新消息返回 201 Created
    - idempotency_key 已存在返回 200 OK（不保留重复上传的内容）
    """
    service = IngestService(store_group)
    try:
        message, created = await service.upload(file, sender, idempotency_key)
    finally:
        await file.close()
    return JSONResponse(status_code=201 if created else 200, content=message.to_wire())

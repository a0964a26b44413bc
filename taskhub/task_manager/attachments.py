"""Task attachments stored on local disk under ``settings.upload_dir``."""
from __future__ import annotations

import asyncio
import uuid
from pathlib import Path
from typing import Tuple

from fastapi import UploadFile
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.auth.dependencies import RequestContext
from taskhub.settings import settings
from taskhub.task_manager import services
from taskhub.task_manager.models import Task, TaskAttachment
from taskhub.utils import NotFound, PayloadTooLarge, ServiceError


def storage_path(stored_name: str) -> Path:
    return Path(settings.upload_dir) / stored_name


def _write(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


async def save_attachment(
    session: AsyncSession, ctx: RequestContext, task_id: int, upload: UploadFile
) -> Task:
    """Store ``upload`` and attach it to a task the caller can see."""
    task = await services.get_task(session, ctx, task_id)

    data = await upload.read(settings.max_attachment_bytes + 1)
    if not data:
        raise ServiceError("No file uploaded.")
    if len(data) > settings.max_attachment_bytes:
        raise PayloadTooLarge("Attachment too large.")

    stored_name = f"{uuid.uuid4().hex}{Path(upload.filename or '').suffix}"
    await asyncio.to_thread(_write, storage_path(stored_name), data)

    task.attachments.append(
        TaskAttachment(
            uploaded_by=ctx.user.id,
            file_name=upload.filename or stored_name,
            stored_name=stored_name,
            file_type=upload.content_type or "application/octet-stream",
            size_bytes=len(data),
        )
    )
    await session.flush()
    logger.info("Attachment {} added to task {}", stored_name, task.id)
    return await services.reload_task(session, task.id)


async def get_attachment(
    session: AsyncSession, ctx: RequestContext, task_id: int, attachment_id: int
) -> Tuple[TaskAttachment, Path]:
    task = await services.get_task(session, ctx, task_id)
    for attachment in task.attachments:
        if attachment.id == attachment_id:
            path = storage_path(attachment.stored_name)
            if not path.exists():
                raise NotFound("Attachment file is missing.")
            return attachment, path
    raise NotFound("Attachment not found.")

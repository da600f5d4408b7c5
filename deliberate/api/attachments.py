"""Upload and attachment endpoints."""

import mimetypes

from fastapi import APIRouter, File, UploadFile, status
from fastapi.responses import Response

from deliberate.api.deps import FileStorageDep, LifecycleDep
from deliberate.auth.middleware import UserDep
from deliberate.config import settings
from deliberate.errors import NotFound, ValidationFailed
from deliberate.schemas.attachment import (
    AttachmentCreate,
    AttachmentOut,
    AttachmentText,
    UploadOut,
)
from deliberate.services.file_storage import ALLOWED_MIME_TYPES, FileStorage, extension_matches

router = APIRouter()


@router.post("/uploads", response_model=UploadOut)
async def upload_file(user: UserDep, file_storage: FileStorageDep, file: UploadFile = File(...)):
    """Store a file under a random name. Attach it with POST .../attachments."""
    file_name = file.filename or ""
    file_type = file.content_type or ""
    if file_type not in ALLOWED_MIME_TYPES:
        raise ValidationFailed("Unsupported file type", field="file")
    if not extension_matches(file_type, file_name):
        raise ValidationFailed("File extension does not match MIME type", field="file")
    data = await file.read(settings.max_upload_bytes + 1)
    if len(data) > settings.max_upload_bytes:
        raise ValidationFailed("File too large. Maximum 10MB.", field="file")

    object_path = await file_storage.save_file(data, file_name)
    return UploadOut(
        file_name=file_name,
        object_path=object_path,
        file_type=file_type,
        file_size=len(data),
    )


@router.get("/uploads/{file_name}")
async def download_file(
    file_name: str, user: UserDep, lifecycle: LifecycleDep, file_storage: FileStorageDep
):
    """Serve a stored file if the caller may see its attachment."""
    if not file_storage.is_stored_file_name_safe(file_name):
        raise ValidationFailed("Invalid file name", field="fileName")
    attachment = await lifecycle.get_attachment_by_object_path(file_name, user.id)
    try:
        data = await file_storage.read_file(file_name)
    except FileNotFoundError as exc:
        raise NotFound("File not found") from exc
    media_type = attachment.file_type or mimetypes.guess_type(file_name)[0]
    return Response(
        content=data,
        media_type=media_type or "application/octet-stream",
        headers={"Content-Disposition": f'inline; filename="{file_name}"'},
    )


@router.post(
    "/decisions/{decision_id}/attachments",
    response_model=AttachmentOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_attachment(
    decision_id: int, body: AttachmentCreate, user: UserDep, lifecycle: LifecycleDep
):
    """Attach an uploaded file. The declared type must fit the stored object."""
    if not FileStorage.is_stored_file_name_safe(body.object_path):
        raise ValidationFailed("Invalid object path", field="objectPath")
    if body.file_type not in ALLOWED_MIME_TYPES:
        raise ValidationFailed("Unsupported file type", field="fileType")
    if not extension_matches(body.file_type, body.object_path):
        raise ValidationFailed("File extension does not match MIME type", field="fileType")
    if body.file_size > settings.max_upload_bytes:
        raise ValidationFailed("File too large. Maximum 10MB.", field="fileSize")
    return await lifecycle.attach_document(
        decision_id,
        user.id,
        file_name=body.file_name,
        file_type=body.file_type,
        file_size=body.file_size,
        object_path=body.object_path,
        context=body.context,
    )


@router.get("/decisions/{decision_id}/attachments", response_model=list[AttachmentOut])
async def list_attachments(decision_id: int, user: UserDep, lifecycle: LifecycleDep):
    """Judgment evidence stays hidden from peers until the decision closes."""
    return await lifecycle.list_attachments(decision_id, requesting_user_id=user.id)


@router.get("/attachments/{attachment_id}/text", response_model=AttachmentText)
async def get_attachment_text(attachment_id: int, user: UserDep, lifecycle: LifecycleDep):
    attachment = await lifecycle.get_attachment(attachment_id, user.id)
    if not attachment.extracted_text:
        raise NotFound("No extracted text available")
    return AttachmentText(extracted_text=attachment.extracted_text)


@router.delete("/attachments/{attachment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_attachment(attachment_id: int, user: UserDep, lifecycle: LifecycleDep):
    await lifecycle.delete_attachment(attachment_id, requesting_user_id=user.id)

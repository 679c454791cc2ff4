"""Image upload, transform and cleanup endpoints."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from fastapi import APIRouter, File, Form, Header, Request, UploadFile, status
from fastapi.responses import Response

from pixel_forge.api.models import (
    CleanupResponse,
    MessageResponse,
    SessionInfoResponse,
    TransformRequest,
    UploadResponse,
)
from pixel_forge.errors import NotFoundError, UploadValidationError

if TYPE_CHECKING:
    from pixel_forge.containers import AppContainer

router = APIRouter(
    prefix="/api/images",
    tags=["images"],
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": MessageResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": MessageResponse},
    },
)


@router.post(
    "/upload",
    status_code=status.HTTP_201_CREATED,
    response_model=UploadResponse,
)
async def upload_image(
    request: Request,
    file: UploadFile | None = File(default=None),
    session_id: str | None = Form(default=None, alias="sessionId"),
    x_session_id: str | None = Header(default=None),
) -> UploadResponse:
    """Store an uploaded image and register it with the caller's session."""
    container: AppContainer = request.app.state.container
    if file is None:
        raise UploadValidationError("No file uploaded")
    content = await file.read()
    image = await asyncio.to_thread(
        container.image_service.store_upload,
        session_id or x_session_id,
        file.filename,
        content,
    )
    return UploadResponse(
        image_url=image.url,
        filename=image.filename,
        session_id=image.session_id,
    )


@router.post(
    "/{filename}/transform",
    response_class=Response,
    responses={status.HTTP_404_NOT_FOUND: {"model": MessageResponse}},
)
async def transform_image(
    filename: str, body: TransformRequest, request: Request
) -> Response:
    """Return the stored original with the requested transformations applied."""
    container: AppContainer = request.app.state.container
    result = await asyncio.to_thread(
        container.image_service.transform_image, filename, body.transformations
    )
    if result is None:
        raise NotFoundError("Image not found")
    return Response(
        content=result.content,
        media_type=result.media_type,
        headers={"Cache-Control": "no-store"},
    )


@router.delete("/cleanup/{session_id}", response_model=CleanupResponse)
async def cleanup_session(session_id: str, request: Request) -> CleanupResponse:
    """Delete every file uploaded under a session."""
    container: AppContainer = request.app.state.container
    deleted = await asyncio.to_thread(
        container.image_service.cleanup_session, session_id
    )
    return CleanupResponse(
        message="Session cleaned up",
        session_id=session_id,
        deleted_files=deleted,
    )


@router.get(
    "/sessions/{session_id}",
    response_model=SessionInfoResponse,
    responses={status.HTTP_404_NOT_FOUND: {"model": MessageResponse}},
)
async def session_info(session_id: str, request: Request) -> SessionInfoResponse:
    """Return the files tracked for a session."""
    container: AppContainer = request.app.state.container
    snapshot = container.registry.get_session_info(session_id)
    if snapshot is None:
        raise NotFoundError("Session not found")
    return SessionInfoResponse(
        session_id=snapshot.session_id,
        files=[str(path) for path in snapshot.files],
        last_activity=snapshot.last_activity,
    )

"""HTTP service for ClimateVision.

Exposes image effect generation, video generation, EcoVoice reports, the
session notification list, and the video relay function. State is held in a
single AppContext per app instance (in-memory, single user).
"""

from __future__ import annotations

import base64
from typing import TYPE_CHECKING, Annotated, Any

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from .errors import (
    ClimateVisionError,
    ConfigurationError,
    GenerationTimeoutError,
    ProviderError,
    StorageError,
    ValidationError,
)
from .imagegen import generate_climate_effect
from .media import decode_base64, split_data_url
from .prompts import Category, get_suggestions
from .relay import register_relay_routes
from .reports import ReportForm
from .storage import LocalStorage

if TYPE_CHECKING:
    from .session import AppContext


class VideoRequest(BaseModel):
    """Request body for video generation."""

    prompt: str
    imageData: str | None = None
    imageUrl: str | None = None


class ReportRequest(BaseModel):
    """Request body for saving or submitting a report."""

    violation_type: str = ""
    severity: str = ""
    pollutant: str = ""
    location: str = ""
    incident_date: str = ""
    incident_time: str = ""
    description: str = ""
    additional_info: str = ""
    reporter_name: str = ""
    reporter_email: str = ""
    reporter_phone: str = ""
    draft_id: str | None = None
    draft: bool = False
    imageData: str | None = None


def error_status(error: ClimateVisionError) -> int:
    """HTTP status for a ClimateVision error."""
    if isinstance(error, (ValidationError, ConfigurationError)):
        return 400
    if isinstance(error, GenerationTimeoutError):
        return 504
    if isinstance(error, ProviderError):
        return 502
    if isinstance(error, StorageError):
        return 500
    return 500


def error_response(error: ClimateVisionError) -> JSONResponse:
    content: dict[str, Any] = {"error": str(error), "type": type(error).__name__}
    if isinstance(error, ValidationError) and error.fields:
        content["fields"] = error.fields
    if isinstance(error, ProviderError) and error.step:
        content["step"] = error.step
    return JSONResponse(content=content, status_code=error_status(error))


def _decode_upload(image_data: str) -> tuple[bytes, str]:
    mime_type = split_data_url(image_data)[0] if image_data.startswith("data:") else "image/png"
    return decode_base64(image_data), mime_type


def create_app(context: AppContext) -> FastAPI:
    """Create FastAPI app bound to one application context.

    Args:
        context: Application context providing config, backends and notifications

    Returns:
        FastAPI application instance
    """
    config = context.config
    notifications = context.notifications

    app = FastAPI(
        title="ClimateVision",
        description="Climate effect and solution visualizations, plus EcoVoice reports",
        version="0.1.0",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
    )

    @app.get("/api/suggestions")
    async def suggestions(category: str = "effect") -> JSONResponse:
        """Quick-pick descriptions for a category."""
        try:
            parsed = Category.parse(category)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown category: {category}") from None
        return JSONResponse(content={"category": parsed.value, "suggestions": get_suggestions(parsed)})

    @app.post("/api/effects")
    async def generate_effect(
        image: Annotated[UploadFile, File()],
        description: Annotated[str, Form()] = "",
        category: Annotated[str, Form()] = "effect",
    ) -> JSONResponse:
        """Transform an uploaded image with a climate effect or solution."""
        data = await image.read()
        try:
            parsed = Category.parse(category)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown category: {category}") from None
        try:
            result = await run_in_threadpool(
                generate_climate_effect,
                data,
                image.content_type,
                description,
                config,
                context.gemini_key() or None,
                context.http_client,
            )
        except ClimateVisionError as e:
            notifications.error(str(e))
            return error_response(e)

        notifications.success("Climate impact visualization generated!")
        return JSONResponse(
            content={
                "imageData": base64.b64encode(result.data).decode("utf-8"),
                "mimeType": result.mime_type,
                "description": result.description,
                "category": parsed.value,
            }
        )

    @app.post("/api/videos")
    async def generate_video(request: VideoRequest) -> JSONResponse:
        """Generate a video directly or through the configured relay."""
        image = request.imageData or request.imageUrl
        if not image:
            e = ValidationError("imageData or imageUrl is required", fields=["image"])
            notifications.error(str(e))
            return error_response(e)
        try:
            video = await run_in_threadpool(context.video_client().generate, image, request.prompt)
        except ClimateVisionError as e:
            notifications.error(str(e))
            return error_response(e)

        if video.fallback:
            notifications.info("Showing a pre-recorded video for this scenario.")
        else:
            notifications.success("Climate video generated!")
        return JSONResponse(
            content={
                "videoUrl": video.url,
                "contentType": video.content_type,
                "fileName": video.file_name,
                "fileSize": video.file_size,
                "fallback": video.fallback,
            }
        )

    @app.post("/api/reports")
    async def save_report(request: ReportRequest) -> JSONResponse:
        """Save a draft or submit a report."""
        form = ReportForm(
            **request.model_dump(exclude={"draft", "imageData"}),
        )
        try:
            image = _decode_upload(request.imageData) if request.imageData else None
            flow = context.report_flow()
            if request.draft:
                report = await run_in_threadpool(flow.save_draft, form, image)
            else:
                report = await run_in_threadpool(flow.submit, form, image)
        except ClimateVisionError as e:
            notifications.error(str(e))
            return error_response(e)
        return JSONResponse(content={"id": report.id, "status": report.status, "report": report.to_row()})

    @app.get("/api/reports")
    async def list_reports() -> JSONResponse:
        """Submitted reports, newest first."""
        try:
            reports = await run_in_threadpool(context.report_flow().list_submitted)
        except ClimateVisionError as e:
            notifications.error("Failed to load reports")
            return error_response(e)
        return JSONResponse(content=[{**r.to_row(), "id": r.id} for r in reports])

    @app.get("/api/notifications")
    async def list_notifications() -> JSONResponse:
        return JSONResponse(
            content={
                "unread": notifications.unread_count,
                "notifications": [n.to_dict() for n in notifications.items],
            }
        )

    @app.post("/api/notifications/read")
    async def mark_read() -> JSONResponse:
        notifications.mark_all_read()
        return JSONResponse(content={"unread": 0})

    @app.delete("/api/notifications")
    async def clear_notifications() -> JSONResponse:
        notifications.clear()
        return JSONResponse(content={"cleared": True})

    @app.delete("/api/notifications/{note_id}")
    async def remove_notification(note_id: str) -> JSONResponse:
        if not notifications.remove(note_id):
            raise HTTPException(status_code=404, detail="Notification not found")
        return JSONResponse(content={"removed": note_id})

    if isinstance(context.storage, LocalStorage):
        storage = context.storage

        @app.get("/media/{bucket}/{name}")
        async def serve_media(bucket: str, name: str) -> FileResponse:
            """Serve objects written by local storage."""
            path = storage.root / bucket / name
            if "/" in name or ".." in (bucket, name) or not path.is_file():
                raise HTTPException(status_code=404, detail="Object not found")
            return FileResponse(path)

    if context.storage is not None:
        register_relay_routes(app, config, context.storage, context.http_client)

    return app

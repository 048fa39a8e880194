"""API route definitions."""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from typing import TYPE_CHECKING, Annotated

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from animalid.api.middleware import verify_api_key, verify_websocket_api_key
from animalid.api.schemas import (
    ErrorResponse,
    HealthResponse,
    IdentifyResponse,
    ModelInfo,
    ModelsResponse,
    SessionEvent,
)
from animalid.encyclopedia import SummaryResult
from animalid.ml.model_manager import MODEL_REGISTRY
from animalid.ml.preprocessing import UploadedImage
from animalid.render import OutputRegion, RenderState, render_html
from animalid.search import SearchOrchestrator, SearchRequest, SearchSession

if TYPE_CHECKING:
    from starlette.datastructures import State

    from animalid.config import Settings

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1",
    dependencies=[Depends(verify_api_key)],
    responses={401: {"model": ErrorResponse, "description": "Invalid or missing API key"}},
)
ws_router = APIRouter(prefix="/api/v1")


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _new_orchestrator(state: State) -> SearchOrchestrator:
    """One orchestrator per page session; the classifier model is shared."""
    return SearchOrchestrator(
        preprocessor=state.preprocessor,
        classifier=state.classifier,
        result_filter=state.result_filter,
        encyclopedia=state.encyclopedia,
        offload=state.inference_pool.run,
    )


@router.post(
    "/identify",
    response_model=IdentifyResponse,
    summary="Identify an animal from a photo or a name",
)
async def identify(
    request: Request,
    file: Annotated[UploadFile | None, File()] = None,
    text: Annotated[str, Form()] = "",
) -> IdentifyResponse:
    """Run one search and return the final state of the output region."""
    settings = _get_settings(request)
    upload = None
    if file is not None and file.filename:
        # One byte past the limit is enough to reject an oversized upload.
        data = await file.read(settings.max_file_size + 1)
        upload = UploadedImage(data=data, media_type=file.content_type or "")

    region = OutputRegion()
    orchestrator = _new_orchestrator(request.app.state)
    outcome = await orchestrator.search(SearchRequest(image=upload, text=text), region)
    return IdentifyResponse(state=region.state, html=render_html(region.state), outcome=outcome.value)


@router.get(
    "/summary/{subject}",
    response_model=SummaryResult,
    summary="Look up an encyclopedia summary",
)
async def summary(subject: str, request: Request) -> SummaryResult:
    """Return the summary for a subject, degrading to a placeholder on failure."""
    result: SummaryResult = await request.app.state.encyclopedia.lookup(subject)
    return result


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = _get_settings(request)
    state = request.app.state
    return HealthResponse(
        status="ok",
        gpu=settings.device == "cuda",
        model_loaded=state.classifier.is_loaded,
        loaded_models=state.model_manager.get_loaded_models(),
        concurrent_requests=state.inference_pool.active_count,
        queue_depth=state.inference_pool.queue_depth,
    )


@router.get(
    "/models",
    response_model=ModelsResponse,
    summary="List available models",
)
async def list_models(request: Request) -> ModelsResponse:
    """Return known classifier models and which one is configured."""
    active = request.app.state.classifier.model_name
    models = [
        ModelInfo(
            name=spec.name,
            version=spec.version,
            alpha=spec.alpha,
            status="active" if spec.name == active else "available",
            license=spec.license,
        )
        for spec in MODEL_REGISTRY.values()
    ]
    return ModelsResponse(models=models)


@ws_router.websocket("/ws/search", dependencies=[Depends(verify_websocket_api_key)])
async def search_socket(websocket: WebSocket) -> None:
    """Interactive search: user events in, every output region state out.

    Each frame is either ``{"state", "html"}`` for an output region change or
    ``{"error"}`` for an event that could not be parsed. Only the search
    orchestrator writes to the output region.
    """
    await websocket.accept()
    settings: Settings = websocket.app.state.settings

    frames: asyncio.Queue[dict[str, object]] = asyncio.Queue()
    region = OutputRegion(listener=lambda state: frames.put_nowait(_state_frame(state)))
    session = SearchSession(_new_orchestrator(websocket.app.state), region, settings.debounce_seconds)
    sender = asyncio.create_task(_send_frames(websocket, frames))

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                event = SessionEvent.model_validate_json(raw)
            except ValidationError:
                logger.info("Ignoring malformed session event")
                frames.put_nowait({"error": "Invalid event"})
                continue
            _dispatch(session, event)
    except WebSocketDisconnect:
        logger.info("Search session closed")
    finally:
        await session.close()
        sender.cancel()
        await asyncio.gather(sender, return_exceptions=True)


def _dispatch(session: SearchSession, event: SessionEvent) -> None:
    if event.type == "text":
        session.text_changed(event.text or "")
    elif event.type == "submit":
        session.submit()
    elif event.data is None:
        session.file_selected(None)
    else:
        try:
            data = base64.b64decode(event.data, validate=True)
        except (binascii.Error, ValueError):
            # Undecodable payloads are selected as empty files and fail like any unreadable image.
            data = b""
        session.file_selected(UploadedImage(data=data, media_type=event.media_type or ""))


def _state_frame(state: RenderState) -> dict[str, object]:
    return {"state": state.model_dump(mode="json"), "html": render_html(state)}


async def _send_frames(websocket: WebSocket, frames: asyncio.Queue[dict[str, object]]) -> None:
    while True:
        await websocket.send_json(await frames.get())

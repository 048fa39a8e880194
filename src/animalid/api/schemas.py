"""Pydantic request/response schemas for the AnimalID API."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from animalid.render import RenderState


class IdentifyResponse(BaseModel):
    """Final state of the output region after a search, plus its HTML."""

    state: RenderState
    html: str
    outcome: str = Field(description="'result', 'error', 'dropped' or 'superseded'")


class SessionEvent(BaseModel):
    """A user interaction sent over the search WebSocket."""

    type: Literal["text", "file", "submit"]
    text: str | None = None
    media_type: str | None = None
    data: str | None = Field(default=None, description="Base64-encoded file bytes; null clears the selection")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    gpu: bool
    model_loaded: bool
    loaded_models: list[str] = Field(default_factory=list, description="Models with an open ONNX session")
    concurrent_requests: int
    queue_depth: int


class ModelInfo(BaseModel):
    """Information about an available classifier model."""

    name: str
    version: int
    alpha: float
    status: str = Field(description="Model status: 'active' or 'available'")
    license: str


class ModelsResponse(BaseModel):
    """Response for the models listing endpoint."""

    models: list[ModelInfo]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str

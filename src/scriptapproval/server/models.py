"""Pydantic models for server API requests and responses."""

from __future__ import annotations

from pydantic import BaseModel, Field

from scriptapproval import __version__


class HashRequest(BaseModel):
    """Body for single-item approve/deny/revoke."""

    hash: str = Field(min_length=1)


class BatchRequest(BaseModel):
    """Body for ``POST /api/{kind}/batch/{action}``."""

    hashes: list[str] = Field(min_length=1)


class BatchResponse(BaseModel):
    action: str
    count: int


class SubmitRequest(BaseModel):
    """An artifact someone tried to run."""

    payload: str
    language: str | None = None
    user: str | None = None
    item: str | None = None


class SubmitResponse(BaseModel):
    hash: str
    state: str


class MigrateResponse(BaseModel):
    scheduled: bool


class DeprecatedInfo(BaseModel):
    """GET /api/{kind}/deprecated response."""

    count: int
    converting: bool


class HealthResponse(BaseModel):
    """GET /api/health response."""

    status: str = "ok"
    version: str = __version__

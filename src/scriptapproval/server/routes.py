"""Route handlers for the approval backend.

Snapshot-returning endpoints answer with ``[pendingList, approvedList]``,
each item ``{hash, payload}`` plus the optional ``language``, ``user``, ``item``,
``dangerous`` and ``acl`` keys.  Batch endpoints answer with an opaque count;
clients resync with ``GET /api/{kind}`` afterwards.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Request, status

from scriptapproval.hashing import ArtifactKind, parse_kind
from scriptapproval.models import ApprovalContext, BatchAction
from scriptapproval.server.auth import verify_api_key
from scriptapproval.server.models import (
    BatchRequest,
    BatchResponse,
    DeprecatedInfo,
    HashRequest,
    HealthResponse,
    MigrateResponse,
    SubmitRequest,
    SubmitResponse,
)
from scriptapproval.store import ApprovalStore, LegacyConverter

_log = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

SnapshotBody = list[list[dict[str, Any]]]


def get_store(request: Request) -> ApprovalStore:
    store: ApprovalStore = request.app.state.store
    return store


def get_converter(request: Request) -> LegacyConverter:
    converter: LegacyConverter = request.app.state.converter
    return converter


def artifact_kind(kind: str) -> ArtifactKind:
    """Path dependency; unknown kinds surface as 404 via the app's handler."""
    return parse_kind(kind)


Store = Annotated[ApprovalStore, Depends(get_store)]
Converter = Annotated[LegacyConverter, Depends(get_converter)]
Kind = Annotated[ArtifactKind, Depends(artifact_kind)]

_mutating = [Depends(verify_api_key)]


# --- Health ---


@router.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse()


# --- Script hash pre-approval ---


@router.post("/approveScriptHash", dependencies=_mutating, status_code=status.HTTP_200_OK)
def approve_script_hash(body: HashRequest, store: Store) -> None:
    """Acknowledge-only approval of a script hash."""
    store.approve_hash(body.hash)
    _log.info("Pre-approved script hash %s", body.hash)


# --- Snapshots and single-item transitions ---


@router.get("/{kind}")
def render_info(kind: Kind, store: Store) -> SnapshotBody:
    """Full pending/approved state for one kind."""
    return store.snapshot(kind).to_wire()


@router.post("/{kind}/approve", dependencies=_mutating)
def approve(kind: Kind, body: HashRequest, store: Store) -> SnapshotBody:
    store.approve(kind, body.hash)
    return store.snapshot(kind).to_wire()


@router.post("/{kind}/deny", dependencies=_mutating)
def deny(kind: Kind, body: HashRequest, store: Store) -> SnapshotBody:
    store.deny(kind, body.hash)
    return store.snapshot(kind).to_wire()


@router.post("/{kind}/revoke", dependencies=_mutating)
def revoke(kind: Kind, body: HashRequest, store: Store) -> SnapshotBody:
    store.revoke(kind, body.hash)
    return store.snapshot(kind).to_wire()


@router.post("/{kind}/clear", dependencies=_mutating)
def clear(kind: Kind, store: Store) -> SnapshotBody:
    store.clear_approved(kind)
    return store.snapshot(kind).to_wire()


# --- Signature-only operations ---


@router.post("/{kind}/aclApprove", dependencies=_mutating)
def acl_approve(kind: Kind, body: HashRequest, store: Store) -> SnapshotBody:
    """Approve a signature for callers that hold the needed permissions themselves."""
    try:
        store.acl_approve(kind, body.hash)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return store.snapshot(kind).to_wire()


@router.post("/{kind}/clearDangerous", dependencies=_mutating)
def clear_dangerous(kind: Kind, store: Store) -> SnapshotBody:
    try:
        store.clear_dangerous(kind)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return store.snapshot(kind).to_wire()


# --- Batch ---


@router.post("/{kind}/batch/{action}", dependencies=_mutating, response_model=BatchResponse)
def batch(kind: Kind, action: str, body: BatchRequest, store: Store) -> BatchResponse:
    try:
        batch_action = BatchAction(action)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown batch action: {action!r}",
        ) from exc
    count = store.apply_batch(kind, batch_action, body.hashes)
    return BatchResponse(action=batch_action.value, count=count)


# --- Artifact creation ---


@router.post("/{kind}/submit", dependencies=_mutating, response_model=SubmitResponse)
def submit(kind: Kind, body: SubmitRequest, store: Store) -> SubmitResponse:
    """Record an artifact that needs approval before it may run."""
    try:
        artifact = store.submit(
            kind,
            body.payload,
            language=body.language,
            context=ApprovalContext(user=body.user, item=body.item),
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return SubmitResponse(hash=artifact.hash, state=artifact.state.value)


# --- Legacy hashes ---


@router.post(
    "/{kind}/migrate",
    dependencies=_mutating,
    response_model=MigrateResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def migrate(kind: Kind, converter: Converter) -> MigrateResponse:
    """Schedule rehashing of deprecated approvals; progress goes to the log."""
    return MigrateResponse(scheduled=converter.schedule(kind))


@router.get("/{kind}/deprecated", response_model=DeprecatedInfo)
def deprecated(kind: Kind, store: Store, converter: Converter) -> DeprecatedInfo:
    return DeprecatedInfo(count=store.count_deprecated(kind), converting=converter.converting)


@router.post("/{kind}/deprecated/clear", dependencies=_mutating)
def clear_deprecated(kind: Kind, store: Store) -> SnapshotBody:
    store.clear_deprecated(kind)
    return store.snapshot(kind).to_wire()


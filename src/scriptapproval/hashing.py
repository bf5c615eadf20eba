"""Content-hash identity for approvable artifacts.

The store derives every artifact's key from its kind and payload.  Clients
never compute hashes: they receive them as opaque strings and only forward
them back.

Dependencies: (none, leaf module)
Wired in: store/approvals.py → ApprovalStore, store/conversion.py
"""

from __future__ import annotations

import hashlib
import re
from enum import StrEnum
from pathlib import Path
from typing import NewType

from scriptapproval.errors import UnknownKindError

ArtifactHash = NewType("ArtifactHash", str)

_READ_CHUNK_BYTES = 64 * 1024


class ArtifactKind(StrEnum):
    """The three artifact families, each with its own endpoints."""

    SCRIPT = "script"
    SIGNATURE = "signature"
    CLASSPATH = "classpath"


class Hasher(StrEnum):
    """Digest algorithms, current first."""

    SHA512 = "sha512"
    SHA1 = "sha1"

    @property
    def prefix(self) -> str:
        return "SHA512:" if self is Hasher.SHA512 else ""

    @property
    def pattern(self) -> re.Pattern[str]:
        return _PATTERNS[self]

    def new(self) -> hashlib._Hash:
        return hashlib.new(self.value)


_PATTERNS: dict[Hasher, re.Pattern[str]] = {
    Hasher.SHA512: re.compile(r"SHA512:[a-fA-F0-9]{128}"),
    Hasher.SHA1: re.compile(r"[a-fA-F0-9]{40}"),
}

CURRENT_HASHER = Hasher.SHA512


def hash_script(script: str, language: str, hasher: Hasher = CURRENT_HASHER) -> ArtifactHash:
    """Digest ``language:script``."""
    digest = hasher.new()
    digest.update(language.encode("utf-8"))
    digest.update(b":")
    digest.update(script.encode("utf-8"))
    return ArtifactHash(hasher.prefix + digest.hexdigest())


def hash_signature(signature: str, hasher: Hasher = CURRENT_HASHER) -> ArtifactHash:
    digest = hasher.new()
    digest.update(b"signature:")
    digest.update(signature.encode("utf-8"))
    return ArtifactHash(hasher.prefix + digest.hexdigest())


def hash_classpath_entry(path: Path, hasher: Hasher = CURRENT_HASHER) -> ArtifactHash:
    """Digest the contents of the file at *path*.

    Raises ``OSError`` when the file cannot be read and ``IsADirectoryError``
    for class directories, which are never approvable.
    """
    digest = hasher.new()
    with path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(_READ_CHUNK_BYTES), b""):
            digest.update(chunk)
    return ArtifactHash(hasher.prefix + digest.hexdigest())


def compute_hash(
    kind: ArtifactKind,
    payload: str,
    *,
    language: str | None = None,
    hasher: Hasher = CURRENT_HASHER,
) -> ArtifactHash:
    """Return the canonical hash for *payload* of the given *kind*."""
    if kind is ArtifactKind.SCRIPT:
        if not language:
            raise ValueError("Scripts are hashed together with their language.")
        return hash_script(payload, language, hasher)
    if kind is ArtifactKind.SIGNATURE:
        return hash_signature(payload, hasher)
    return hash_classpath_entry(Path(payload), hasher)


def is_current(artifact_hash: str) -> bool:
    return CURRENT_HASHER.pattern.fullmatch(artifact_hash) is not None


def is_legacy(artifact_hash: str) -> bool:
    """True for hashes produced by a deprecated hasher."""
    if is_current(artifact_hash):
        return False
    return any(
        hasher.pattern.fullmatch(artifact_hash) is not None
        for hasher in Hasher
        if hasher is not CURRENT_HASHER
    )


def parse_kind(raw: str) -> ArtifactKind:
    """Resolve a kind name, raising ``UnknownKindError`` for anything else."""
    try:
        return ArtifactKind(raw)
    except ValueError as exc:
        raise UnknownKindError(raw) from exc
